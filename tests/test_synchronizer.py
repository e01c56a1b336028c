"""Tests for the speech/highlight synchronizer state machine.

FakeSpeechEngine (conftest) records utterances; tests emit boundary,
end and error events by hand.
"""

import asyncio

import pytest

from engine.synchronizer import SpeechSynchronizer, estimate_duration
from engine.tts import BOUNDARY, SpeechEvent
from engine.types import PlaybackStatus, VoiceInfo

TEXT = "The quick brown fox jumps over the lazy dog today"


def _sync(engine, **kwargs) -> tuple[SpeechSynchronizer, list]:
    kwargs.setdefault("restart_delay", 0.01)
    kwargs.setdefault("rate_settle_delay", 0.01)
    kwargs.setdefault("voice_settle_delay", 0.01)
    sync = SpeechSynchronizer(engine, **kwargs)
    seen = []
    sync.on_word(seen.append)
    sync.load(TEXT)
    return sync, seen


class TestLoad:
    def test_splits_words_and_estimates_duration(self, fake_engine):
        sync, _ = _sync(fake_engine)
        assert len(sync.words) == 10
        assert sync.state.duration == estimate_duration(TEXT)
        assert sync.state.status is PlaybackStatus.STOPPED

    def test_duration_has_floor(self):
        assert estimate_duration("hi") == 3.0
        assert estimate_duration("x" * 100) == 10.0

    def test_rejects_bad_initial_rate(self, fake_engine):
        with pytest.raises(ValueError):
            SpeechSynchronizer(fake_engine, rate=3.0)


class TestPlayPauseStop:
    """Tests for basic transitions."""

    @pytest.mark.asyncio
    async def test_play_speaks_whole_text(self, fake_engine):
        sync, _ = _sync(fake_engine)
        await sync.play()
        assert sync.state.status is PlaybackStatus.PLAYING
        assert fake_engine.spoken[-1].text == TEXT
        assert sync.state.start_offset == 0
        sync.stop()

    @pytest.mark.asyncio
    async def test_play_with_nothing_loaded(self, fake_engine):
        sync = SpeechSynchronizer(fake_engine)
        await sync.play()
        assert sync.state.status is PlaybackStatus.STOPPED
        assert fake_engine.spoken == []

    @pytest.mark.asyncio
    async def test_boundaries_highlight_words(self, fake_engine):
        sync, seen = _sync(fake_engine)
        await sync.play()
        fake_engine.boundary_at_word(0)
        fake_engine.boundary_at_word(3)
        assert seen[-2:] == [0, 3]
        assert sync.state.current_word_index == 3
        sync.stop()

    @pytest.mark.asyncio
    async def test_pause_keeps_position(self, fake_engine):
        sync, _ = _sync(fake_engine)
        await sync.play()
        fake_engine.boundary_at_word(4)
        sync.pause()
        assert sync.state.status is PlaybackStatus.PAUSED
        assert sync.state.current_word_index == 4
        assert fake_engine.calls[-1] == "pause"

    @pytest.mark.asyncio
    async def test_play_from_paused_resumes(self, fake_engine):
        sync, _ = _sync(fake_engine)
        await sync.play()
        sync.pause()
        spoken = len(fake_engine.spoken)
        await sync.play()
        assert sync.state.status is PlaybackStatus.PLAYING
        assert fake_engine.calls[-1] == "resume"
        assert len(fake_engine.spoken) == spoken
        sync.stop()

    @pytest.mark.asyncio
    async def test_pause_when_stopped_is_noop(self, fake_engine):
        sync, _ = _sync(fake_engine)
        sync.pause()
        assert sync.state.status is PlaybackStatus.STOPPED
        assert "pause" not in fake_engine.calls

    @pytest.mark.asyncio
    async def test_stop_clears_highlight(self, fake_engine):
        sync, seen = _sync(fake_engine)
        await sync.play()
        fake_engine.boundary_at_word(2)
        sync.stop()
        assert sync.state.status is PlaybackStatus.STOPPED
        assert sync.state.current_word_index is None
        assert seen[-1] is None
        assert fake_engine.calls[-1] == "cancel"

    @pytest.mark.asyncio
    async def test_end_event_stops(self, fake_engine):
        sync, seen = _sync(fake_engine)
        await sync.play()
        fake_engine.boundary_at_word(9)
        fake_engine.finish()
        assert sync.state.status is PlaybackStatus.STOPPED
        assert sync.state.current_word_index is None
        assert seen[-1] is None


class TestSeek:
    """Tests for play_from_word."""

    @pytest.mark.asyncio
    async def test_seek_highlights_immediately_then_speaks(self, fake_engine):
        sync, seen = _sync(fake_engine, restart_delay=0.05)
        task = asyncio.ensure_future(sync.play_from_word(4))
        await asyncio.sleep(0)
        assert seen[-1] == 4
        assert sync.state.status is PlaybackStatus.PLAYING
        assert fake_engine.spoken == []
        await task
        assert fake_engine.spoken[-1].text == "jumps over the lazy dog today"
        assert sync.state.start_offset == 4
        sync.stop()

    @pytest.mark.asyncio
    async def test_boundary_after_seek_is_absolute(self, fake_engine):
        sync, seen = _sync(fake_engine)
        await sync.play_from_word(5)
        fake_engine.boundary_at_word(0)
        assert seen[-1] == 5
        fake_engine.boundary_at_word(2)
        assert seen[-1] == 7
        sync.stop()

    @pytest.mark.asyncio
    async def test_seek_while_playing_cancels_current(self, fake_engine):
        sync, _ = _sync(fake_engine)
        await sync.play()
        first = fake_engine.spoken[-1]
        await sync.play_from_word(2)
        assert "cancel" in fake_engine.calls
        assert fake_engine.spoken[-1] is not first
        assert sync.state.status is PlaybackStatus.PLAYING
        sync.stop()

    @pytest.mark.asyncio
    async def test_out_of_range_ignored(self, fake_engine):
        sync, seen = _sync(fake_engine)
        await sync.play_from_word(10)
        await sync.play_from_word(-1)
        assert seen == [None]
        assert fake_engine.spoken == []
        assert sync.state.status is PlaybackStatus.STOPPED

    @pytest.mark.asyncio
    async def test_stop_during_delay_supersedes_seek(self, fake_engine):
        sync, _ = _sync(fake_engine, restart_delay=0.05)
        task = asyncio.ensure_future(sync.play_from_word(3))
        await asyncio.sleep(0)
        sync.stop()
        await task
        assert fake_engine.spoken == []
        assert sync.state.status is PlaybackStatus.STOPPED

    @pytest.mark.asyncio
    async def test_pause_during_delay_holds_speech(self, fake_engine):
        sync, seen = _sync(fake_engine, restart_delay=0.05)
        task = asyncio.ensure_future(sync.play_from_word(4))
        await asyncio.sleep(0)
        sync.pause()
        await task
        assert sync.state.status is PlaybackStatus.PAUSED
        assert fake_engine.spoken == []
        assert "pause" not in fake_engine.calls
        assert sync.state.current_word_index == 4

        await sync.play()
        assert sync.state.status is PlaybackStatus.PLAYING
        assert "resume" not in fake_engine.calls
        assert fake_engine.spoken[-1].text == "jumps over the lazy dog today"
        assert sync.state.start_offset == 4
        fake_engine.boundary_at_word(1)
        assert seen[-1] == 5
        sync.stop()

    @pytest.mark.asyncio
    async def test_pause_during_rate_restart_holds_speech(self, fake_engine):
        sync, _ = _sync(fake_engine, restart_delay=0.2)
        await sync.play()
        fake_engine.boundary_at_word(3)
        task = asyncio.ensure_future(sync.set_rate(1.5))
        await asyncio.sleep(0.03)
        sync.pause()
        await task
        assert sync.state.status is PlaybackStatus.PAUSED
        assert len(fake_engine.spoken) == 1

        await sync.play()
        assert fake_engine.spoken[-1].text == "fox jumps over the lazy dog today"
        assert fake_engine.spoken[-1].rate == 1.5
        sync.stop()

    @pytest.mark.asyncio
    async def test_second_seek_wins(self, fake_engine):
        sync, _ = _sync(fake_engine, restart_delay=0.05)
        first = asyncio.ensure_future(sync.play_from_word(2))
        await asyncio.sleep(0)
        second = asyncio.ensure_future(sync.play_from_word(6))
        await asyncio.gather(first, second)
        assert len(fake_engine.spoken) == 1
        assert sync.state.start_offset == 6
        sync.stop()


class TestStaleEvents:
    """Events from superseded utterances never move the highlight."""

    @pytest.mark.asyncio
    async def test_old_utterance_boundary_ignored(self, fake_engine):
        sync, seen = _sync(fake_engine)
        await sync.play()
        old = fake_engine.spoken[-1]
        await sync.play_from_word(6)
        fake_engine.boundary_at_word(1, utterance=old)
        assert seen[-1] == 6
        sync.stop()

    @pytest.mark.asyncio
    async def test_boundary_past_last_word_dropped(self, fake_engine):
        sync, seen = _sync(fake_engine)
        await sync.play()
        utterance = fake_engine.spoken[-1]
        fake_engine._emit(SpeechEvent(BOUNDARY, utterance.id, char_index=len(TEXT) + 1))
        assert seen == [None]
        sync.stop()


class TestErrors:
    """Tests for speech error classification."""

    @pytest.mark.asyncio
    async def test_interrupted_is_swallowed(self, fake_engine):
        sync, _ = _sync(fake_engine)
        errors = []
        sync.on_error(errors.append)
        await sync.play()
        fake_engine.boundary_at_word(3)
        fake_engine.fail("interrupted")
        assert errors == []
        assert sync.state.status is PlaybackStatus.PLAYING
        assert sync.state.current_word_index == 3
        sync.stop()

    @pytest.mark.asyncio
    async def test_canceled_is_swallowed(self, fake_engine):
        sync, _ = _sync(fake_engine)
        errors = []
        sync.on_error(errors.append)
        await sync.play()
        fake_engine.fail("canceled")
        assert errors == []
        sync.stop()

    @pytest.mark.asyncio
    async def test_other_error_stops_and_reports(self, fake_engine):
        sync, seen = _sync(fake_engine)
        errors = []
        sync.on_error(errors.append)
        await sync.play()
        fake_engine.boundary_at_word(2)
        fake_engine.fail("audio-busy")
        assert errors == ["audio-busy"]
        assert sync.state.status is PlaybackStatus.STOPPED
        assert seen[-1] is None


class TestRateAndVoice:
    """Tests for live rate and voice changes."""

    @pytest.mark.asyncio
    async def test_rate_validation(self, fake_engine):
        sync, _ = _sync(fake_engine)
        for bad in (0.4, 2.1):
            with pytest.raises(ValueError):
                await sync.set_rate(bad)
        assert sync.state.rate == 1.0

    @pytest.mark.asyncio
    async def test_rate_change_when_stopped_applies_next_time(self, fake_engine):
        sync, _ = _sync(fake_engine)
        await sync.set_rate(1.5)
        assert fake_engine.spoken == []
        await sync.play()
        assert fake_engine.spoken[-1].rate == 1.5
        sync.stop()

    @pytest.mark.asyncio
    async def test_rate_change_restarts_from_current_word(self, fake_engine):
        sync, _ = _sync(fake_engine)
        await sync.play()
        fake_engine.boundary_at_word(5)
        await sync.set_rate(0.5)
        latest = fake_engine.spoken[-1]
        assert len(fake_engine.spoken) == 2
        assert latest.rate == 0.5
        assert latest.text == "over the lazy dog today"
        assert sync.state.start_offset == 5
        sync.stop()

    @pytest.mark.asyncio
    async def test_rate_change_before_first_boundary_restarts_at_zero(self, fake_engine):
        sync, _ = _sync(fake_engine)
        await sync.play()
        await sync.set_rate(2.0)
        assert fake_engine.spoken[-1].text == TEXT
        sync.stop()

    @pytest.mark.asyncio
    async def test_voice_change_while_playing(self, fake_engine):
        voice = VoiceInfo(id="v9", name="Test Voice")
        sync, _ = _sync(fake_engine)
        await sync.play()
        fake_engine.boundary_at_word(7)
        await sync.set_voice(voice)
        assert fake_engine.spoken[-1].voice == voice
        assert sync.state.start_offset == 7
        sync.stop()

    @pytest.mark.asyncio
    async def test_voice_change_while_paused_does_not_restart(self, fake_engine):
        sync, _ = _sync(fake_engine)
        await sync.play()
        sync.pause()
        await sync.set_voice(VoiceInfo(id="v9", name="Test Voice"))
        assert len(fake_engine.spoken) == 1
        assert sync.state.status is PlaybackStatus.PAUSED


class TestProgressTimer:
    @pytest.mark.asyncio
    async def test_timer_advances_while_playing(self, fake_engine):
        sync, _ = _sync(fake_engine, tick=0.01)
        await sync.play()
        await asyncio.sleep(0.06)
        assert sync.state.current_time > 0
        sync.pause()
        paused_at = sync.state.current_time
        await asyncio.sleep(0.03)
        assert sync.state.current_time == paused_at
        sync.stop()
        assert sync.state.current_time == 0.0


class TestListeners:
    def test_unsubscribe(self, fake_engine):
        sync = SpeechSynchronizer(fake_engine)
        seen = []
        unsubscribe = sync.on_word(seen.append)
        unsubscribe()
        unsubscribe()
        sync.stop()
        assert seen == []

    @pytest.mark.asyncio
    async def test_error_unsubscribe(self, fake_engine):
        sync, _ = _sync(fake_engine)
        errors = []
        unsubscribe = sync.on_error(errors.append)
        unsubscribe()
        unsubscribe()
        await sync.play()
        fake_engine.fail("audio-busy")
        assert errors == []
        assert sync.state.status is PlaybackStatus.STOPPED

    def test_close_detaches_from_engine(self, fake_engine):
        sync = SpeechSynchronizer(fake_engine)
        sync.close()
        assert fake_engine._listeners == []
