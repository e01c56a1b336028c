"""Speech/highlight synchronizer — drives a SpeechEngine and tracks the spoken word.

States: stopped → playing ⇄ paused → stopped.

Seeking, rate changes and voice changes all restart speech from a word
index: the current utterance is cancelled and the remainder of the text is
spoken as a new utterance whose boundary offsets are mapped back to
absolute word indices through start_offset.
"""

import asyncio
import logging
from typing import Callable, List, Optional

from .tts import BOUNDARY, END, ERROR, MAX_RATE, MIN_RATE, SpeechEngine, SpeechEvent, Utterance
from .types import PlaybackState, PlaybackStatus, VoiceInfo

log = logging.getLogger("synchronizer")

RESTART_DELAY = 0.1       # seconds between cancel and re-speak on seek
RATE_SETTLE_DELAY = 0.05
VOICE_SETTLE_DELAY = 0.1
TICK = 0.1

# Engine errors that only mean "we cancelled it ourselves"
BENIGN_ERRORS = ("interrupted", "canceled")

WordListener = Callable[[Optional[int]], None]
ErrorListener = Callable[[str], None]


def estimate_duration(text: str) -> float:
    """Rough playback length in seconds, used for the progress bar only."""
    return max(len(text) / 10, 3.0)


class SpeechSynchronizer:
    """Keeps the highlighted word in step with speech."""

    def __init__(
        self,
        engine: SpeechEngine,
        rate: float = 1.0,
        voice: Optional[VoiceInfo] = None,
        restart_delay: float = RESTART_DELAY,
        rate_settle_delay: float = RATE_SETTLE_DELAY,
        voice_settle_delay: float = VOICE_SETTLE_DELAY,
        tick: float = TICK,
    ) -> None:
        if not MIN_RATE <= rate <= MAX_RATE:
            raise ValueError(f"rate must be between {MIN_RATE} and {MAX_RATE}, got {rate}")
        self.engine = engine
        self.restart_delay = restart_delay
        self.rate_settle_delay = rate_settle_delay
        self.voice_settle_delay = voice_settle_delay
        self.tick = tick

        self.state = PlaybackState(rate=rate, voice=voice)
        self.text = ""
        self.words: List[str] = []

        self._utterance: Optional[Utterance] = None
        self._generation = 0
        self._timer: Optional[asyncio.Task] = None
        self._word_listeners: List[WordListener] = []
        self._error_listeners: List[ErrorListener] = []
        self._unsubscribe = engine.subscribe(self._on_event)

    # ── Listeners ─────────────────────────────────────────────

    def on_word(self, callback: WordListener) -> Callable[[], None]:
        """Subscribe to highlight changes (absolute word index, or None)."""
        self._word_listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._word_listeners:
                self._word_listeners.remove(callback)

        return unsubscribe

    def on_error(self, callback: ErrorListener) -> Callable[[], None]:
        self._error_listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._error_listeners:
                self._error_listeners.remove(callback)

        return unsubscribe

    def _set_word(self, index: Optional[int]) -> None:
        self.state.current_word_index = index
        for cb in list(self._word_listeners):
            cb(index)

    def _report_error(self, message: str) -> None:
        for cb in list(self._error_listeners):
            cb(message)

    # ── Controls ──────────────────────────────────────────────

    def load(self, text: str) -> None:
        """Replace the text to read. Stops any playback."""
        self.stop()
        self.text = text
        self.words = text.split()
        self.state.start_offset = 0
        self.state.current_time = 0.0
        self.state.duration = estimate_duration(text)
        log.debug("Loaded %d words (~%.0fs)", len(self.words), self.state.duration)

    async def play(self) -> None:
        if self.state.status is PlaybackStatus.PLAYING:
            return
        if self.state.status is PlaybackStatus.PAUSED:
            self.state.status = PlaybackStatus.PLAYING
            if self._utterance is None:
                # Paused while a restart was pending: nothing to resume yet
                self._generation += 1
                self._speak_from(max(0, self.state.current_word_index or 0))
            else:
                self.engine.resume()
            self._start_timer()
            log.debug("Resumed at word %s", self.state.current_word_index)
            return
        if not self.words:
            log.debug("Nothing to play")
            return
        self._generation += 1
        self.state.status = PlaybackStatus.PLAYING
        self.state.current_time = 0.0
        self._speak_from(0)
        self._start_timer()

    def pause(self) -> None:
        if self.state.status is not PlaybackStatus.PLAYING:
            return
        if self._utterance is None:
            # Drop the pending seek restart; play() speaks from the kept index
            self._generation += 1
        else:
            self.engine.pause()
        self.state.status = PlaybackStatus.PAUSED
        self._stop_timer()
        log.debug("Paused at word %s", self.state.current_word_index)

    def stop(self) -> None:
        self._generation += 1
        self.engine.cancel()
        self._utterance = None
        self.state.status = PlaybackStatus.STOPPED
        self.state.current_time = 0.0
        self._stop_timer()
        self._set_word(None)

    async def play_from_word(self, index: int) -> None:
        """Seek: restart speech at word `index`. Out-of-range targets are ignored."""
        if not 0 <= index < len(self.words):
            log.debug("Seek target %d outside 0..%d, ignored", index, len(self.words) - 1)
            return
        self._generation += 1
        generation = self._generation

        self.engine.cancel()
        self._utterance = None
        self.state.status = PlaybackStatus.PLAYING
        self.state.current_time = self.state.duration * index / len(self.words)
        self._set_word(index)
        self._start_timer()

        await asyncio.sleep(self.restart_delay)
        if generation != self._generation or self.state.status is not PlaybackStatus.PLAYING:
            log.debug("Seek to %d superseded", index)
            return
        self._speak_from(index)

    async def set_rate(self, rate: float) -> None:
        if not MIN_RATE <= rate <= MAX_RATE:
            raise ValueError(f"rate must be between {MIN_RATE} and {MAX_RATE}, got {rate}")
        self.state.rate = rate
        await self._restart_if_playing(self.rate_settle_delay)

    async def set_voice(self, voice: Optional[VoiceInfo]) -> None:
        self.state.voice = voice
        await self._restart_if_playing(self.voice_settle_delay)

    async def _restart_if_playing(self, settle: float) -> None:
        if self.state.status is not PlaybackStatus.PLAYING:
            return
        generation = self._generation
        await asyncio.sleep(settle)
        if generation != self._generation or self.state.status is not PlaybackStatus.PLAYING:
            return
        await self.play_from_word(max(0, self.state.current_word_index or 0))

    def close(self) -> None:
        self.stop()
        self._unsubscribe()

    # ── Engine plumbing ───────────────────────────────────────

    def _speak_from(self, offset: int) -> None:
        utterance = Utterance(
            text=" ".join(self.words[offset:]),
            rate=self.state.rate,
            voice=self.state.voice,
        )
        self._utterance = utterance
        self.state.start_offset = offset
        log.debug("Speaking from word %d (rate=%.2f)", offset, utterance.rate)
        self.engine.speak(utterance)

    def _on_event(self, event: SpeechEvent) -> None:
        if self._utterance is None or event.utterance_id != self._utterance.id:
            return

        if event.kind == BOUNDARY:
            spoken = self._utterance.text[:event.char_index]
            index = self.state.start_offset + len(spoken.split())
            if index < len(self.words):
                self._set_word(index)
        elif event.kind == END:
            log.debug("Utterance %s finished", event.utterance_id)
            self._finish()
        elif event.kind == ERROR:
            if event.error in BENIGN_ERRORS:
                return
            log.error("Speech error: %s", event.error)
            self._finish()
            self._report_error(event.error)

    def _finish(self) -> None:
        self._utterance = None
        self.state.status = PlaybackStatus.STOPPED
        self.state.current_time = 0.0
        self._stop_timer()
        self._set_word(None)

    # ── Progress timer ────────────────────────────────────────

    def _start_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            return
        self._timer = asyncio.get_running_loop().create_task(self._run_timer())

    def _stop_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def _run_timer(self) -> None:
        while self.state.status is PlaybackStatus.PLAYING and self.state.current_time < self.state.duration:
            await asyncio.sleep(self.tick)
            if self.state.status is PlaybackStatus.PLAYING:
                self.state.current_time = min(self.state.current_time + self.tick, self.state.duration)
