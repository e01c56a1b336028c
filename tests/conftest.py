"""Shared test fixtures for ReadAble tests."""

from typing import List, Optional

import pytest

from engine.tts import BOUNDARY, END, ERROR, SpeechEngine, SpeechEvent, Utterance
from engine.types import Chunk, ProcessedChunk, VoiceInfo


class FakeSpeechEngine(SpeechEngine):
    """In-memory speech engine. Tests drive events by hand."""

    def __init__(self, voices: Optional[List[VoiceInfo]] = None):
        super().__init__()
        self.spoken: List[Utterance] = []
        self.current: Optional[Utterance] = None
        self.calls: List[str] = []
        self.voices = voices or []

    def speak(self, utterance: Utterance) -> None:
        self.calls.append("speak")
        self.spoken.append(utterance)
        self.current = utterance

    def cancel(self) -> None:
        self.calls.append("cancel")
        if self.current is not None:
            current, self.current = self.current, None
            self._emit(SpeechEvent(ERROR, current.id, error="interrupted"))

    def pause(self) -> None:
        self.calls.append("pause")

    def resume(self) -> None:
        self.calls.append("resume")

    def list_voices(self) -> List[VoiceInfo]:
        return list(self.voices)

    # ── Test helpers ──────────────────────────────────────────

    def boundary_at_word(self, word: int, utterance: Optional[Utterance] = None) -> None:
        """Emit a boundary for the n-th word of the (current) utterance."""
        utterance = utterance or self.current
        words = utterance.text.split(" ")
        offset = sum(len(w) + 1 for w in words[:word])
        self._emit(SpeechEvent(BOUNDARY, utterance.id, char_index=offset))

    def finish(self) -> None:
        utterance, self.current = self.current, None
        self._emit(SpeechEvent(END, utterance.id))

    def fail(self, error: str) -> None:
        utterance, self.current = self.current, None
        self._emit(SpeechEvent(ERROR, utterance.id, error=error))


@pytest.fixture
def fake_engine() -> FakeSpeechEngine:
    return FakeSpeechEngine()


@pytest.fixture
def sample_voices() -> List[VoiceInfo]:
    return [
        VoiceInfo(id="v1", name="Microsoft David", lang="en-US", gender="male"),
        VoiceInfo(id="v2", name="Microsoft Libby Online (Natural)", lang="en-GB", gender="female"),
        VoiceInfo(id="v3", name="Microsoft Mark", lang="en-US", gender="male"),
        VoiceInfo(id="v4", name="Hortense", lang="fr-FR", gender="female"),
    ]


def make_chunk(seq: int, text: str, start: int = 0) -> Chunk:
    return Chunk(
        id=f"chunk_{seq}",
        seq=seq,
        start=start,
        end=start + len(text),
        text=text,
        word_count=len(text.split()),
        token_estimate=max(1, len(text) // 4),
    )


def make_processed(seq: int, simplified: str, original: str = "", error: Optional[str] = None) -> ProcessedChunk:
    original = original or simplified
    return ProcessedChunk(
        chunk=make_chunk(seq, original),
        simplified_text=simplified,
        original_text=original,
        error=error,
    )
