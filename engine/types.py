"""Shared data types for the reading engine."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class VoiceInfo:
    """Describes an available speech voice."""
    id: str
    name: str
    lang: str = ""
    gender: str = ""


@dataclass(frozen=True)
class Chunk:
    """A bounded slice of the source text, processed independently.

    start/end are offsets of the raw window in the source; text is the
    trimmed window content.
    """
    id: str
    seq: int
    start: int
    end: int
    text: str
    word_count: int = 0
    token_estimate: int = 0


@dataclass(frozen=True)
class ProcessedChunk:
    """A chunk after a pass through the simplification service."""
    chunk: Chunk
    simplified_text: str
    original_text: str
    speech_text: str = ""
    error: Optional[str] = None
    processed_at: Optional[datetime] = None
    processing_time_ms: float = 0.0
    simplification_ratio: float = 1.0
    reading_level: str = ""

    @property
    def seq(self) -> int:
        return self.chunk.seq

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass(frozen=True)
class ChunkError:
    seq: int
    chunk_id: str
    error: str


@dataclass
class CombinedStats:
    word_count: int = 0
    total_chunks: int = 0
    successful_chunks: int = 0
    failed_chunks: int = 0
    errors: list[ChunkError] = field(default_factory=list)


@dataclass
class CombinedResult:
    """Whole-document text produced by recombination."""
    display_text: str = ""
    speech_text: str = ""
    original_text: str = ""
    stats: CombinedStats = field(default_factory=CombinedStats)


class PlaybackStatus(str, Enum):
    STOPPED = "stopped"
    PLAYING = "playing"
    PAUSED = "paused"


@dataclass
class PlaybackState:
    """Live playback state owned by the synchronizer."""
    status: PlaybackStatus = PlaybackStatus.STOPPED
    current_word_index: Optional[int] = None
    rate: float = 1.0
    voice: Optional[VoiceInfo] = None
    start_offset: int = 0
    current_time: float = 0.0   # seconds
    duration: float = 0.0       # estimated seconds

    @property
    def is_playing(self) -> bool:
        return self.status is PlaybackStatus.PLAYING

    @property
    def is_paused(self) -> bool:
        return self.status is PlaybackStatus.PAUSED
