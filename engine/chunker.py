"""Text chunker — splits extracted text into model-sized windows.

Defaults are sized for a 120k-token context (about 4 characters per token).
Break points prefer paragraph breaks, then sentence endings, then spaces,
and only hard-cut when none sits near the end of the window.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from typing import List, Optional

from .types import Chunk

log = logging.getLogger("chunker")

MAX_CHUNK_SIZE = 450_000  # stays under 120k tokens
MIN_CHUNK_SIZE = 100_000
OVERLAP_SIZE = 5_000
MAX_TOKENS_PER_CHUNK = 120_000

SENTENCE_ENDINGS = (". ", "! ", "? ")

# Break points must fall inside the trailing part of the window
PARAGRAPH_WINDOW = 0.7
SENTENCE_WINDOW = 0.7
SPACE_WINDOW = 0.8

_WS_RE = re.compile(r"\s+")


def count_words(text: str) -> int:
    """Count whitespace-delimited words."""
    if not text or not text.strip():
        return 0
    return len(_WS_RE.split(text.strip()))


def estimate_token_count(text: str) -> int:
    """Rough token estimate: one token per 4 characters."""
    if not text:
        return 0
    return math.ceil(len(text) / 4)


def find_break_point(text: str, start: int, end: int, preserve_paragraphs: bool = True) -> int:
    """Return the absolute offset where the window [start, end) should end."""
    window = text[start:end]
    size = len(window)

    if preserve_paragraphs:
        para = window.rfind("\n\n")
        if para > size * PARAGRAPH_WINDOW:
            return start + para + 2

    best = -1
    for ending in SENTENCE_ENDINGS:
        idx = window.rfind(ending)
        if idx > size * SENTENCE_WINDOW and idx + len(ending) > best:
            best = idx + len(ending)
    if best > -1:
        return start + best

    space = window.rfind(" ")
    if space > size * SPACE_WINDOW:
        return start + space + 1

    return end


def chunk_text(
    text: str,
    max_chunk_size: int = MAX_CHUNK_SIZE,
    min_chunk_size: Optional[int] = None,
    overlap_size: int = OVERLAP_SIZE,
    preserve_paragraphs: bool = True,
) -> List[Chunk]:
    """Split text into ordered, bounded chunks.

    Args:
        text: Source text.
        max_chunk_size: Hard upper bound on a window, in characters.
        min_chunk_size: A break point is only used if it keeps at least this
            many characters in the chunk. Defaults to a quarter of the window,
            capped at MIN_CHUNK_SIZE.
        overlap_size: Characters shared between adjacent windows.
        preserve_paragraphs: Prefer paragraph breaks over sentence endings.

    Returns:
        Chunks in source order. Empty for empty or whitespace-only input.
    """
    if max_chunk_size <= 0:
        raise ValueError(f"max_chunk_size must be positive, got {max_chunk_size}")
    if overlap_size < 0 or overlap_size >= max_chunk_size:
        raise ValueError(
            f"overlap_size must be in [0, {max_chunk_size}), got {overlap_size}"
        )
    if min_chunk_size is None:
        min_chunk_size = min(MIN_CHUNK_SIZE, max_chunk_size // 4)

    if not text or not text.strip():
        return []

    if len(text) <= max_chunk_size:
        body = text.strip()
        return [Chunk(
            id="chunk_0",
            seq=0,
            start=0,
            end=len(text),
            text=body,
            word_count=count_words(body),
            token_estimate=estimate_token_count(body),
        )]

    chunks: List[Chunk] = []
    position = 0
    total = len(text)

    while position < total:
        size = min(max_chunk_size, total - position)

        if position + size < total:
            brk = find_break_point(text, position, position + size, preserve_paragraphs)
            if brk > position + min_chunk_size:
                size = brk - position

        end = position + size
        body = text[position:end].strip()
        if body:
            seq = len(chunks)
            chunks.append(Chunk(
                id=f"chunk_{seq}",
                seq=seq,
                start=position,
                end=end,
                text=body,
                word_count=count_words(body),
                token_estimate=estimate_token_count(body),
            ))

        if end >= total:
            break
        position = max(end - overlap_size, position + 1)

    log.info("Chunked %d chars into %d chunks (max=%d, overlap=%d)",
             total, len(chunks), max_chunk_size, overlap_size)
    return chunks


def reassemble(source: str, chunks: List[Chunk]) -> str:
    """Rebuild the source from the overlap-free spans of the chunks.

    Gaps left by skipped whitespace-only windows are taken from the source.
    A gap holding text is not, so a missing chunk still shows up as loss.
    """
    parts = []
    covered = 0
    for chunk in sorted(chunks, key=lambda c: c.seq):
        begin = max(chunk.start, covered)
        if begin > covered and not source[covered:begin].strip():
            begin = covered
        if chunk.end > begin:
            parts.append(source[begin:chunk.end])
        covered = max(covered, chunk.end)
    if covered < len(source) and not source[covered:].strip():
        parts.append(source[covered:])
    return "".join(parts)


@dataclass
class ChunkValidation:
    is_valid: bool = True
    total_chunks: int = 0
    oversized_chunks: list[dict] = field(default_factory=list)
    max_tokens_used: int = 0
    total_tokens_estimated: int = 0


def validate_chunks(chunks: List[Chunk], max_tokens: int = MAX_TOKENS_PER_CHUNK) -> ChunkValidation:
    """Check every chunk's token estimate against the model limit."""
    result = ChunkValidation(total_chunks=len(chunks))
    for chunk in chunks:
        tokens = estimate_token_count(chunk.text)
        result.total_tokens_estimated += tokens
        if tokens > max_tokens:
            result.is_valid = False
            result.oversized_chunks.append({
                "seq": chunk.seq,
                "estimated_tokens": tokens,
                "max_tokens": max_tokens,
            })
        result.max_tokens_used = max(result.max_tokens_used, tokens)
    return result
