"""Recombiner — reassembles processed chunks into whole-document texts."""

import logging
from typing import Iterable, Optional

from .chunker import count_words
from .formatter import format_text, format_text_for_speech, strip_wrapping_quotes
from .types import ChunkError, CombinedResult, CombinedStats, ProcessedChunk

log = logging.getLogger("recombiner")


def recombine(
    processed_chunks: Iterable[ProcessedChunk],
    source_text: Optional[str] = None,
) -> CombinedResult:
    """Build display, speech and original texts from processed chunks.

    Responses can arrive in any order, so chunks are always sorted by their
    sequence index first. The input is never mutated.

    Args:
        processed_chunks: Chunks in arbitrary order.
        source_text: Extracted document text, used for the word count.
            Falls back to the recombined original text.
    """
    ordered = sorted(processed_chunks, key=lambda pc: pc.seq)
    if not ordered:
        return CombinedResult(stats=CombinedStats(word_count=count_words(source_text or "")))

    display = "\n\n".join(
        strip_wrapping_quotes(pc.simplified_text or pc.chunk.text) for pc in ordered
    )
    speech = " ".join(
        pc.speech_text or format_text_for_speech(pc.simplified_text or pc.chunk.text)
        for pc in ordered
    )
    original = "\n\n".join(
        strip_wrapping_quotes(pc.original_text or pc.chunk.text) for pc in ordered
    )

    errors = [ChunkError(pc.seq, pc.chunk.id, pc.error) for pc in ordered if pc.failed]
    original_text = format_text(original.strip())

    stats = CombinedStats(
        word_count=count_words(source_text if source_text is not None else original_text),
        total_chunks=len(ordered),
        successful_chunks=len(ordered) - len(errors),
        failed_chunks=len(errors),
        errors=errors,
    )
    log.debug("Recombined %d chunks (%d failed)", stats.total_chunks, stats.failed_chunks)

    return CombinedResult(
        display_text=format_text(display.strip()),
        speech_text=format_text_for_speech(speech.strip()),
        original_text=original_text,
        stats=stats,
    )
