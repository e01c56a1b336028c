"""Document pipeline — file in, simplified readable text out.

Core flow:
  1. Check the simplification service is reachable
  2. Extract text (txt / docx / pdf, OCR for embedded images)
  3. Chunk and validate against the model token limit
  4. Send all chunks in one request, failed chunks keep their original text
  5. Recombine into display, speech and original texts
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from engine.chunker import chunk_text, validate_chunks
from engine.extractor import ExtractionError, ExtractionResult, extract_document
from engine.recombiner import recombine
from engine.simplifier import ProcessingResult, Progress, SimplifierClient
from engine.types import CombinedResult

from .config import Settings

log = logging.getLogger("pipeline")

_UNSAFE_RE = re.compile(r"[^a-zA-Z0-9]")

# Stage names reported to on_progress
CONNECTING = "connecting"
EXTRACTING = "extracting"
CHUNKING = "chunking"
PROCESSING = "processing"
COMBINING = "combining"

StageCallback = Callable[[str, str], None]


class PipelineError(Exception):
    """A stage failed in a way the reader has to act on."""

    def __init__(self, stage: str, message: str):
        super().__init__(message)
        self.stage = stage


@dataclass
class PipelineResult:
    doc_id: str
    combined: CombinedResult
    processing: ProcessingResult
    extraction: ExtractionResult


def make_doc_id(filename: str, now_ms: Optional[int] = None) -> str:
    """doc_<epoch ms>_<file name with anything but [A-Za-z0-9] replaced by _>."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"doc_{now_ms}_{_UNSAFE_RE.sub('_', filename)}"


class DocumentPipeline:
    """Runs one document through extraction, simplification and recombination."""

    def __init__(self, settings: Settings, client: Optional[SimplifierClient] = None) -> None:
        self.settings = settings
        self._owns_client = client is None
        self.client = client or SimplifierClient(
            base_url=settings.api_base_url,
            timeout=settings.request_timeout,
        )

    async def close(self) -> None:
        if self._owns_client:
            await self.client.close()

    async def process_file(self, path, on_progress: Optional[StageCallback] = None) -> PipelineResult:
        path = Path(path)
        try:
            data = path.read_bytes()
        except OSError as e:
            raise PipelineError(EXTRACTING, f"Failed to read file: {e}") from e
        return await self.process_bytes(data, path.name, on_progress)

    async def process_bytes(
        self,
        data: bytes,
        filename: str,
        on_progress: Optional[StageCallback] = None,
    ) -> PipelineResult:
        def report(stage: str, message: str) -> None:
            log.info("[%s] %s", stage, message)
            if on_progress:
                on_progress(stage, message)

        report(CONNECTING, "Testing API connection...")
        if not await self.client.test_connection():
            raise PipelineError(
                CONNECTING,
                "Cannot connect to the API. Please check if the backend is running.",
            )

        report(EXTRACTING, f"Extracting text from {filename}...")
        try:
            extraction = extract_document(data, filename, ocr_images=self.settings.ocr_images)
        except ExtractionError as e:
            raise PipelineError(EXTRACTING, str(e)) from e
        if not extraction.text.strip():
            raise PipelineError(EXTRACTING, "No text could be extracted from the document.")

        report(CHUNKING, f"Chunking {len(extraction.text)} characters...")
        chunks = chunk_text(
            extraction.text,
            max_chunk_size=self.settings.max_chunk_size,
            min_chunk_size=self.settings.min_chunk_size,
            overlap_size=self.settings.overlap_size,
            preserve_paragraphs=self.settings.preserve_paragraphs,
        )
        validation = validate_chunks(chunks, self.settings.max_tokens_per_chunk)
        if not validation.is_valid:
            log.warning("Some chunks exceed the token limit: %s", validation.oversized_chunks)

        doc_id = make_doc_id(filename)

        def forward(progress: Progress) -> None:
            report(PROCESSING, progress.message)

        report(PROCESSING, f"Simplifying {len(chunks)} chunks...")
        processing = await self.client.process_document_chunks(doc_id, chunks, on_progress=forward)

        report(COMBINING, "Combining results...")
        combined = recombine(processing.processed_chunks, source_text=extraction.text)
        log.info("Document %s ready: %d words, %d/%d chunks simplified",
                 doc_id, combined.stats.word_count,
                 combined.stats.successful_chunks, combined.stats.total_chunks)
        return PipelineResult(
            doc_id=doc_id,
            combined=combined,
            processing=processing,
            extraction=extraction,
        )
