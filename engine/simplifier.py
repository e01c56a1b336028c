"""Remote simplifier client — one batched request per document.

Core flow:
  1. Chunks are serialized into a single POST /summarize body
  2. Response chunks are matched back to input chunks by seq
  3. Any failure degrades the affected chunks to their original text

A document never fails as a whole because of a chunk. There are no retries;
the caller decides what to do with failed chunks.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import httpx

from .formatter import format_text, format_text_for_speech
from .types import Chunk, ChunkError, ProcessedChunk

log = logging.getLogger("simplifier")

DEFAULT_BASE_URL = "http://localhost:8080/api"


class SimplifierError(Exception):
    """Transport or application failure talking to the simplification service."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


@dataclass(frozen=True)
class Progress:
    current: int
    total: int
    percentage: int
    message: str


@dataclass
class ProcessingResult:
    processed_chunks: list[ProcessedChunk] = field(default_factory=list)
    errors: list[ChunkError] = field(default_factory=list)
    total_chunks: int = 0
    successful_chunks: int = 0
    elapsed_ms: float = 0.0
    summary: dict = field(default_factory=dict)

    @property
    def failed_chunks(self) -> int:
        return self.total_chunks - self.successful_chunks


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _error_message(resp: httpx.Response) -> str:
    """Build a readable message from an {error, details?, message?} body."""
    text = resp.text
    try:
        body = resp.json()
    except ValueError:
        return text
    if not isinstance(body, dict):
        return text
    message = body.get("error") or body.get("message") or text
    details = body.get("details")
    if details:
        message += ": " + ", ".join(str(d) for d in details)
    return message


def build_request(doc_id: str, chunks: list[Chunk]) -> dict:
    """Serialize chunks into the wire format of the summarize endpoint."""
    return {
        "docId": doc_id,
        "options": {},
        "chunks": [
            {
                "id": c.id,
                "seq": c.seq,
                "start": c.start,
                "end": c.end,
                "tokenEstimate": c.token_estimate,
                "text": c.text,
            }
            for c in chunks
        ],
    }


def _fallback(chunk: Chunk, error: str) -> ProcessedChunk:
    return ProcessedChunk(
        chunk=chunk,
        simplified_text=chunk.text,
        original_text=chunk.text,
        speech_text=format_text_for_speech(chunk.text),
        error=error,
        processed_at=datetime.now(timezone.utc),
        reading_level="original",
    )


class SimplifierClient:
    """Async HTTP client for the simplification service."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def summarize_url(self) -> str:
        return f"{self.base_url}/summarize"

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "SimplifierClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    # ── Health ────────────────────────────────────────────────

    async def check_health(self) -> dict:
        """Check the summarize route with an OPTIONS request."""
        client = await self._get_client()
        try:
            resp = await client.options(self.summarize_url)
        except httpx.HTTPError as e:
            raise SimplifierError(f"Health check failed: {e}") from e
        if resp.status_code not in (200, 204):
            raise SimplifierError(
                f"Health check failed: {resp.status_code} {resp.reason_phrase}",
                status=resp.status_code,
            )
        return {"status": "healthy", "message": "API is responding"}

    async def test_connection(self) -> bool:
        try:
            await self.check_health()
            return True
        except SimplifierError as e:
            log.warning("API connection test failed: %s", e)
            return False

    # ── Summarize ─────────────────────────────────────────────

    async def summarize_document(self, doc_id: str, chunks: list[Chunk]) -> dict:
        """POST all chunks in one request and return the decoded response."""
        body = build_request(doc_id, chunks)
        log.info("Summarize request: doc=%s, %d chunks, %d chars",
                 doc_id, len(chunks), sum(len(c.text) for c in chunks))

        client = await self._get_client()
        try:
            resp = await client.post(self.summarize_url, json=body)
        except httpx.HTTPError as e:
            raise SimplifierError(f"Failed to summarize document: {e}") from e

        if resp.status_code >= 400:
            raise SimplifierError(
                f"API request failed: {resp.status_code} {resp.reason_phrase} - {_error_message(resp)}",
                status=resp.status_code,
            )
        try:
            result = resp.json()
        except ValueError as e:
            raise SimplifierError("Failed to summarize document: response is not JSON") from e
        if not isinstance(result, dict) or not isinstance(result.get("chunks"), list):
            raise SimplifierError("Failed to summarize document: malformed response")
        return result

    async def process_document_chunks(
        self,
        doc_id: str,
        chunks: list[Chunk],
        on_progress: Optional[Callable[[Progress], None]] = None,
    ) -> ProcessingResult:
        """Simplify every chunk, degrading failures to the original text.

        Never raises for service failures.
        """
        if on_progress:
            on_progress(Progress(1, 1, 50, "Sending document to API..."))

        started = time.monotonic()
        try:
            result = await self.summarize_document(doc_id, chunks)
        except SimplifierError as e:
            elapsed = (time.monotonic() - started) * 1000
            log.error("Summarize failed for %s after %.0fms: %s", doc_id, elapsed, e)
            processed = [_fallback(c, str(e)) for c in chunks]
            return ProcessingResult(
                processed_chunks=processed,
                errors=[ChunkError(c.seq, c.id, str(e)) for c in chunks],
                total_chunks=len(chunks),
                successful_chunks=0,
                elapsed_ms=elapsed,
            )

        elapsed = (time.monotonic() - started) * 1000
        if on_progress:
            on_progress(Progress(1, 1, 100, "Processing complete"))

        by_seq = {}
        for item in result["chunks"]:
            if isinstance(item, dict) and isinstance(item.get("seq"), int):
                by_seq[item["seq"]] = item

        processed: list[ProcessedChunk] = []
        for chunk in chunks:
            item = by_seq.get(chunk.seq)
            if item is None:
                processed.append(_fallback(chunk, "Missing from service response"))
                continue
            processed.append(self._to_processed(chunk, item))

        errors = [ChunkError(pc.seq, pc.chunk.id, pc.error) for pc in processed if pc.failed]
        outcome = ProcessingResult(
            processed_chunks=processed,
            errors=errors,
            total_chunks=len(chunks),
            successful_chunks=len(processed) - len(errors),
            elapsed_ms=elapsed,
            summary=result.get("summary") or {},
        )
        log.info("Summarize done: doc=%s, %d/%d chunks ok, %.0fms",
                 doc_id, outcome.successful_chunks, outcome.total_chunks, elapsed)
        return outcome

    @staticmethod
    def _to_processed(chunk: Chunk, item: dict) -> ProcessedChunk:
        error = item.get("error") or None
        simplified = item.get("simplifiedText") or ""
        original = item.get("originalText") or chunk.text
        if error or not simplified:
            simplified = chunk.text

        processed_at = _parse_timestamp(item.get("processedAt"))
        processing_ms = float(item.get("processingTimeMs") or 0.0)

        return ProcessedChunk(
            chunk=chunk,
            simplified_text=format_text(simplified),
            original_text=format_text(original),
            speech_text=format_text_for_speech(simplified),
            error=str(error) if error else None,
            processed_at=processed_at,
            processing_time_ms=processing_ms,
            simplification_ratio=float(item.get("simplificationRatio") or 1.0),
            reading_level=str(item.get("readingLevel") or ""),
        )
