"""Gateway server — HTTP simplification service (POST /api/summarize)."""

import logging
import os
import time
from datetime import datetime, timezone
from pathlib import Path

from aiohttp import web
from dotenv import load_dotenv
from pydantic import ValidationError

load_dotenv()  # Must be before engine imports so they see .env vars

from engine.llm import available_providers, get_provider_name, is_configured as llm_is_configured, simplify as llm_simplify
from gateway.models import ChunkResult, DocumentChunk, ErrorResponse, ProcessingSummary, SummarizeRequest, SummarizeResponse

log = logging.getLogger("gateway")

PORT = int(os.getenv("PORT", "8080"))

CORS_HEADERS = {
    "Access-Control-Allow-Origin": os.getenv("CORS_ALLOW_ORIGIN", "*"),
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
    "Access-Control-Max-Age": "86400",
}

SIMPLIFY = web.AppKey("simplify")


def _json(model, status: int = 200) -> web.Response:
    return web.json_response(model.model_dump(mode="json", by_alias=True, exclude_none=True), status=status)


def error_response(status: int, error: str, details: list[str] | None = None) -> web.Response:
    return _json(ErrorResponse(error=error, details=details), status=status)


async def _add_cors_headers(request: web.Request, response: web.StreamResponse) -> None:
    response.headers.update(CORS_HEADERS)


# ── Chunk processing ──────────────────────────────────────────

async def simplify_chunk(simplify, chunk: DocumentChunk) -> ChunkResult:
    """Simplify one chunk. A failure returns the original text, never raises."""
    started = time.monotonic()
    try:
        simplified = await simplify(chunk.text)
        if not simplified or not simplified.strip():
            raise ValueError("empty response from model")
    except Exception as e:
        # Provider failures of any kind degrade this chunk only
        log.error("Error processing chunk %s: %s", chunk.id, e)
        return ChunkResult(
            id=chunk.id,
            seq=chunk.seq,
            start=chunk.start,
            end=chunk.end,
            original_token_estimate=chunk.token_estimate,
            original_text=chunk.text,
            simplified_text=chunk.text,
            simplification_ratio=1.0,
            reading_level="original",
            error="Simplification failed",
            processed_at=datetime.now(timezone.utc),
            processing_time_ms=(time.monotonic() - started) * 1000,
        )

    return ChunkResult(
        id=chunk.id,
        seq=chunk.seq,
        start=chunk.start,
        end=chunk.end,
        original_token_estimate=chunk.token_estimate,
        original_text=chunk.text,
        simplified_text=simplified,
        simplification_ratio=len(simplified) / len(chunk.text),
        reading_level="accessible",
        processed_at=datetime.now(timezone.utc),
        processing_time_ms=(time.monotonic() - started) * 1000,
    )


# ── HTTP routes ───────────────────────────────────────────────

async def handle_summarize(request: web.Request) -> web.Response:
    log.info("Document summarization request received")
    try:
        body = await request.json()
    except ValueError:
        log.warning("Error parsing JSON request body")
        return error_response(400, "Invalid JSON in request body")
    if body is None:
        return error_response(400, "Invalid request body")

    try:
        req = SummarizeRequest.model_validate(body)
    except ValidationError as e:
        details = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
        log.warning("Request validation failed: %s", ", ".join(details))
        return error_response(400, "Invalid input", details)

    problems = req.problems()
    if problems:
        log.warning("Request validation failed: %s", ", ".join(problems))
        return error_response(400, "Invalid input", problems)

    log.info("Processing document %s with %d chunks", req.doc_id, len(req.chunks))
    try:
        simplify = request.app[SIMPLIFY]
        results = []
        # One model call in flight per document
        for chunk in req.chunks:
            log.debug("Processing chunk %s (seq: %d)", chunk.id, chunk.seq)
            results.append(await simplify_chunk(simplify, chunk))

        response = SummarizeResponse(
            doc_id=req.doc_id,
            processed_at=datetime.now(timezone.utc),
            options=req.options,
            summary=ProcessingSummary(
                total_chunks=len(req.chunks),
                total_tokens_estimate=sum(c.token_estimate for c in req.chunks),
            ),
            chunks=results,
        )
    except Exception:
        log.exception("Error processing document summarization request")
        return error_response(500, "Internal server error")

    failed = sum(1 for r in results if r.error)
    log.info("Successfully processed document %s (%d/%d chunks simplified)",
             req.doc_id, len(results) - failed, len(results))
    return _json(response)


async def handle_preflight(request: web.Request) -> web.Response:
    return web.Response(status=200)


async def handle_health(request: web.Request) -> web.Response:
    return web.json_response({
        "status": "ok",
        "provider": get_provider_name(),
        "configured": llm_is_configured(),
        "providers": available_providers(),
    })


# ── App setup ─────────────────────────────────────────────────

def create_app(simplify=None) -> web.Application:
    """Build the application. `simplify` overrides the model call (async str -> str)."""
    app = web.Application()
    app[SIMPLIFY] = simplify or llm_simplify
    app.on_response_prepare.append(_add_cors_headers)
    app.router.add_post("/api/summarize", handle_summarize)
    app.router.add_route("OPTIONS", "/api/summarize", handle_preflight)
    app.router.add_get("/health", handle_health)
    return app


LOG_DIR = Path(__file__).resolve().parent.parent / "logs"


if __name__ == "__main__":
    LOG_DIR.mkdir(exist_ok=True)
    log_file = LOG_DIR / "server.log"

    fmt = logging.Formatter("%(asctime)s %(name)-12s %(levelname)-8s %(message)s")

    console = logging.StreamHandler()
    console.setLevel(logging.INFO)
    console.setFormatter(fmt)

    filelog = logging.FileHandler(log_file)
    filelog.setLevel(logging.INFO)
    filelog.setFormatter(fmt)

    logging.basicConfig(level=logging.INFO, handlers=[console, filelog])

    # Silence HTTP client internals of the model SDKs
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    log.info("Logging to %s", log_file)
    log.info("Simplifier provider: %s (configured=%s)", get_provider_name(), llm_is_configured())

    app = create_app()
    log.info("Serving on http://0.0.0.0:%d", PORT)
    web.run_app(app, host="0.0.0.0", port=PORT)
