"""Wire models for the summarize endpoint (camelCase JSON)."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DocumentChunk(_CamelModel):
    id: str = ""
    seq: int = 0
    start: int = 0
    end: int = 0
    token_estimate: int = 0
    text: str = ""


class SummarizeRequest(_CamelModel):
    doc_id: str = ""
    options: Optional[dict] = None
    chunks: list[DocumentChunk] = Field(default_factory=list)

    def problems(self) -> list[str]:
        """Human-readable validation failures; empty when the request is usable."""
        errors = []
        if not self.doc_id.strip():
            errors.append("DocId is required")
        if not self.chunks:
            errors.append("At least one chunk is required")
        for i, chunk in enumerate(self.chunks):
            if not chunk.id.strip():
                errors.append(f"Chunk[{i}].Id is required")
            if not chunk.text.strip():
                errors.append(f"Chunk[{i}].Text is required")
            if chunk.token_estimate <= 0:
                errors.append(f"Chunk[{i}].TokenEstimate must be greater than 0")
        return errors


class ChunkResult(_CamelModel):
    id: str
    seq: int
    start: int
    end: int
    original_token_estimate: int
    original_text: str
    simplified_text: str
    simplification_ratio: float
    reading_level: str
    processed_at: datetime
    processing_time_ms: float = 0.0
    error: Optional[str] = None


class ProcessingSummary(_CamelModel):
    total_chunks: int
    total_tokens_estimate: int


class SummarizeResponse(_CamelModel):
    doc_id: str
    processed_at: datetime
    options: Optional[dict] = None
    summary: ProcessingSummary
    chunks: list[ChunkResult]


class ErrorResponse(_CamelModel):
    error: str
    details: Optional[list[str]] = None
    message: str = "Failed to process document"
