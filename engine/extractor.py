"""Document text extraction — plain text, Word (.docx) and PDF.

Every failure a reader can fix (empty file, wrong format, too large,
password-protected) raises ExtractionError with a message that says what
to do next. Images embedded in Word documents are OCR'd and their text is
appended after the body.
"""

import io
import logging
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import pdfplumber
from docx import Document
from docx.opc.constants import RELATIONSHIP_TYPE as RT
from docx.opc.exceptions import PackageNotFoundError

from .ocr import EmbeddedImage, ImageSummary, create_image_summary, process_document_images

log = logging.getLogger("extractor")

DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
MAX_DOCX_BYTES = 50 * 1024 * 1024
MAX_PDF_BYTES = 100 * 1024 * 1024

ZIP_SIGNATURES = (b"PK\x03\x04", b"PK\x05\x06", b"PK\x07\x08")
PDF_SIGNATURE = b"%PDF"


class ExtractionError(ValueError):
    """The document could not be read; the message tells the reader why."""


@dataclass
class ExtractionResult:
    text: str
    file_type: str
    images: Optional[ImageSummary] = None


def _kind(filename: str, content_type: str = "") -> str:
    name = filename.lower()
    ctype = content_type.lower()
    if ctype == "text/plain" or name.endswith(".txt"):
        return "txt"
    if ctype == DOCX_MIME or name.endswith(".docx"):
        return "docx"
    if ctype == "application/pdf" or name.endswith(".pdf"):
        return "pdf"
    if ctype == "application/msword" or name.endswith(".doc"):
        return "doc"
    return ""


def is_file_type_supported(filename: str, size: int = -1, content_type: str = "") -> bool:
    kind = _kind(filename, content_type)
    if kind == "txt":
        return True
    if kind in ("docx", "pdf"):
        return size != 0
    return False


def describe_file_type(filename: str, content_type: str = "") -> str:
    return {
        "txt": "Text file",
        "pdf": "PDF document",
        "docx": "Word document (DOCX)",
        "doc": "Word document (DOC)",
    }.get(_kind(filename, content_type), "Unknown file type")


# ── Plain text ────────────────────────────────────────────────

def _extract_txt(data: bytes) -> str:
    return data.decode("utf-8-sig", errors="replace")


# ── Word ──────────────────────────────────────────────────────

def _docx_images(doc) -> list[EmbeddedImage]:
    images = []
    for rel in doc.part.rels.values():
        if rel.is_external or rel.reltype != RT.IMAGE:
            continue
        part = rel.target_part
        images.append(EmbeddedImage(
            blob=part.blob,
            content_type=part.content_type or "image/png",
            filename=Path(str(part.partname)).name,
        ))
    return images


def _extract_docx(data: bytes, with_images: bool = True) -> ExtractionResult:
    if len(data) == 0:
        raise ExtractionError("The Word document appears to be empty or corrupted.")
    if len(data) > MAX_DOCX_BYTES:
        raise ExtractionError("Word document is too large. Please use a smaller file (under 50MB).")
    if not data.startswith(ZIP_SIGNATURES):
        raise ExtractionError(
            "This does not appear to be a valid Word document (.docx). Please check the file format."
        )

    try:
        doc = Document(io.BytesIO(data))
    except (zipfile.BadZipFile, PackageNotFoundError) as e:
        raise ExtractionError(
            "The Word document appears to be corrupted or is not a valid .docx file. "
            "Please try saving the document again or use a different file."
        ) from e
    except KeyError as e:
        raise ExtractionError(
            "Invalid Word document format. Please ensure the file is a valid .docx document."
        ) from e

    paragraphs = [p.text for p in doc.paragraphs]
    for table in doc.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if cells:
                paragraphs.append(" | ".join(cells))
    text = "\n\n".join(p.strip() for p in paragraphs if p.strip())

    summary = None
    if with_images:
        images = _docx_images(doc)
        if images:
            summary = create_image_summary(process_document_images(images))
            log.info("Word document images: %d total, %d with text, %d diagrams",
                     summary.total_images, summary.text_images, summary.diagrams)
            if summary.total_ocr_text:
                text = f"{text}\n\n{summary.total_ocr_text}" if text else summary.total_ocr_text

    if not text.strip():
        raise ExtractionError(
            "No text content could be extracted from this Word document. "
            "The document might be empty or contain only images/tables."
        )
    return ExtractionResult(text=text, file_type="docx", images=summary)


# ── PDF ───────────────────────────────────────────────────────

def _extract_pdf(data: bytes) -> str:
    if len(data) == 0:
        raise ExtractionError("The PDF document appears to be empty or corrupted.")
    if len(data) > MAX_PDF_BYTES:
        raise ExtractionError("PDF document is too large. Please use a smaller file (under 100MB).")
    if not data.startswith(PDF_SIGNATURE):
        raise ExtractionError(
            "This does not appear to be a valid PDF document. Please check the file format."
        )

    pages = []
    try:
        with pdfplumber.open(io.BytesIO(data)) as pdf:
            log.info("PDF loaded: %d pages", len(pdf.pages))
            for number, page in enumerate(pdf.pages, 1):
                page_text = (page.extract_text() or "").strip()
                if page_text:
                    pages.append(page_text)
                else:
                    log.debug("No text on page %d", number)
    except Exception as e:
        # pdfplumber surfaces pdfminer failures under several exception types
        message = f"{type(e).__name__}: {e}".lower()
        if "password" in message:
            raise ExtractionError(
                "This PDF appears to be password-protected. Please use an unprotected PDF file."
            ) from e
        if "encrypt" in message:
            raise ExtractionError(
                "This PDF is encrypted and cannot be processed. Please use an unencrypted PDF file."
            ) from e
        raise ExtractionError(
            "Invalid or corrupted PDF file. Please ensure the file is a valid PDF document."
        ) from e

    text = "\n\n".join(pages)
    if not text:
        raise ExtractionError(
            "No text content could be extracted from this PDF. The document might be "
            "image-based, password-protected, or contain only images/graphics."
        )
    log.info("PDF extraction successful: %d characters", len(text))
    return text


# ── Entry points ──────────────────────────────────────────────

def extract_document(data: bytes, filename: str, content_type: str = "", ocr_images: bool = True) -> ExtractionResult:
    """Extract text from an in-memory document.

    Raises:
        ExtractionError: unsupported, malformed, empty or oversized input.
    """
    kind = _kind(filename, content_type)
    if kind == "txt":
        text = _extract_txt(data)
        if not text.strip():
            raise ExtractionError("The text file is empty.")
        return ExtractionResult(text=text, file_type="txt")
    if kind == "docx":
        return _extract_docx(data, with_images=ocr_images)
    if kind == "pdf":
        return ExtractionResult(text=_extract_pdf(data), file_type="pdf")
    if kind == "doc":
        raise ExtractionError(
            "Legacy Word document (.doc) extraction is not supported. "
            "Please save as .docx format or use text files."
        )
    raise ExtractionError(
        "Unsupported file type. Please use text files (.txt), "
        "Word documents (.docx), or PDF files (.pdf)."
    )


def extract_file(path, ocr_images: bool = True) -> ExtractionResult:
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise ExtractionError(f"Failed to read file: {e}") from e
    return extract_document(data, path.name, ocr_images=ocr_images)
