"""Tesseract OCR for images embedded in documents.

Each image is OCR'd and then classified: images yielding enough
confident text are "text-image", everything else is a "diagram" the
reader has to interpret visually.
"""

import io
import logging
from dataclasses import dataclass, field
from typing import Optional

import numpy as np
import pytesseract
from PIL import Image, UnidentifiedImageError

log = logging.getLogger("ocr")

MIN_TEXT_LENGTH = 10
MIN_CONFIDENCE = 30.0

TEXT_IMAGE = "text-image"
DIAGRAM = "diagram"
ERROR = "error"


@dataclass
class EmbeddedImage:
    """Raw image pulled out of a document."""
    blob: bytes
    content_type: str = "image/png"
    filename: str = ""


@dataclass
class ImageResult:
    type: str
    image_index: int = 0
    filename: str = ""
    content_type: str = ""
    ocr_text: str = ""
    confidence: float = 0.0
    word_count: int = 0
    description: str = ""
    error: Optional[str] = None


@dataclass
class ImageSummary:
    total_images: int = 0
    text_images: int = 0
    diagrams: int = 0
    errors: int = 0
    extracted_text: list[dict] = field(default_factory=list)
    diagram_list: list[dict] = field(default_factory=list)
    total_ocr_text: str = ""


def analyze_image_content(image: Image.Image) -> dict:
    """Brightness heuristic: text scans are mostly white with some black.

    Only a hint; classification is decided by the OCR result.
    """
    gray = np.asarray(image.convert("RGB"), dtype=np.float32).mean(axis=2)
    total = gray.size or 1
    white_ratio = float((gray > 240).sum()) / total
    black_ratio = float((gray < 50).sum()) / total
    return {
        "has_text": white_ratio > 0.4 and 0.05 < black_ratio < 0.4,
        "white_ratio": white_ratio,
        "black_ratio": black_ratio,
        "width": image.width,
        "height": image.height,
    }


def _recognize(image: Image.Image) -> tuple[str, float]:
    """Run Tesseract and return (text, mean word confidence)."""
    data = pytesseract.image_to_data(
        image,
        lang="eng",
        config="--psm 3 -c preserve_interword_spaces=1",
        output_type=pytesseract.Output.DICT,
    )
    words = []
    confidences = []
    for word, conf in zip(data.get("text", []), data.get("conf", [])):
        conf = float(conf)
        if conf < 0:
            continue
        confidences.append(conf)
        if word.strip():
            words.append(word.strip())
    text = pytesseract.image_to_string(image, lang="eng").strip() if words else ""
    confidence = float(np.mean(confidences)) if confidences else 0.0
    return text, confidence


def process_image(blob: bytes, content_type: str = "image/png") -> ImageResult:
    """OCR one image and classify it. Never raises for a bad image.

    Unreadable images come back as "error", OCR failures as "diagram".
    """
    result = ImageResult(type=DIAGRAM, content_type=content_type)
    try:
        image = Image.open(io.BytesIO(blob))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        log.warning("Unreadable image (%s): %s", content_type, e)
        result.type = ERROR
        result.description = "Image could not be processed for text extraction"
        result.error = str(e)
        return result

    hint = analyze_image_content(image)
    log.debug("Image %dx%d, analysis suggests has_text=%s", hint["width"], hint["height"], hint["has_text"])

    try:
        text, confidence = _recognize(image)
    except (pytesseract.TesseractError, pytesseract.TesseractNotFoundError, RuntimeError) as e:
        log.error("OCR failed, treating as diagram: %s", e)
        result.description = "OCR processing failed - treating as diagram"
        result.error = str(e)
        return result

    result.ocr_text = text
    result.confidence = confidence
    result.word_count = len(text.split())

    if len(text) > MIN_TEXT_LENGTH and confidence >= MIN_CONFIDENCE:
        result.type = TEXT_IMAGE
        log.info("OCR classified image as text-image: %d chars, %.0f%% confidence", len(text), confidence)
    else:
        result.type = DIAGRAM
        result.description = "Diagram or flowchart detected"
        log.info("OCR yielded minimal text (%d chars, %.0f%%) - classified as diagram", len(text), confidence)
    return result


def process_document_images(images: list[EmbeddedImage]) -> list[ImageResult]:
    results = []
    for i, img in enumerate(images):
        log.info("Processing image %d of %d...", i + 1, len(images))
        result = process_image(img.blob, img.content_type)
        result.image_index = i
        result.filename = img.filename or f"image_{i + 1}"
        results.append(result)
    return results


def create_image_summary(results: list[ImageResult]) -> ImageSummary:
    summary = ImageSummary(total_images=len(results))
    for r in results:
        if r.type == TEXT_IMAGE and r.ocr_text:
            summary.text_images += 1
            summary.extracted_text.append({
                "index": r.image_index,
                "text": r.ocr_text,
                "confidence": r.confidence,
                "filename": r.filename,
            })
            summary.total_ocr_text += r.ocr_text + "\n\n"
        elif r.type == DIAGRAM:
            summary.diagrams += 1
            summary.diagram_list.append({
                "index": r.image_index,
                "description": r.description or "Diagram detected",
                "filename": r.filename,
            })
        elif r.type == ERROR:
            summary.errors += 1
    summary.total_ocr_text = summary.total_ocr_text.strip()
    return summary
