"""Text formatting for model output — display and speech variants.

Model output arrives JSON-serialized: wrapped in quotes, with escape
sequences left in place. Both formatters decode those first.
"""

import math
import re
from dataclasses import dataclass

_UNICODE_ESCAPE_RE = re.compile(r"\\u([0-9A-Fa-f]{4})")
_MULTI_BREAK_RE = re.compile(r"\n\s*\n\s*\n")
_PARAGRAPH_RE = re.compile(r"\n\n+")
_MULTI_PERIOD_RE = re.compile(r"\.{2,}")
_SPACED_PERIODS_RE = re.compile(r"\.\s*\.")
_MULTI_SPACE_RE = re.compile(r"\s{2,}")


def strip_wrapping_quotes(text: str) -> str:
    """Remove one pair of surrounding double quotes."""
    stripped = text.strip()
    if len(stripped) >= 2 and stripped[0] == '"' and stripped[-1] == '"':
        return stripped[1:-1]
    return text


def _decode_escapes(text: str, tab: str) -> str:
    text = _UNICODE_ESCAPE_RE.sub(lambda m: chr(int(m.group(1), 16)), text)
    return (
        text.replace("\\r\\n", "\n")
        .replace("\\n", "\n")
        .replace("\\t", tab)
        .replace("\\r", "\n")
        .replace("\\'", "'")
        .replace('\\"', '"')
        .replace("\\\\", "\\")
        .replace("\\&", "&")
    )


def format_text(text) -> str:
    """Decode model output for display, keeping paragraph breaks."""
    if not text or not isinstance(text, str):
        return ""
    text = _decode_escapes(strip_wrapping_quotes(text), tab="    ")
    return _MULTI_BREAK_RE.sub("\n\n", text).strip()


def format_text_for_speech(text) -> str:
    """Decode model output for a speech engine.

    Line breaks become sentence pauses so the engine's prosody reads
    paragraphs naturally.
    """
    if not text or not isinstance(text, str):
        return ""
    text = _decode_escapes(strip_wrapping_quotes(text), tab=" ")
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _PARAGRAPH_RE.sub(". ", text)
    text = text.replace("\n", ". ")
    text = _MULTI_PERIOD_RE.sub(".", text)
    text = _SPACED_PERIODS_RE.sub(".", text)
    text = _MULTI_SPACE_RE.sub(" ", text)
    return text.strip()


def split_words(text: str) -> list[str]:
    """Whitespace-delimited words; the index space used for highlighting."""
    if not text:
        return []
    return text.split()


@dataclass(frozen=True)
class ReadingTime:
    minutes: int
    seconds: int
    total_seconds: int
    word_count: int


def estimate_reading_time(text: str, words_per_minute: int = 200) -> ReadingTime:
    if not text or not isinstance(text, str):
        return ReadingTime(0, 0, 0, 0)
    word_count = len(split_words(format_text(text)))
    total = math.ceil(word_count / words_per_minute * 60)
    return ReadingTime(
        minutes=total // 60,
        seconds=total % 60,
        total_seconds=total,
        word_count=word_count,
    )
