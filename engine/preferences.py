"""Reader preferences — dyslexia-friendly display and speech defaults.

Preferences are flat key/value pairs so any store that can persist a dict
(memory, a JSON file) can hold them.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, fields
from pathlib import Path

log = logging.getLogger("preferences")

# Sans-serif only
DYSLEXIA_FONTS = {
    "OpenDyslexic": '"OpenDyslexic", "Arial", sans-serif',
    "Arial": '"Arial", sans-serif',
    "Verdana": '"Verdana", sans-serif',
    "Tahoma": '"Tahoma", sans-serif',
    "Calibri": '"Calibri", sans-serif',
}

FONT_SIZES = {
    "normal": {"size": "18px", "name": "Normal (18px)"},
    "large": {"size": "20px", "name": "Large (20px)"},
    "xl": {"size": "24px", "name": "Extra Large (24px)"},
    "2xl": {"size": "30px", "name": "Very Large (30px)"},
}

LINE_SPACING = {
    "comfortable": {"value": "1.5", "name": "Comfortable (1.5x)"},
    "relaxed": {"value": "1.75", "name": "Relaxed (1.75x)"},
    "loose": {"value": "2", "name": "Loose (2x)"},
}

LETTER_SPACING = {
    "normal": {"value": "0em", "name": "Normal"},
    "wide": {"value": "0.025em", "name": "Wide"},
    "wider": {"value": "0.05em", "name": "Wider"},
}

VOICE_TYPES = ("female", "male")

SLOW_SPEECH_RATE = 0.8


@dataclass
class ReaderPreferences:
    font: str = "OpenDyslexic"
    font_size: str = "normal"
    line_spacing: str = "comfortable"
    letter_spacing: str = "normal"
    highlight_while_reading: bool = True
    icons_with_text: bool = True
    large_buttons: bool = True
    slow_speech: bool = False
    voice_type: str = "female"


# ── Stores ────────────────────────────────────────────────────

class SettingsStore(ABC):
    """Somewhere preferences can be kept between sessions."""

    @abstractmethod
    def load(self) -> dict: ...

    @abstractmethod
    def save(self, values: dict) -> None: ...

    @abstractmethod
    def clear(self) -> None: ...


class MemorySettingsStore(SettingsStore):
    def __init__(self, values: dict | None = None) -> None:
        self._values = dict(values or {})

    def load(self) -> dict:
        return dict(self._values)

    def save(self, values: dict) -> None:
        self._values.update(values)

    def clear(self) -> None:
        self._values.clear()


class JsonFileSettingsStore(SettingsStore):
    """Preferences in a single JSON file. A missing or broken file reads as empty."""

    def __init__(self, path) -> None:
        self.path = Path(path).expanduser()

    def load(self) -> dict:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            log.warning("Ignoring unreadable preferences file %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def save(self, values: dict) -> None:
        data = self.load()
        data.update(values)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        log.debug("Saved preferences to %s", self.path)

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)


# ── Load / save ───────────────────────────────────────────────

def _coerce(value, default):
    if isinstance(default, bool):
        if isinstance(value, str):
            return value.strip().lower() == "true"
        return bool(value)
    return str(value)


def load_preferences(store: SettingsStore) -> ReaderPreferences:
    """Stored values over defaults. Unknown keys are ignored."""
    stored = store.load()
    defaults = ReaderPreferences()
    values = {}
    for f in fields(ReaderPreferences):
        if f.name in stored and stored[f.name] is not None:
            values[f.name] = _coerce(stored[f.name], getattr(defaults, f.name))
    return ReaderPreferences(**values)


def save_preferences(store: SettingsStore, prefs: ReaderPreferences) -> None:
    store.save(asdict(prefs))


def reset_preferences(store: SettingsStore) -> ReaderPreferences:
    store.clear()
    return ReaderPreferences()


def validate_preferences(prefs: ReaderPreferences) -> list[str]:
    """Recommendations for settings that work against readability."""
    recommendations = []
    if prefs.font_size not in FONT_SIZES:
        recommendations.append("Consider using a larger font size (18px minimum recommended)")
    if prefs.font not in DYSLEXIA_FONTS:
        recommendations.append(
            f"'{prefs.font}' is not a recommended font. Try OpenDyslexic, Arial or Verdana."
        )
    if prefs.line_spacing not in LINE_SPACING:
        recommendations.append("Use at least 1.5x line spacing")
    if prefs.voice_type not in VOICE_TYPES:
        recommendations.append("Voice type should be 'female' or 'male'")
    return recommendations


def text_styles(prefs: ReaderPreferences) -> dict:
    """Resolved style values; unknown options fall back to the defaults."""
    font = DYSLEXIA_FONTS.get(prefs.font, DYSLEXIA_FONTS["OpenDyslexic"])
    size = FONT_SIZES.get(prefs.font_size, FONT_SIZES["normal"])
    line = LINE_SPACING.get(prefs.line_spacing, LINE_SPACING["comfortable"])
    letter = LETTER_SPACING.get(prefs.letter_spacing, LETTER_SPACING["normal"])
    return {
        "font_family": font,
        "font_size": size["size"],
        "line_height": line["value"],
        "letter_spacing": letter["value"],
    }


def playback_rate(prefs: ReaderPreferences) -> float:
    return SLOW_SPEECH_RATE if prefs.slow_speech else 1.0
