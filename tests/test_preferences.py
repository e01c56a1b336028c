"""Tests for reader preferences and their stores."""

import json

from engine.preferences import (
    JsonFileSettingsStore,
    MemorySettingsStore,
    ReaderPreferences,
    load_preferences,
    playback_rate,
    reset_preferences,
    save_preferences,
    text_styles,
    validate_preferences,
)


class TestDefaults:
    def test_dyslexia_friendly_defaults(self):
        prefs = ReaderPreferences()
        assert prefs.font == "OpenDyslexic"
        assert text_styles(prefs) == {
            "font_family": '"OpenDyslexic", "Arial", sans-serif',
            "font_size": "18px",
            "line_height": "1.5",
            "letter_spacing": "0em",
        }
        assert prefs.highlight_while_reading is True
        assert validate_preferences(prefs) == []


class TestLoadSave:
    """Tests for loading and saving through a store."""

    def test_empty_store_gives_defaults(self):
        assert load_preferences(MemorySettingsStore()) == ReaderPreferences()

    def test_round_trip(self):
        store = MemorySettingsStore()
        save_preferences(store, ReaderPreferences(font="Verdana", slow_speech=True))
        prefs = load_preferences(store)
        assert prefs.font == "Verdana"
        assert prefs.slow_speech is True

    def test_string_booleans_coerced(self):
        store = MemorySettingsStore({"large_buttons": "false", "slow_speech": "true"})
        prefs = load_preferences(store)
        assert prefs.large_buttons is False
        assert prefs.slow_speech is True

    def test_unknown_keys_ignored(self):
        store = MemorySettingsStore({"theme": "dark", "font": "Tahoma"})
        assert load_preferences(store).font == "Tahoma"

    def test_reset(self):
        store = MemorySettingsStore({"font": "Arial"})
        assert reset_preferences(store) == ReaderPreferences()
        assert store.load() == {}


class TestJsonFileStore:
    def test_persists_to_disk(self, tmp_path):
        path = tmp_path / "nested" / "prefs.json"
        store = JsonFileSettingsStore(path)
        save_preferences(store, ReaderPreferences(voice_type="male"))
        assert json.loads(path.read_text())["voice_type"] == "male"
        assert load_preferences(JsonFileSettingsStore(path)).voice_type == "male"

    def test_missing_file(self, tmp_path):
        assert JsonFileSettingsStore(tmp_path / "none.json").load() == {}

    def test_broken_file(self, tmp_path):
        path = tmp_path / "prefs.json"
        path.write_text("{not json")
        assert load_preferences(JsonFileSettingsStore(path)) == ReaderPreferences()

    def test_clear(self, tmp_path):
        path = tmp_path / "prefs.json"
        store = JsonFileSettingsStore(path)
        store.save({"font": "Arial"})
        store.clear()
        assert not path.exists()
        store.clear()


class TestHelpers:
    def test_validate_flags_small_font(self):
        tips = validate_preferences(ReaderPreferences(font_size="small"))
        assert tips == ["Consider using a larger font size (18px minimum recommended)"]

    def test_unknown_options_fall_back(self):
        styles = text_styles(ReaderPreferences(font="Comic", line_spacing="tight"))
        assert styles["font_family"].startswith('"OpenDyslexic"')
        assert styles["line_height"] == "1.5"

    def test_playback_rate(self):
        assert playback_rate(ReaderPreferences()) == 1.0
        assert playback_rate(ReaderPreferences(slow_speech=True)) == 0.8
