"""Settings for the ReadAble reader.

Uses pydantic-settings to load from the project's .env file,
with type validation and defaults for a local simplification service.
"""

from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Simplification service
    api_base_url: str = "http://localhost:8080/api"
    request_timeout: float = 120.0

    # Chunking (characters)
    max_chunk_size: int = 450_000
    min_chunk_size: int = 100_000
    overlap_size: int = 5_000
    max_tokens_per_chunk: int = 120_000
    preserve_paragraphs: bool = True

    # Document extraction
    ocr_images: bool = True

    # Speech (seconds / words per minute)
    seek_restart_delay: float = 0.1
    rate_settle_delay: float = 0.05
    voice_settle_delay: float = 0.1
    base_words_per_minute: int = 180

    preferences_path: str = str(Path.home() / ".readable" / "preferences.json")

    model_config = {
        "env_file": str(Path(__file__).resolve().parent.parent / ".env"),
        "env_prefix": "READABLE_",
        "extra": "ignore",
    }


settings = Settings()
