"""Application configuration and settings management."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Strongly typed application configuration."""

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "Watermark Cleaner"
    APP_VERSION: str = "0.1.0"
    DESCRIPTION: str = (
        "Worker that detects watermark overlays in images, paginated documents "
        "and videos and produces cleaned replacements."
    )
    ENVIRONMENT: Literal["development", "staging", "production"] = "development"

    API_PREFIX: str = "/api"
    API_V1_PREFIX: str = "/v1"

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    WORK_DIR: Path = Path.cwd()
    FFMPEG_BINARY: str = "ffmpeg"

    # Classifier defaults (empirically tuned, recalibrate per corpus)
    DEFAULT_COLOR_MODE: Literal["gray", "red", "blue", "green", "yellow", "all"] = "gray"
    DEFAULT_INTENSITY: Literal["light", "medium", "aggressive"] = "medium"
    CLASSIFIER_TIER_OVERRIDES: dict[str, dict[str, int]] = {}
    CLASSIFIER_COLOR_MARGIN: int = 40
    CLASSIFIER_COLOR_MIN: int = 180
    MASK_DILATION_RADIUS: int = 1

    # Local fallback inpainting
    LOCAL_INPAINT_WINDOW: int = 5
    LOCAL_INPAINT_PASSES: int = 1

    # Remote providers, in priority order
    INPAINT_PROVIDERS: str = "auto"  # e.g. "replicate", "iopaint,clipdrop", or "auto"
    REPLICATE_API_TOKEN: str | None = None
    REPLICATE_API_URL: str = "https://api.replicate.com/v1"
    REPLICATE_MODEL_VERSION: str = "cdac78a1bec5b23c07fd29692fb70baa513ea403a39e643c48ec5edadb15fe72"
    IOPAINT_URL: str | None = None
    CLIPDROP_API_KEY: str | None = None
    CLIPDROP_API_URL: str = "https://clipdrop-api.co/cleanup/v1"
    PROVIDER_TIMEOUT_SECONDS: float = 60.0
    PROVIDER_POLL_INTERVAL_SECONDS: float = 1.0
    PROVIDER_MAX_POLLS: int = 60

    # Retry policy applied per provider
    RETRY_MAX_ATTEMPTS: int = 3
    RETRY_INITIAL_BACKOFF_SECONDS: float = 1.0
    RETRY_BACKOFF_MULTIPLIER: float = 2.0
    RETRY_MAX_BACKOFF_SECONDS: float = 8.0

    # Batching and chunking
    BATCH_CONCURRENCY: int = 2
    CHUNK_MAX_BYTES: int = 10 * 1024 * 1024
    CHUNK_MAX_PAGES: int | None = None
    CHUNK_RETRY_ATTEMPTS: int = 2
    RASTER_SCALE: float = 2.0
    VIDEO_FPS_CAP: float = 10.0
    PIPELINE_DEADLINE_SECONDS: float | None = None


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()


settings = get_settings()
