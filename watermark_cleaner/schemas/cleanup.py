"""Pydantic models and enums describing a cleanup run."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from watermark_cleaner.core.config import Settings


class MediaKind(str, Enum):
    """Container families the pipeline knows how to rebuild."""

    image = "image"
    document = "document"
    video = "video"


class IntensityTier(str, Enum):
    """Aggressiveness of the pixel classifier."""

    light = "light"
    medium = "medium"
    aggressive = "aggressive"


class ColorMode(str, Enum):
    """Hue family targeted by the pixel classifier."""

    gray = "gray"
    red = "red"
    blue = "blue"
    green = "green"
    yellow = "yellow"
    all = "all"


class RetryPolicy(BaseModel):
    """Bounded retry with exponential backoff, applied per provider."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, ge=1, description="Total attempts per provider, first call included.")
    initial_backoff: float = Field(default=1.0, ge=0.0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)
    max_backoff: float = Field(default=8.0, ge=0.0)

    def delays(self) -> list[float]:
        """Sleep before attempt 2, 3, ... max_attempts."""

        schedule: list[float] = []
        delay = self.initial_backoff
        for _ in range(self.max_attempts - 1):
            schedule.append(min(delay, self.max_backoff))
            delay *= self.backoff_multiplier
        return schedule

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.RETRY_MAX_ATTEMPTS,
            initial_backoff=settings.RETRY_INITIAL_BACKOFF_SECONDS,
            backoff_multiplier=settings.RETRY_BACKOFF_MULTIPLIER,
            max_backoff=settings.RETRY_MAX_BACKOFF_SECONDS,
        )


class CleanupConfig(BaseModel):
    """Per-request overrides for a cleanup run. Unset fields fall back to settings."""

    color_mode: ColorMode | None = Field(default=None, description="Hue family to target.")
    intensity: IntensityTier | None = Field(default=None, description="Classifier aggressiveness.")
    providers: list[str] | None = Field(
        default=None,
        description="Provider names in priority order (replicate, iopaint, clipdrop). Empty list means local only.",
    )
    dilation_radius: int | None = Field(default=None, ge=0, le=16)
    concurrency: int | None = Field(default=None, ge=1, le=32)
    chunk_max_bytes: int | None = Field(default=None, ge=1)
    chunk_max_pages: int | None = Field(default=None, ge=1)
    deadline_seconds: float | None = Field(default=None, gt=0.0)
    force_format: str | None = Field(default=None, description="Force image output format (PNG, JPEG, WEBP).")
    overwrite: bool = Field(default=False, description="Overwrite existing output files.")


class CleanupReport(BaseModel):
    """Summary of how each unit of a run was produced."""

    media_kind: MediaKind
    units: int = 0
    sources: dict[str, int] = Field(default_factory=dict)
    passthrough_ranges: list[tuple[int, int]] = Field(default_factory=list)
    cancelled: bool = False
    elapsed_seconds: float = 0.0

    @property
    def degraded(self) -> bool:
        """True when any unit used the local fallback or was passed through."""

        fallback = self.sources.get("local", 0) + self.sources.get("passthrough", 0)
        return bool(fallback or self.passthrough_ranges or self.cancelled)

    def summary(self) -> dict:
        payload = self.model_dump(mode="json")
        payload["degraded"] = self.degraded
        return payload
