"""Pydantic models for job-related payloads."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import AnyUrl, BaseModel, Field, model_validator

from watermark_cleaner.schemas.cleanup import CleanupConfig, MediaKind


class JobStatus(str, Enum):
    """Lifecycle state of a processing job."""

    queued = "queued"
    processing = "processing"
    completed = "completed"
    failed = "failed"


class JobBase(BaseModel):
    """Common data shared across job schemas."""

    source_uri: AnyUrl | Path = Field(..., description="Location of the source media (URL or local path).")
    target_uri: AnyUrl | Path = Field(..., description="Destination where the cleaned media will be saved.")
    media_kind: MediaKind | None = Field(default=None, description="Declared media kind; sniffed when omitted.")
    metadata: Dict[str, Any] | None = Field(default=None, description="Optional job-specific metadata payload.")
    cleanup_config: CleanupConfig | None = Field(default=None, description="Per-job cleanup overrides.")


class JobCreate(JobBase):
    """Schema for requests that create a new job."""

    priority: int = Field(default=5, ge=1, le=10, description="Higher numbers receive more attention from workers.")


class JobRead(JobBase):
    """Schema representing the stored state of a job."""

    id: UUID
    status: JobStatus
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    progress: float | None = Field(default=None, ge=0.0, le=1.0)
    error: Optional[str] = None
    result_path: Optional[str] = None
    report: Dict[str, Any] | None = None


class JobUpdate(BaseModel):
    """Schema for worker-driven job updates."""

    status: Optional[JobStatus] = None
    progress: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    error: Optional[str] = None
    result_path: Optional[str] = None
    report: Dict[str, Any] | None = None

    @model_validator(mode="after")
    def validate_payload(self) -> "JobUpdate":
        if all(
            value is None
            for value in (self.status, self.progress, self.error, self.result_path, self.report)
        ):
            raise ValueError("At least one field must be provided when updating a job.")
        return self
