"""Process-wide job store shared by the API and the local worker."""

from __future__ import annotations

from typing import Optional

from watermark_cleaner.core.config import Settings, get_settings
from watermark_cleaner.services.job_service import JobService

_job_service: Optional[JobService] = None


def get_job_service_instance(settings: Settings | None = None) -> JobService:
    global _job_service
    if _job_service is None:
        _job_service = JobService(settings=settings or get_settings())
    return _job_service


def reset_job_service_instance() -> None:
    """Forget the shared store so the next call re-reads settings."""

    global _job_service
    _job_service = None
