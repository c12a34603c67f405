"""Worker that runs queued cleanup jobs through the pipeline."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from urllib.parse import unquote, urlparse

import requests

from watermark_cleaner.core.config import Settings
from watermark_cleaner.core.errors import PipelineStageError
from watermark_cleaner.schemas.job import JobRead, JobStatus, JobUpdate
from watermark_cleaner.services.cleanup_service import WatermarkCleanupService
from watermark_cleaner.services.job_service import JobService
from watermark_cleaner.workers.base import BaseWorker

logger = logging.getLogger(__name__)


class CleanupWorker(BaseWorker):
    """Drive a job through queued -> processing -> completed | failed."""

    def __init__(
        self,
        job_service: JobService,
        cleanup_service: WatermarkCleanupService,
        settings: Settings,
        session: requests.Session | None = None,
    ) -> None:
        self._job_service = job_service
        self._cleanup_service = cleanup_service
        self._settings = settings
        self._session = session or requests.Session()

    async def handle(self, job: JobRead) -> None:
        logger.info("Processing job %s.", job.id)
        self._job_service.update_job(job.id, JobUpdate(status=JobStatus.processing, progress=0.0))

        input_path = await asyncio.to_thread(self._fetch_source, job)
        output_path = self._resolve_path(job.target_uri)

        result_path, report = await self._cleanup_service.process_file(
            input_path=input_path,
            output_path=output_path,
            config=job.cleanup_config,
            media_kind=job.media_kind,
        )

        self._job_service.update_job(
            job.id,
            JobUpdate(
                status=JobStatus.completed,
                progress=1.0,
                result_path=str(result_path),
                report=report.summary() if report else None,
            ),
        )
        if report and report.degraded:
            logger.warning("Job %s completed degraded: %s", job.id, report.sources)

    async def on_success(self, job: JobRead) -> None:
        logger.info("Completed job %s.", job.id)

    async def on_failure(self, job: JobRead, error: Exception) -> None:
        if isinstance(error, PipelineStageError):
            message = str(error)
        else:
            message = f"{type(error).__name__}: {error}"
        logger.error("Failed to process job %s: %s", job.id, message)
        self._job_service.update_job(job.id, JobUpdate(status=JobStatus.failed, error=message))

    def _fetch_source(self, job: JobRead) -> Path:
        """Return a local path for the job source, downloading remote URLs first."""

        parsed = urlparse(str(job.source_uri))
        if parsed.scheme not in {"http", "https"}:
            return self._resolve_path(job.source_uri)

        downloads = self._settings.WORK_DIR / "downloads" / str(job.id)
        downloads.mkdir(parents=True, exist_ok=True)
        destination = downloads / (Path(unquote(parsed.path)).name or "source.bin")
        logger.info("Downloading source for job %s from %s", job.id, job.source_uri)
        response = self._session.get(str(job.source_uri), stream=True, timeout=60)
        response.raise_for_status()
        with destination.open("wb") as fh:
            for chunk in response.iter_content(chunk_size=1024 * 1024):
                if chunk:
                    fh.write(chunk)
        return destination

    @staticmethod
    def _resolve_path(value: object) -> Path:
        """Normalize job URIs into local filesystem paths."""

        if isinstance(value, Path):
            return value

        parsed = urlparse(str(value))
        if parsed.scheme and parsed.path:
            path_str = unquote(parsed.path)
            if os.name == "nt" and path_str.startswith("/") and len(path_str) > 1:
                # Trim the leading slash so Windows drive letters are preserved.
                path_str = path_str.lstrip("/")
            return Path(path_str)

        return Path(str(value))
