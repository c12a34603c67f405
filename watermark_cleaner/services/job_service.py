"""File-backed store tracking cleanup jobs."""

from __future__ import annotations

import json
import logging
from threading import Lock
from typing import Iterable, Optional
from uuid import UUID, uuid4

from watermark_cleaner.core.config import Settings
from watermark_cleaner.schemas.job import JobCreate, JobRead, JobStatus, JobUpdate

logger = logging.getLogger(__name__)


class JobService:
    """Create, list and update cleanup jobs persisted as one JSON document."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._store: dict[UUID, JobRead] = {}
        self._storage_path = settings.WORK_DIR / "data" / "jobs_store.json"
        self._storage_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = Lock()
        self._refresh_store()

    def create_job(self, payload: JobCreate) -> JobRead:
        self._refresh_store()
        job = JobRead(
            id=uuid4(),
            status=JobStatus.queued,
            source_uri=payload.source_uri,
            target_uri=payload.target_uri,
            media_kind=payload.media_kind,
            metadata=payload.metadata,
            cleanup_config=payload.cleanup_config,
        )
        self._store[job.id] = job
        self._persist_store()
        logger.info("Registered job %s for %s", job.id, job.source_uri)
        return job

    def list_jobs(self) -> list[JobRead]:
        self._refresh_store()
        return sorted(self._store.values(), key=lambda job: job.created_at)

    def get_job(self, job_id: UUID) -> Optional[JobRead]:
        self._refresh_store()
        return self._store.get(job_id)

    def update_job(self, job_id: UUID, payload: JobUpdate) -> Optional[JobRead]:
        """Merge the non-empty fields of ``payload`` into the stored job."""

        self._refresh_store()
        job = self._store.get(job_id)
        if not job:
            return None

        updated = job.model_copy(update=payload.model_dump(exclude_none=True))
        self._store[job_id] = updated
        self._persist_store()
        return updated

    def iter_pending_jobs(self) -> Iterable[JobRead]:
        """Jobs that are queued, or were interrupted while processing."""

        self._refresh_store()
        return [job for job in self.list_jobs() if job.status in {JobStatus.queued, JobStatus.processing}]

    def _refresh_store(self) -> None:
        with self._lock:
            if not self._storage_path.exists():
                return
            try:
                raw = json.loads(self._storage_path.read_text(encoding="utf-8"))
            except json.JSONDecodeError as exc:
                logger.error("Failed to load job store: %s", exc)
                return

            reconstructed: dict[UUID, JobRead] = {}
            for key, value in raw.items():
                try:
                    reconstructed[UUID(key)] = JobRead.model_validate(value)
                except ValueError as exc:
                    logger.warning("Skipping invalid job entry %s: %s", key, exc)
            self._store = reconstructed

    def _persist_store(self) -> None:
        with self._lock:
            payload = {str(job_id): job.model_dump(mode="json") for job_id, job in self._store.items()}
            self._storage_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
