"""Interfaces and base classes for worker implementations."""

from __future__ import annotations

import abc

from watermark_cleaner.schemas.job import JobRead


class BaseWorker(abc.ABC):
    """Template for worker components that process jobs from the queue.

    :meth:`process_job` runs :meth:`handle` and dispatches to the success or
    failure hook; exceptions never escape the worker loop.
    """

    @abc.abstractmethod
    async def handle(self, job: JobRead) -> None:
        """Process a job payload."""

    async def on_success(self, job: JobRead) -> None:  # pragma: no cover - hooks
        """Hook executed after a successful job execution."""

    async def on_failure(self, job: JobRead, error: Exception) -> None:  # pragma: no cover - hooks
        """Hook executed when job execution fails."""

    async def process_job(self, job: JobRead) -> bool:
        try:
            await self.handle(job)
        except Exception as exc:  # noqa: BLE001 - reported through the failure hook
            await self.on_failure(job, exc)
            return False
        await self.on_success(job)
        return True
