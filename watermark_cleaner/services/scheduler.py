"""Bounded-concurrency batch execution with index-ordered results."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Generic, Protocol, TypeVar

import numpy as np
import tqdm
from loguru import logger

T = TypeVar("T")


class IndexedJob(Protocol):
    index: int


J = TypeVar("J", bound=IndexedJob)


@dataclass(frozen=True)
class ProcessingJob:
    """One page or frame: its position in the source sequence plus pixels."""

    index: int
    frame: np.ndarray
    mask: np.ndarray | None = None


@dataclass(frozen=True)
class JobOutcome(Generic[T]):
    index: int
    value: T | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class BatchScheduler:
    """Run jobs with at most ``concurrency`` handlers in flight.

    Each outcome lands in the slot of its job index, so completion order never
    changes output order. A failing job is recorded in its slot and does not
    cancel its siblings.
    """

    def __init__(self, concurrency: int = 2, show_progress: bool = False, description: str = "units") -> None:
        if concurrency < 1:
            raise ValueError("Concurrency must be at least 1.")
        self.concurrency = concurrency
        self.show_progress = show_progress
        self.description = description
        self.peak_in_flight = 0
        self._in_flight = 0

    async def run_batch(
        self,
        jobs: Sequence[J],
        handler: Callable[[J], Awaitable[T]],
    ) -> list[JobOutcome[T]]:
        if sorted(job.index for job in jobs) != list(range(len(jobs))):
            raise ValueError("Job indexes must be unique and cover 0..n-1.")

        slots: list[JobOutcome[T] | None] = [None] * len(jobs)
        semaphore = asyncio.Semaphore(self.concurrency)
        progress = tqdm.tqdm(total=len(jobs), desc=self.description, disable=not self.show_progress)

        async def _run(job: J) -> None:
            async with semaphore:
                self._in_flight += 1
                self.peak_in_flight = max(self.peak_in_flight, self._in_flight)
                try:
                    slots[job.index] = JobOutcome(job.index, value=await handler(job))
                except Exception as exc:  # noqa: BLE001 - recorded per slot
                    logger.warning(f"Job {job.index} failed: {exc}")
                    slots[job.index] = JobOutcome(job.index, error=exc)
                finally:
                    self._in_flight -= 1
                    progress.update(1)

        try:
            await asyncio.gather(*(_run(job) for job in jobs))
        finally:
            progress.close()

        return [slot for slot in slots if slot is not None]
