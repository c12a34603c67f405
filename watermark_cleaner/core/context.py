"""Per-run context: settings, shared HTTP session, providers and cancellation."""

from __future__ import annotations

import asyncio
import time
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Awaitable, TypeVar

import requests

from watermark_cleaner.core.config import Settings
from watermark_cleaner.core.errors import OperationCancelled
from watermark_cleaner.schemas.cleanup import RetryPolicy

T = TypeVar("T")


class CancellationToken:
    """Overall deadline and caller-driven cancellation for one pipeline run.

    Once the token fires, :meth:`guard` refuses to start new work and abandons
    work in flight by raising :class:`OperationCancelled`.
    """

    def __init__(self, deadline_seconds: float | None = None) -> None:
        self._deadline = time.monotonic() + deadline_seconds if deadline_seconds is not None else None
        self._event = asyncio.Event()
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set() or self.remaining() == 0.0

    @property
    def reason(self) -> str:
        if self._reason:
            return self._reason
        return "deadline exceeded" if self._deadline is not None else "cancelled"

    def remaining(self) -> float | None:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def cancel(self, reason: str = "cancelled by caller") -> None:
        self._reason = reason
        self._event.set()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token fires first."""

        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise OperationCancelled(self.reason)

        call = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {call, waiter},
                timeout=self.remaining(),
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            call.cancel()
            waiter.cancel()
            raise

        waiter.cancel()
        if call in done:
            return call.result()

        call.cancel()
        with suppress(asyncio.CancelledError, Exception):
            await call
        raise OperationCancelled(self.reason)

    async def sleep(self, seconds: float) -> None:
        if seconds <= 0:
            return
        await self.guard(asyncio.sleep(seconds))


@dataclass
class PipelineContext:
    """Configuration shared by every component of one run, passed by reference."""

    settings: Settings
    retry_policy: RetryPolicy
    session: requests.Session = field(default_factory=requests.Session)
    token: CancellationToken = field(default_factory=CancellationToken)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        deadline_seconds: float | None = None,
        session: requests.Session | None = None,
    ) -> "PipelineContext":
        deadline = deadline_seconds if deadline_seconds is not None else settings.PIPELINE_DEADLINE_SECONDS
        return cls(
            settings=settings,
            retry_policy=RetryPolicy.from_settings(settings),
            session=session or requests.Session(),
            token=CancellationToken(deadline),
        )

    def close(self) -> None:
        self.session.close()
