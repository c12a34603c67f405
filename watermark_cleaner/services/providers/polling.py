"""Asynchronous create-task / poll-until-done provider protocol."""

from __future__ import annotations

import abc
import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable

import requests
from loguru import logger

from watermark_cleaner.core.errors import FatalProviderError, PayloadTooLargeError, TransientProviderError
from watermark_cleaner.services.providers.base import RemovalProvider, mentions_too_large


class RemoteTaskState(str, Enum):
    created = "created"
    pending = "pending"
    completed = "completed"
    failed = "failed"


_ALLOWED_TRANSITIONS: dict[RemoteTaskState, set[RemoteTaskState]] = {
    RemoteTaskState.created: {RemoteTaskState.pending, RemoteTaskState.completed, RemoteTaskState.failed},
    RemoteTaskState.pending: {RemoteTaskState.pending, RemoteTaskState.completed, RemoteTaskState.failed},
    RemoteTaskState.completed: set(),
    RemoteTaskState.failed: set(),
}


class RemoteTask:
    """Lifecycle of one remote job: created -> pending -> completed | failed."""

    def __init__(self, task_id: str, poll_url: str) -> None:
        self.task_id = task_id
        self.poll_url = poll_url
        self.state = RemoteTaskState.created
        self.result_ref: Any = None
        self.reason: str | None = None

    @property
    def done(self) -> bool:
        return self.state in (RemoteTaskState.completed, RemoteTaskState.failed)

    def advance(self, state: RemoteTaskState, result_ref: Any = None, reason: str | None = None) -> None:
        if state not in _ALLOWED_TRANSITIONS[self.state]:
            raise ValueError(f"Task {self.task_id}: illegal transition {self.state.value} -> {state.value}")
        self.state = state
        if state is RemoteTaskState.completed:
            self.result_ref = result_ref
        elif state is RemoteTaskState.failed:
            self.reason = reason or "task failed"


class PollingProvider(RemovalProvider):
    """Provider whose API creates a task and reports completion on later polls."""

    def __init__(
        self,
        session: requests.Session,
        timeout: float = 60.0,
        poll_interval: float = 1.0,
        max_polls: int = 60,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        super().__init__(session, timeout)
        self._poll_interval = poll_interval
        self._max_polls = max_polls
        self._sleep = sleep

    async def _invoke(self, image: bytes, mask: bytes | None) -> Any:
        task = await self._create_task(image, mask)
        logger.debug(f"{self.name} task {task.task_id} created ({task.state.value})")

        polls = 0
        while not task.done:
            if polls >= self._max_polls:
                raise TransientProviderError(
                    f"{self.name} task {task.task_id} still pending after {polls} polls",
                    provider=self.name,
                )
            await self._sleep(self._poll_interval)
            await self._refresh(task)
            polls += 1

        if task.state is RemoteTaskState.failed:
            if mentions_too_large(task.reason):
                raise PayloadTooLargeError(task.reason or "payload too large", provider=self.name)
            raise FatalProviderError(f"{self.name} task {task.task_id} failed: {task.reason}", provider=self.name)
        return task.result_ref

    @abc.abstractmethod
    async def _create_task(self, image: bytes, mask: bytes | None) -> RemoteTask:
        """Submit the job and return the task in its initial reported state."""

    @abc.abstractmethod
    async def _refresh(self, task: RemoteTask) -> None:
        """Poll the task once and advance its state."""
