"""Replicate predictions API (LaMa inpainting model by default)."""

from __future__ import annotations

from typing import Any

import requests

from watermark_cleaner.core.errors import FatalProviderError
from watermark_cleaner.services.providers.base import to_data_uri
from watermark_cleaner.services.providers.polling import PollingProvider, RemoteTask, RemoteTaskState

STATUS_MAP = {
    "starting": RemoteTaskState.pending,
    "processing": RemoteTaskState.pending,
    "succeeded": RemoteTaskState.completed,
    "failed": RemoteTaskState.failed,
    "canceled": RemoteTaskState.failed,
}


class ReplicateProvider(PollingProvider):
    name = "replicate"
    requires_mask = True

    def __init__(
        self,
        session: requests.Session,
        api_token: str,
        model_version: str,
        api_url: str = "https://api.replicate.com/v1",
        **kwargs: Any,
    ) -> None:
        super().__init__(session, **kwargs)
        self._api_url = api_url.rstrip("/")
        self._model_version = model_version
        self._headers = {
            "Authorization": f"Bearer {api_token}",
            "Content-Type": "application/json",
        }

    async def _create_task(self, image: bytes, mask: bytes | None) -> RemoteTask:
        body = {
            "version": self._model_version,
            "input": {
                "image": to_data_uri(image),
                "mask": to_data_uri(mask or b""),
            },
        }
        response = await self._request("POST", f"{self._api_url}/predictions", json=body, headers=self._headers)
        payload = self._json(response)

        task_id = payload.get("id")
        if not task_id:
            raise FatalProviderError("replicate did not return a prediction id", provider=self.name)
        poll_url = (payload.get("urls") or {}).get("get") or f"{self._api_url}/predictions/{task_id}"

        task = RemoteTask(task_id, poll_url)
        self._apply(task, payload)
        return task

    async def _refresh(self, task: RemoteTask) -> None:
        response = await self._request("GET", task.poll_url, headers=self._headers)
        self._apply(task, self._json(response))

    def _apply(self, task: RemoteTask, payload: dict[str, Any]) -> None:
        state = STATUS_MAP.get(str(payload.get("status", "")).lower(), RemoteTaskState.pending)
        if state is RemoteTaskState.completed:
            task.advance(state, result_ref=payload.get("output"))
        elif state is RemoteTaskState.failed:
            task.advance(state, reason=payload.get("error") or payload.get("status"))
        else:
            task.advance(state)

    def _json(self, response: requests.Response) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise FatalProviderError("replicate sent malformed JSON", provider=self.name) from exc
        if not isinstance(payload, dict):
            raise FatalProviderError("replicate sent an unexpected payload", provider=self.name)
        return payload
