"""Providers answering a single request with the cleaned image."""

from __future__ import annotations

import base64
from typing import Any

import requests

from watermark_cleaner.services.providers.base import RemovalProvider


class IOPaintProvider(RemovalProvider):
    """Self-hosted IOPaint server (``iopaint start``) running LaMa or similar."""

    name = "iopaint"
    requires_mask = True

    def __init__(self, session: requests.Session, base_url: str, timeout: float = 60.0) -> None:
        super().__init__(session, timeout)
        self._endpoint = f"{base_url.rstrip('/')}/api/v1/inpaint"

    async def _invoke(self, image: bytes, mask: bytes | None) -> Any:
        body = {
            "image": base64.b64encode(image).decode("ascii"),
            "mask": base64.b64encode(mask or b"").decode("ascii"),
        }
        return await self._request("POST", self._endpoint, json=body)


class ClipDropProvider(RemovalProvider):
    """ClipDrop cleanup API: multipart image and mask, PNG body back."""

    name = "clipdrop"
    requires_mask = True

    def __init__(
        self,
        session: requests.Session,
        api_key: str,
        endpoint: str = "https://clipdrop-api.co/cleanup/v1",
        timeout: float = 60.0,
    ) -> None:
        super().__init__(session, timeout)
        self._api_key = api_key
        self._endpoint = endpoint

    async def _invoke(self, image: bytes, mask: bytes | None) -> Any:
        files = {
            "image_file": ("image.png", image, "image/png"),
            "mask_file": ("mask.png", mask or b"", "image/png"),
        }
        return await self._request(
            "POST",
            self._endpoint,
            files=files,
            headers={"x-api-key": self._api_key},
        )
