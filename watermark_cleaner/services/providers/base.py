"""Common contract for remote watermark removal / inpainting providers."""

from __future__ import annotations

import abc
import asyncio
import base64
import binascii
from dataclasses import dataclass
from enum import Enum
from typing import Any

import requests
from loguru import logger

from watermark_cleaner.core.errors import (
    FatalProviderError,
    PayloadTooLargeError,
    ProviderError,
    TransientProviderError,
)

RESULT_KEYS = ("output", "image", "result", "data", "url")


class ProviderOutcome(str, Enum):
    """How a single provider call ended."""

    success = "success"
    transient_failure = "transient_failure"
    fatal_failure = "fatal_failure"
    payload_too_large = "payload_too_large"


@dataclass(frozen=True)
class ProviderResult:
    outcome: ProviderOutcome
    provider: str
    data: bytes | None = None
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is ProviderOutcome.success

    @classmethod
    def succeeded(cls, provider: str, data: bytes) -> "ProviderResult":
        return cls(ProviderOutcome.success, provider, data=data)

    @classmethod
    def from_error(cls, provider: str, error: ProviderError) -> "ProviderResult":
        if isinstance(error, PayloadTooLargeError):
            outcome = ProviderOutcome.payload_too_large
        elif isinstance(error, TransientProviderError):
            outcome = ProviderOutcome.transient_failure
        else:
            outcome = ProviderOutcome.fatal_failure
        return cls(outcome, provider, reason=str(error))


def mentions_too_large(text: str | None) -> bool:
    lowered = (text or "").lower()
    return "too large" in lowered or "payload too big" in lowered


def raise_for_provider_status(response: requests.Response, provider: str) -> None:
    """Map an HTTP error status onto the provider error taxonomy."""

    status = response.status_code
    if status < 400:
        return

    detail = (response.text or "")[:300]
    message = f"HTTP {status} from {provider}: {detail}"
    if status == 413 or mentions_too_large(detail):
        raise PayloadTooLargeError(message, provider=provider)
    if status >= 500 or status == 429:
        raise TransientProviderError(message, provider=provider)
    raise FatalProviderError(message, provider=provider)


def decode_inline_payload(value: str) -> bytes | None:
    """Decode a data URI or bare base64 string, or return None."""

    if value.startswith("data:"):
        _, _, value = value.partition(",")
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        return None


def to_data_uri(data: bytes, mime: str = "image/png") -> str:
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


class RemovalProvider(abc.ABC):
    """One external removal service behind a uniform async ``remove`` call."""

    name: str = "provider"
    requires_mask: bool = False

    def __init__(self, session: requests.Session, timeout: float = 60.0) -> None:
        self._session = session
        self._timeout = timeout

    async def remove(self, image: bytes, mask: bytes | None = None) -> ProviderResult:
        """Submit ``image`` (and ``mask``) and return the normalized outcome."""

        try:
            if self.requires_mask and mask is None:
                raise FatalProviderError(f"{self.name} requires a mask", provider=self.name)
            payload = await self._invoke(image, mask)
            data = await self.normalize(payload)
        except ProviderError as exc:
            logger.debug(f"Provider {self.name} failed: {exc}")
            return ProviderResult.from_error(self.name, exc)
        return ProviderResult.succeeded(self.name, data)

    @abc.abstractmethod
    async def _invoke(self, image: bytes, mask: bytes | None) -> Any:
        """Perform the provider-specific transport and return its raw answer."""

    async def normalize(self, payload: Any) -> bytes:
        """Reduce a URL reference, inline encoded payload or raw body to bytes."""

        if isinstance(payload, (bytes, bytearray)):
            if not payload:
                raise FatalProviderError(f"{self.name} returned an empty body", provider=self.name)
            return bytes(payload)

        if isinstance(payload, requests.Response):
            content_type = payload.headers.get("content-type", "")
            if "json" in content_type:
                try:
                    return await self.normalize(payload.json())
                except ValueError as exc:
                    raise FatalProviderError(f"{self.name} sent malformed JSON", provider=self.name) from exc
            return await self.normalize(payload.content)

        if isinstance(payload, dict):
            for key in RESULT_KEYS:
                if payload.get(key):
                    return await self.normalize(payload[key])
            raise FatalProviderError(f"{self.name} response carries no result", provider=self.name)

        if isinstance(payload, (list, tuple)):
            for item in payload:
                if item:
                    return await self.normalize(item)
            raise FatalProviderError(f"{self.name} returned an empty result list", provider=self.name)

        if isinstance(payload, str):
            if payload.startswith(("http://", "https://")):
                response = await self._request("GET", payload)
                return await self.normalize(response.content)
            decoded = decode_inline_payload(payload)
            if decoded:
                return decoded

        raise FatalProviderError(f"{self.name} returned an unrecognised payload", provider=self.name)

    async def _request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        """Run a blocking HTTP call off the event loop and classify failures."""

        kwargs.setdefault("timeout", self._timeout)
        try:
            response = await asyncio.to_thread(self._session.request, method, url, **kwargs)
        except (requests.Timeout, requests.ConnectionError) as exc:
            raise TransientProviderError(f"{self.name} unreachable: {exc}", provider=self.name) from exc
        except requests.RequestException as exc:
            raise FatalProviderError(f"{self.name} request failed: {exc}", provider=self.name) from exc

        raise_for_provider_status(response, self.name)
        return response
