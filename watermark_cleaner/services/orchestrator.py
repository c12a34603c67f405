"""Provider chain with bounded retry, cross-provider fallback and local fill."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
from loguru import logger

from watermark_cleaner.core.context import PipelineContext
from watermark_cleaner.core.errors import DecodeError, OperationCancelled, PayloadTooLargeError
from watermark_cleaner.schemas.cleanup import RetryPolicy
from watermark_cleaner.services import local_inpainter
from watermark_cleaner.services.providers.base import ProviderOutcome, RemovalProvider
from watermark_cleaner.utils.imaging import decode_result, frame_to_png, mask_to_png

LOCAL_SOURCE = "local"
CLEAN_SOURCE = "clean"
PASSTHROUGH_SOURCE = "passthrough"


@dataclass(frozen=True)
class FrameResult:
    frame: np.ndarray
    source: str
    attempts: int = 0

    @property
    def degraded(self) -> bool:
        return self.source in (LOCAL_SOURCE, PASSTHROUGH_SOURCE)


class ProviderOrchestrator:
    """Run one frame through the provider chain; never fails for a single frame.

    ``PayloadTooLargeError`` is the only error that escapes, so that the chunk
    splitter above can shrink the payload.
    """

    def __init__(
        self,
        context: PipelineContext,
        providers: Sequence[RemovalProvider],
        local_window: int = 5,
        local_passes: int = 1,
    ) -> None:
        self._context = context
        self._providers = list(providers)
        self._local_window = local_window
        self._local_passes = local_passes

    @property
    def providers(self) -> list[RemovalProvider]:
        return list(self._providers)

    async def process(
        self,
        frame: np.ndarray,
        mask: np.ndarray | None,
        providers: Sequence[RemovalProvider] | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> FrameResult:
        if mask is None or not mask.any():
            return FrameResult(frame, CLEAN_SOURCE)

        chain = list(self._providers if providers is None else providers)
        policy = retry_policy or self._context.retry_policy
        token = self._context.token
        if not chain or token.cancelled:
            return await self.local_fallback(frame, mask)

        height, width = frame.shape[:2]
        image_png = await asyncio.to_thread(frame_to_png, frame)
        mask_png = await asyncio.to_thread(mask_to_png, mask)
        delays = policy.delays()
        attempts = 0

        for provider in chain:
            for attempt in range(1, policy.max_attempts + 1):
                try:
                    result = await token.guard(provider.remove(image_png, mask_png))
                except OperationCancelled as exc:
                    logger.warning(f"Remote inpainting abandoned ({exc}); using local fill.")
                    return await self.local_fallback(frame, mask, attempts)
                attempts += 1

                if result.ok:
                    try:
                        cleaned = await asyncio.to_thread(decode_result, result.data or b"", (width, height))
                    except DecodeError as exc:
                        logger.warning(f"Provider {provider.name} returned undecodable output: {exc}")
                        break
                    return FrameResult(cleaned, provider.name, attempts)

                if result.outcome is ProviderOutcome.payload_too_large:
                    raise PayloadTooLargeError(result.reason or "payload too large", provider=provider.name)

                if result.outcome is ProviderOutcome.fatal_failure:
                    logger.warning(f"Provider {provider.name} rejected the frame: {result.reason}")
                    break

                logger.info(
                    f"Provider {provider.name} transient failure "
                    f"(attempt {attempt}/{policy.max_attempts}): {result.reason}"
                )
                if attempt < policy.max_attempts:
                    try:
                        await token.sleep(delays[attempt - 1])
                    except OperationCancelled:
                        return await self.local_fallback(frame, mask, attempts)

            logger.info(f"Provider {provider.name} exhausted; advancing.")

        return await self.local_fallback(frame, mask, attempts)

    async def local_fallback(self, frame: np.ndarray, mask: np.ndarray, attempts: int = 0) -> FrameResult:
        filled = await asyncio.to_thread(
            local_inpainter.fill,
            frame,
            mask,
            self._local_window,
            self._local_passes,
        )
        return FrameResult(filled, LOCAL_SOURCE, attempts)
