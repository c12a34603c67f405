"""Application lifecycle hooks."""

import logging
import shutil

from fastapi import FastAPI

from watermark_cleaner.core.config import settings
from watermark_cleaner.services.providers.registry import resolve_provider_names

logger = logging.getLogger(__name__)


def register_startup_event(app: FastAPI) -> None:
    """Register startup handlers."""

    @app.on_event("startup")
    async def on_startup() -> None:
        logger.info("Starting watermark cleaner service.")
        providers = resolve_provider_names(settings.INPAINT_PROVIDERS)
        logger.info("Configured providers: %s", ", ".join(providers) or "local only")
        if shutil.which(settings.FFMPEG_BINARY) is None:
            logger.warning("ffmpeg binary '%s' not found; video cleanup will fail.", settings.FFMPEG_BINARY)


def register_shutdown_event(app: FastAPI) -> None:
    """Register shutdown handlers."""

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        logger.info("Shutting down watermark cleaner service.")
