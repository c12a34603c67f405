"""Health and readiness routes."""

import shutil

from fastapi import APIRouter

from watermark_cleaner.core.config import settings
from watermark_cleaner.services.providers.registry import resolve_provider_names

router = APIRouter(tags=["health"])


@router.get("/health", summary="Health probe")
async def health_check() -> dict[str, str]:
    """Return a basic heartbeat payload."""

    return {"status": "ok", "service": settings.APP_NAME}


@router.get("/readiness", summary="Readiness probe")
async def readiness_check() -> dict[str, object]:
    """Report which collaborators are available to the pipeline."""

    return {
        "status": "ready",
        "ffmpeg": shutil.which(settings.FFMPEG_BINARY) is not None,
        "providers": resolve_provider_names(settings.INPAINT_PROVIDERS),
    }
