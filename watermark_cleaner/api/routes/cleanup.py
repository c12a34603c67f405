"""Synchronous cleanup route returning the cleaned artifact directly."""

import json
import logging
from urllib.parse import quote

from fastapi import APIRouter, File, Form, HTTPException, Response, UploadFile, status
from pydantic import ValidationError

from watermark_cleaner.core.errors import DecodeError, PipelineStageError
from watermark_cleaner.dependencies import CleanupServiceDep
from watermark_cleaner.schemas.cleanup import CleanupConfig, ColorMode, IntensityTier, MediaKind
from watermark_cleaner.utils.media import cleaned_filename

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cleanup", tags=["cleanup"])

CONTENT_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".webp": "image/webp",
    ".pdf": "application/pdf",
    ".mp4": "video/mp4",
}


def content_disposition(filename: str) -> str:
    """Attachment header with an ASCII fallback and an RFC 5987 UTF-8 name."""

    fallback = "".join(ch if ch.isascii() and ch.isprintable() and ch not in {'"', "\\"} else "_" for ch in filename)
    encoded = quote(filename, safe="")
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{encoded}"


@router.post(
    "",
    summary="Clean an uploaded file and return it",
    response_description="The cleaned file; the run report is carried in X-Cleanup-* headers.",
    responses={422: {"description": "The input could not be decoded."}},
)
async def cleanup_upload(
    cleanup_service: CleanupServiceDep,
    file: UploadFile = File(..., description="Image, PDF or video to clean."),
    media_kind: MediaKind | None = Form(default=None, description="Declared media kind; sniffed when omitted."),
    color_mode: ColorMode | None = Form(default=None, description="Hue family to target."),
    intensity: IntensityTier | None = Form(default=None, description="Classifier aggressiveness."),
    cleanup_config_json: str | None = Form(
        default=None,
        description="Optional JSON-encoded cleanup configuration; form fields above take precedence.",
    ),
) -> Response:
    """Run the whole pipeline in-request. Suitable for images and short documents."""

    try:
        config = CleanupConfig.model_validate_json(cleanup_config_json) if cleanup_config_json else CleanupConfig()
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid cleanup configuration: {exc.errors()}",
        ) from exc

    overrides = {"color_mode": color_mode, "intensity": intensity}
    config = config.model_copy(update={key: value for key, value in overrides.items() if value is not None})

    data = await file.read()
    await file.close()
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Uploaded file is empty.")

    try:
        result = await cleanup_service.clean_bytes(data, media_kind=media_kind, filename=file.filename, config=config)
    except DecodeError as exc:
        logger.warning("Rejected upload %s: %s", file.filename, exc)
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except PipelineStageError as exc:
        logger.error("Cleanup of %s failed at %s: %s", file.filename, exc.stage, exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    report = result.report
    filename = cleaned_filename(file.filename, result.filename_suffix)
    headers = {
        "Content-Disposition": content_disposition(filename),
        "X-Cleanup-Media-Kind": result.media_kind.value,
        "X-Cleanup-Units": str(report.units),
        "X-Cleanup-Degraded": str(report.degraded).lower(),
        "X-Cleanup-Sources": json.dumps(report.sources, sort_keys=True),
    }
    return Response(
        content=result.data,
        media_type=CONTENT_TYPES.get(result.filename_suffix, "application/octet-stream"),
        headers=headers,
    )
