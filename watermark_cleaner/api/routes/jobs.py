"""Routes for managing cleanup jobs."""

import json
import logging
from pathlib import Path
from uuid import UUID, uuid4

from fastapi import APIRouter, File, Form, HTTPException, UploadFile, status
from pydantic import ValidationError

from watermark_cleaner.dependencies import JobServiceDep, SettingsDep
from watermark_cleaner.schemas.cleanup import CleanupConfig, MediaKind
from watermark_cleaner.schemas.job import JobCreate, JobRead, JobUpdate
from watermark_cleaner.utils.imaging import SUPPORTED_OUTPUT_FORMATS, resolve_output_format
from watermark_cleaner.utils.media import DOCUMENT_EXTENSIONS, VIDEO_EXTENSIONS, cleaned_filename

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["jobs"])


def output_suffix(original: Path, media_kind: MediaKind | None, config: CleanupConfig | None) -> str:
    """Extension the cleaned artifact will carry for ``original``."""

    suffix = original.suffix.lower()
    if media_kind is MediaKind.video or (media_kind is None and suffix in VIDEO_EXTENSIONS):
        return ".mp4"
    if media_kind is MediaKind.document or (media_kind is None and suffix in DOCUMENT_EXTENSIONS):
        return ".pdf"
    source_format = {".jpg": "JPEG", ".jpeg": "JPEG", ".png": "PNG", ".webp": "WEBP"}.get(suffix)
    fmt = resolve_output_format(source_format, config.force_format if config else None)
    return SUPPORTED_OUTPUT_FORMATS[fmt]


@router.post(
    "",
    response_model=JobRead,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Submit a new cleanup job",
    response_description="Representation of the created job.",
)
async def enqueue_job(payload: JobCreate, job_service: JobServiceDep) -> JobRead:
    """Accept a job payload and register it for downstream processing."""

    return job_service.create_job(payload)


@router.post(
    "/upload",
    response_model=JobRead,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Submit a job with an uploaded file",
    response_description="Representation of the created job.",
)
async def enqueue_job_with_upload(
    job_service: JobServiceDep,
    settings: SettingsDep,
    file: UploadFile = File(..., description="Image, PDF or video to clean."),
    media_kind: MediaKind | None = Form(default=None, description="Declared media kind; sniffed when omitted."),
    priority: int = Form(default=5, ge=1, le=10, description="Priority applied to the enqueued job."),
    target_filename: str | None = Form(
        default=None,
        description="Optional override for the output filename (defaults to '<input>_cleaned<ext>').",
    ),
    metadata_json: str | None = Form(
        default=None,
        description="Optional JSON-encoded metadata to attach to the job.",
    ),
    cleanup_config_json: str | None = Form(
        default=None,
        description="Optional JSON-encoded cleanup configuration.",
    ),
) -> JobRead:
    """Accept a multipart upload, persist it locally, and enqueue the corresponding job."""

    metadata = None
    if metadata_json:
        try:
            metadata = json.loads(metadata_json)
        except json.JSONDecodeError as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid metadata JSON: {exc}",
            ) from exc

    cleanup_config = None
    if cleanup_config_json:
        try:
            cleanup_config = CleanupConfig.model_validate_json(cleanup_config_json)
        except ValidationError as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid cleanup configuration: {exc.errors()}",
            ) from exc

    upload_token = uuid4().hex
    uploads_dir = settings.WORK_DIR / "uploads" / upload_token
    uploads_dir.mkdir(parents=True, exist_ok=True)

    original_name = Path(file.filename or f"upload-{upload_token}")
    input_path = uploads_dir / original_name.name

    # Stream upload to disk to avoid loading large files into memory.
    with input_path.open("wb") as buffer:
        while True:
            chunk = await file.read(1024 * 1024)
            if not chunk:
                break
            buffer.write(chunk)
    await file.close()
    logger.info("Stored upload %s at %s", file.filename, input_path)

    try:
        suffix = output_suffix(original_name, media_kind, cleanup_config)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    if target_filename:
        output_name = Path(target_filename)
        if not output_name.suffix:
            output_name = output_name.with_suffix(suffix)
    else:
        output_name = Path(cleaned_filename(original_name.name, suffix))

    outputs_dir = settings.WORK_DIR / "outputs" / upload_token
    outputs_dir.mkdir(parents=True, exist_ok=True)
    output_path = outputs_dir / output_name.name

    job = job_service.create_job(
        JobCreate(
            source_uri=input_path,
            target_uri=output_path,
            media_kind=media_kind,
            priority=priority,
            metadata=metadata,
            cleanup_config=cleanup_config,
        )
    )
    logger.info("Enqueued cleanup job %s", job.id)
    return job


@router.get(
    "",
    response_model=list[JobRead],
    summary="List queued and processed jobs",
    response_description="Collection of known jobs sorted by creation time.",
)
async def list_jobs(job_service: JobServiceDep) -> list[JobRead]:
    """Return all jobs currently tracked by the service."""

    return job_service.list_jobs()


@router.get(
    "/{job_id}",
    response_model=JobRead,
    summary="Retrieve a specific job",
    response_description="Job metadata with current state.",
)
async def get_job(job_id: UUID, job_service: JobServiceDep) -> JobRead:
    """Fetch a job by identifier."""

    job = job_service.get_job(job_id)
    if not job:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found.")
    return job


@router.patch(
    "/{job_id}",
    response_model=JobRead,
    summary="Update a job's status",
    response_description="Updated job record.",
)
async def update_job(job_id: UUID, payload: JobUpdate, job_service: JobServiceDep) -> JobRead:
    """Allow workers to report progress back to the control plane."""

    job = job_service.update_job(job_id, payload)
    if not job:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found.")
    return job
