"""RunPod serverless handler for watermark cleanup jobs."""

from __future__ import annotations

import asyncio
import base64
import hashlib
import tempfile
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import requests
import runpod
from loguru import logger

from watermark_cleaner.core.config import get_settings
from watermark_cleaner.schemas.cleanup import CleanupConfig
from watermark_cleaner.services.cleanup_service import WatermarkCleanupService
from watermark_cleaner.utils.media import cleaned_filename

SETTINGS = get_settings()
SERVICE = WatermarkCleanupService(settings=SETTINGS)


def _download_from_url(
    url: str,
    destination: Path,
    verify: bool = True,
    headers: dict[str, str] | None = None,
) -> Path:
    logger.info(f"Downloading source from {url}")
    response = requests.get(url, stream=True, timeout=60, verify=verify, headers=headers or {})
    response.raise_for_status()
    with destination.open("wb") as fh:
        for chunk in response.iter_content(chunk_size=1024 * 1024):
            if chunk:
                fh.write(chunk)
    return destination


def _write_base64(data: str, destination: Path) -> Path:
    logger.info(f"Decoding base64 payload into {destination}")
    payload = data[data.find(",") + 1 :] if "," in data else data
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_bytes(base64.b64decode(payload))
    return destination


def _safe_filename(candidate: str | None, default: str = "input.bin") -> str:
    if not candidate:
        return default

    candidate = candidate.strip().strip("/\\")
    if not candidate:
        return default

    suffix = Path(candidate).suffix
    stem = Path(candidate).stem or "file"
    cleaned_stem = "".join(ch if ch.isalnum() or ch in {"-", "_"} else "-" for ch in stem)
    cleaned = f"{cleaned_stem}{suffix}"

    max_len = 120
    if len(cleaned) <= max_len:
        return cleaned

    digest = hashlib.sha1(candidate.encode("utf-8")).hexdigest()[:12]
    truncated_stem = cleaned_stem[: max(10, max_len - len(suffix) - len(digest) - 1)]
    return f"{truncated_stem}-{digest}{suffix}"


def _resolve_source(input_payload: dict[str, Any], workdir: Path) -> Path:
    source_url = input_payload.get("source") or input_payload.get("source_url")
    source_base64 = input_payload.get("source_base64")
    if not source_url and not source_base64:
        raise ValueError("Provide either 'source' (URL) or 'source_base64'.")

    filename = input_payload.get("filename")
    if not filename and source_url:
        parsed = urlparse(str(source_url))
        filename = Path(parsed.path).name or parsed.netloc
    destination = workdir / _safe_filename(filename)

    if source_url:
        verify = bool(input_payload.get("source_verify_ssl", True))
        headers = input_payload.get("source_headers") or None
        return _download_from_url(str(source_url), destination, verify=verify, headers=headers)
    return _write_base64(str(source_base64), destination)


def _process_job(job_input: dict[str, Any]) -> dict[str, Any]:
    config = CleanupConfig.model_validate(job_input.get("cleanup_config") or {})
    media_kind = job_input.get("media_kind")

    with tempfile.TemporaryDirectory() as tmpdir:
        working_dir = Path(tmpdir)
        input_path = _resolve_source(job_input, working_dir)
        data = input_path.read_bytes()

        result = asyncio.run(SERVICE.clean_bytes(data, media_kind=media_kind, filename=input_path.name, config=config))

    filename = job_input.get("output_filename") or cleaned_filename(input_path.name, result.filename_suffix)
    return {
        "status": "success",
        "result": {
            "filename": filename,
            "media_kind": result.media_kind.value,
            "data_base64": base64.b64encode(result.data).decode("ascii"),
            "report": result.report.summary(),
        },
    }


def handler(job: dict[str, Any]) -> dict[str, Any]:
    try:
        job_input = job.get("input") or {}
        logger.info(f"Received RunPod job {job.get('id')}")
        return _process_job(job_input)
    except Exception as exc:  # noqa: BLE001
        logger.exception(f"Failed to process job {job.get('id')}")
        return {"status": "error", "error": str(exc)}


if __name__ == "__main__":
    runpod.serverless.start({"handler": handler})
