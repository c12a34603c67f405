import base64
import io

import numpy as np
from PIL import Image

from watermark_cleaner.serverless import runpod_handler
from watermark_cleaner.services.cleanup_service import WatermarkCleanupService


def _png() -> bytes:
    buffer = io.BytesIO()
    Image.fromarray(np.zeros((10, 10, 3), dtype=np.uint8)).save(buffer, format="PNG")
    return buffer.getvalue()


def test_base64_source_round_trip(monkeypatch, settings):
    monkeypatch.setattr(runpod_handler, "SERVICE", WatermarkCleanupService(settings=settings))
    payload = "data:image/png;base64," + base64.b64encode(_png()).decode()

    response = runpod_handler.handler({"id": "job-1", "input": {"source_base64": payload, "filename": "scan.png"}})

    assert response["status"] == "success"
    result = response["result"]
    assert result["filename"] == "scan_cleaned.png"
    assert result["report"]["units"] == 1
    assert Image.open(io.BytesIO(base64.b64decode(result["data_base64"]))).format == "PNG"


def test_missing_source_is_reported():
    response = runpod_handler.handler({"id": "job-2", "input": {}})

    assert response["status"] == "error"
    assert "source" in response["error"]
