import io
from urllib.parse import quote

import numpy as np
import pytest
from fastapi.testclient import TestClient
from PIL import Image

from watermark_cleaner.dependencies import get_app_settings
from watermark_cleaner.main import create_application
from watermark_cleaner.services.job_registry import reset_job_service_instance

BASE = "/api/v1"


def _png(frame: np.ndarray) -> bytes:
    buffer = io.BytesIO()
    Image.fromarray(frame).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def client(settings):
    reset_job_service_instance()
    app = create_application()
    app.dependency_overrides[get_app_settings] = lambda: settings
    yield TestClient(app)
    reset_job_service_instance()


def test_health_and_readiness(client):
    assert client.get(f"{BASE}/health").json()["status"] == "ok"

    readiness = client.get(f"{BASE}/readiness").json()
    assert readiness["status"] == "ready"
    assert "ffmpeg" in readiness and "providers" in readiness


def test_cleanup_returns_cleaned_bytes_with_report_headers(client):
    frame = np.zeros((40, 40, 3), dtype=np.uint8)
    frame[10:14, 8:30] = 200

    response = client.post(
        f"{BASE}/cleanup",
        files={"file": ("scan.png", _png(frame), "image/png")},
        data={"intensity": "medium", "color_mode": "gray", "cleanup_config_json": '{"dilation_radius": 0}'},
    )

    assert response.status_code == 200
    assert response.headers["content-type"] == "image/png"
    assert "scan_cleaned.png" in response.headers["content-disposition"]
    assert response.headers["x-cleanup-units"] == "1"
    assert response.headers["x-cleanup-degraded"] == "true"
    cleaned = np.array(Image.open(io.BytesIO(response.content)).convert("RGB"))
    assert cleaned.shape == frame.shape
    assert not cleaned.any()


def test_cleanup_accepts_non_ascii_filenames(client):
    response = client.post(
        f"{BASE}/cleanup",
        files={"file": ("Übung-水印.png", _png(np.zeros((20, 20, 3), dtype=np.uint8)), "image/png")},
    )

    assert response.status_code == 200
    disposition = response.headers["content-disposition"]
    assert 'filename="_bung-___cleaned.png"' in disposition
    assert "filename*=UTF-8''" + quote("Übung-水印_cleaned.png", safe="") in disposition


def test_cleanup_rejects_undecodable_input(client):
    response = client.post(f"{BASE}/cleanup", files={"file": ("scan.png", b"\x89PNG\r\n\x1a\nbroken", "image/png")})

    assert response.status_code == 422
    assert "decode failed" in response.json()["detail"]


def test_cleanup_rejects_bad_configuration(client):
    response = client.post(
        f"{BASE}/cleanup",
        files={"file": ("scan.png", _png(np.zeros((4, 4, 3), dtype=np.uint8)), "image/png")},
        data={"cleanup_config_json": '{"concurrency": 0}'},
    )

    assert response.status_code == 400


def test_job_lifecycle(client, settings):
    response = client.post(
        f"{BASE}/jobs/upload",
        files={"file": ("scan.gif", b"GIF89a-not-really", "image/gif")},
        data={"priority": "7", "cleanup_config_json": '{"intensity": "light"}'},
    )
    assert response.status_code == 202
    job = response.json()
    assert job["status"] == "queued"
    assert job["target_uri"].endswith("scan_cleaned.png")
    assert job["cleanup_config"]["intensity"] == "light"
    assert (settings.WORK_DIR / "uploads").is_dir()

    assert client.get(f"{BASE}/jobs/{job['id']}").json()["id"] == job["id"]
    assert [item["id"] for item in client.get(f"{BASE}/jobs").json()] == [job["id"]]

    patched = client.patch(f"{BASE}/jobs/{job['id']}", json={"status": "completed", "progress": 1.0})
    assert patched.status_code == 200
    assert patched.json()["status"] == "completed"

    assert client.patch(f"{BASE}/jobs/{job['id']}", json={}).status_code == 422
    assert client.get(f"{BASE}/jobs/00000000-0000-0000-0000-000000000000").status_code == 404


def test_create_job_from_json_payload(client, tmp_path):
    response = client.post(
        f"{BASE}/jobs",
        json={
            "source_uri": str(tmp_path / "in.pdf"),
            "target_uri": str(tmp_path / "out.pdf"),
            "media_kind": "document",
        },
    )

    assert response.status_code == 202
    assert response.json()["media_kind"] == "document"
