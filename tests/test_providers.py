import asyncio
import base64

import pytest
import requests

from helpers import FakeSession, make_response, solid_png
from watermark_cleaner.core.config import Settings
from watermark_cleaner.core.errors import FatalProviderError, PayloadTooLargeError, TransientProviderError
from watermark_cleaner.services.providers.base import ProviderOutcome, raise_for_provider_status
from watermark_cleaner.services.providers.polling import RemoteTask, RemoteTaskState
from watermark_cleaner.services.providers.registry import build_providers, resolve_provider_names
from watermark_cleaner.services.providers.replicate import ReplicateProvider
from watermark_cleaner.services.providers.sync_http import ClipDropProvider, IOPaintProvider

IMAGE = solid_png((10, 20, 30))
MASK = solid_png((255, 255, 255))
CLEANED = solid_png((1, 2, 3))


def _replicate(session: FakeSession, max_polls: int = 5) -> tuple[ReplicateProvider, list[float]]:
    sleeps: list[float] = []

    async def _sleep(seconds: float) -> None:
        sleeps.append(seconds)

    provider = ReplicateProvider(
        session,
        api_token="token",
        model_version="v1",
        api_url="https://api.replicate.test/v1",
        poll_interval=0.5,
        max_polls=max_polls,
        sleep=_sleep,
    )
    return provider, sleeps


@pytest.mark.parametrize(
    "status, body, error",
    [
        (413, "", PayloadTooLargeError),
        (400, "Input image too large", PayloadTooLargeError),
        (503, "busy", TransientProviderError),
        (429, "slow down", TransientProviderError),
        (401, "bad key", FatalProviderError),
        (422, "invalid mask", FatalProviderError),
    ],
)
def test_status_mapping(status, body, error):
    with pytest.raises(error):
        raise_for_provider_status(make_response(status, body.encode(), content_type="text/plain"), "p")


def test_success_status_passes():
    raise_for_provider_status(make_response(200, b"ok"), "p")


def test_iopaint_posts_base64_and_returns_binary_body():
    session = FakeSession([make_response(200, CLEANED)])
    provider = IOPaintProvider(session, "http://iopaint.local:8080/")

    result = asyncio.run(provider.remove(IMAGE, MASK))

    assert result.ok and result.data == CLEANED and result.provider == "iopaint"
    method, url, kwargs = session.calls[0]
    assert (method, url) == ("POST", "http://iopaint.local:8080/api/v1/inpaint")
    assert base64.b64decode(kwargs["json"]["image"]) == IMAGE
    assert kwargs["timeout"] == 60.0


def test_clipdrop_sends_multipart_with_api_key():
    session = FakeSession([make_response(200, CLEANED)])
    provider = ClipDropProvider(session, api_key="secret")

    result = asyncio.run(provider.remove(IMAGE, MASK))

    assert result.ok
    _, _, kwargs = session.calls[0]
    assert kwargs["headers"] == {"x-api-key": "secret"}
    assert set(kwargs["files"]) == {"image_file", "mask_file"}


def test_mask_is_required_by_inpainting_providers():
    provider = IOPaintProvider(FakeSession(), "http://iopaint.local")

    result = asyncio.run(provider.remove(IMAGE, None))

    assert result.outcome is ProviderOutcome.fatal_failure


@pytest.mark.parametrize(
    "failure, expected",
    [
        (requests.ConnectionError("reset"), ProviderOutcome.transient_failure),
        (requests.Timeout("slow"), ProviderOutcome.transient_failure),
        (requests.TooManyRedirects("loop"), ProviderOutcome.fatal_failure),
        (make_response(500, b"oops", content_type="text/plain"), ProviderOutcome.transient_failure),
        (make_response(413, b"", content_type="text/plain"), ProviderOutcome.payload_too_large),
    ],
)
def test_transport_failures_are_classified(failure, expected):
    provider = IOPaintProvider(FakeSession([failure]), "http://iopaint.local")

    assert asyncio.run(provider.remove(IMAGE, MASK)).outcome is expected


def test_json_body_with_url_is_downloaded():
    session = FakeSession(
        [
            make_response(json_body={"output": ["https://cdn.test/result.png"]}),
            make_response(200, CLEANED),
        ]
    )
    provider = IOPaintProvider(session, "http://iopaint.local")

    result = asyncio.run(provider.remove(IMAGE, MASK))

    assert result.data == CLEANED
    assert session.calls[1][:2] == ("GET", "https://cdn.test/result.png")


@pytest.mark.parametrize(
    "payload",
    [
        {"image": "data:image/png;base64," + base64.b64encode(CLEANED).decode()},
        {"result": base64.b64encode(CLEANED).decode()},
        [None, base64.b64encode(CLEANED).decode()],
    ],
)
def test_inline_payloads_are_decoded(payload):
    provider = IOPaintProvider(FakeSession(), "http://iopaint.local")

    assert asyncio.run(provider.normalize(payload)) == CLEANED


@pytest.mark.parametrize("payload", [{}, [], b"", "not base64 at all!", None])
def test_unusable_payloads_are_fatal(payload):
    provider = IOPaintProvider(FakeSession(), "http://iopaint.local")

    with pytest.raises(FatalProviderError):
        asyncio.run(provider.normalize(payload))


def test_replicate_polls_until_succeeded_and_downloads_output():
    session = FakeSession(
        [
            make_response(
                json_body={
                    "id": "abc",
                    "status": "starting",
                    "urls": {"get": "https://api.replicate.test/v1/predictions/abc"},
                }
            ),
            make_response(json_body={"id": "abc", "status": "processing"}),
            make_response(json_body={"id": "abc", "status": "succeeded", "output": "https://cdn.test/out.png"}),
            make_response(200, CLEANED),
        ]
    )
    provider, sleeps = _replicate(session)

    result = asyncio.run(provider.remove(IMAGE, MASK))

    assert result.ok and result.data == CLEANED
    assert sleeps == [0.5, 0.5]
    create = session.calls[0]
    assert create[1] == "https://api.replicate.test/v1/predictions"
    assert create[2]["json"]["version"] == "v1"
    assert create[2]["json"]["input"]["image"].startswith("data:image/png;base64,")
    assert create[2]["headers"]["Authorization"] == "Bearer token"
    assert [call[0] for call in session.calls] == ["POST", "GET", "GET", "GET"]


def test_replicate_failed_task_is_fatal():
    session = FakeSession(
        [
            make_response(json_body={"id": "abc", "status": "starting"}),
            make_response(json_body={"id": "abc", "status": "failed", "error": "CUDA out of memory"}),
        ]
    )
    provider, _ = _replicate(session)

    result = asyncio.run(provider.remove(IMAGE, MASK))

    assert result.outcome is ProviderOutcome.fatal_failure
    assert "CUDA out of memory" in result.reason
    assert session.calls[1][1] == "https://api.replicate.test/v1/predictions/abc"


def test_replicate_failure_mentioning_size_is_payload_too_large():
    session = FakeSession(
        [
            make_response(json_body={"id": "abc", "status": "starting"}),
            make_response(json_body={"id": "abc", "status": "failed", "error": "Input image too large"}),
        ]
    )
    provider, _ = _replicate(session)

    assert asyncio.run(provider.remove(IMAGE, MASK)).outcome is ProviderOutcome.payload_too_large


def test_replicate_poll_bound_is_transient():
    pending = [make_response(json_body={"id": "abc", "status": "processing"}) for _ in range(3)]
    session = FakeSession([make_response(json_body={"id": "abc", "status": "starting"}), *pending])
    provider, sleeps = _replicate(session, max_polls=3)

    result = asyncio.run(provider.remove(IMAGE, MASK))

    assert result.outcome is ProviderOutcome.transient_failure
    assert len(sleeps) == 3


def test_replicate_without_prediction_id_is_fatal():
    provider, _ = _replicate(FakeSession([make_response(json_body={"detail": "nope"})]))

    assert asyncio.run(provider.remove(IMAGE, MASK)).outcome is ProviderOutcome.fatal_failure


def test_remote_task_rejects_illegal_transitions():
    task = RemoteTask("t", "https://poll")
    task.advance(RemoteTaskState.pending)
    task.advance(RemoteTaskState.completed, result_ref="ref")

    assert task.done and task.result_ref == "ref"
    with pytest.raises(ValueError):
        task.advance(RemoteTaskState.pending)


def test_resolve_provider_names():
    assert resolve_provider_names("auto") == ["replicate", "iopaint", "clipdrop"]
    assert resolve_provider_names("IOPaint, bogus, iopaint, replicate") == ["iopaint", "replicate"]
    assert resolve_provider_names(["none"]) == []
    assert resolve_provider_names([]) == []


def test_build_providers_skips_unconfigured():
    settings = Settings(
        INPAINT_PROVIDERS="auto",
        IOPAINT_URL="http://iopaint.local",
        REPLICATE_API_TOKEN=None,
        CLIPDROP_API_KEY=None,
    )

    providers = build_providers(settings, FakeSession())

    assert [provider.name for provider in providers] == ["iopaint"]
