from __future__ import annotations

from pathlib import Path

import pytest

from helpers import FakeSession
from watermark_cleaner.core.config import Settings
from watermark_cleaner.core.context import CancellationToken, PipelineContext
from watermark_cleaner.schemas.cleanup import RetryPolicy


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        WORK_DIR=tmp_path,
        INPAINT_PROVIDERS="none",
        RETRY_INITIAL_BACKOFF_SECONDS=0.0,
        RETRY_MAX_BACKOFF_SECONDS=0.0,
        PROVIDER_POLL_INTERVAL_SECONDS=0.0,
    )


@pytest.fixture
def fast_retry() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, initial_backoff=0.0, max_backoff=0.0)


@pytest.fixture
def context_factory(settings: Settings, fast_retry: RetryPolicy):
    def _build(deadline: float | None = None) -> PipelineContext:
        return PipelineContext(
            settings=settings,
            retry_policy=fast_retry,
            session=FakeSession(),
            token=CancellationToken(deadline),
        )

    return _build
