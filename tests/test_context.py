import asyncio

import pytest

from watermark_cleaner.core.context import CancellationToken, PipelineContext
from watermark_cleaner.core.errors import OperationCancelled


def test_guard_returns_result_when_not_cancelled():
    async def scenario():
        token = CancellationToken()
        return await token.guard(asyncio.sleep(0, result="done"))

    assert asyncio.run(scenario()) == "done"


def test_cancel_abandons_work_in_flight():
    async def scenario():
        token = CancellationToken()
        call = asyncio.create_task(token.guard(asyncio.sleep(10)))
        await asyncio.sleep(0.01)
        token.cancel("stop")
        return await call

    with pytest.raises(OperationCancelled, match="stop"):
        asyncio.run(scenario())


def test_deadline_refuses_new_work():
    async def scenario():
        token = CancellationToken(deadline_seconds=0.01)
        await asyncio.sleep(0.05)
        assert token.cancelled
        await token.guard(asyncio.sleep(0))

    with pytest.raises(OperationCancelled, match="deadline"):
        asyncio.run(scenario())


def test_context_from_settings_uses_configured_policy(settings):
    context = PipelineContext.from_settings(settings, deadline_seconds=30)

    assert context.retry_policy.max_attempts == settings.RETRY_MAX_ATTEMPTS
    assert context.token.remaining() <= 30
    context.close()


def test_zero_deadline_is_already_expired(settings):
    assert CancellationToken(deadline_seconds=0).cancelled
    assert not CancellationToken().cancelled

    expired = settings.model_copy(update={"PIPELINE_DEADLINE_SECONDS": 0.0})
    context = PipelineContext.from_settings(expired)

    assert context.token.cancelled
    assert context.token.reason == "deadline exceeded"
    context.close()
