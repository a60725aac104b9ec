"""Tests for the async_retry decorator."""

from unittest.mock import AsyncMock, patch

import pytest

from infra_deploy.utils.retry import async_retry


@pytest.fixture
def no_sleep():
    with patch("infra_deploy.utils.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
        yield sleep


@pytest.mark.asyncio
async def test_returns_after_transient_failures(no_sleep):
    calls = AsyncMock(side_effect=[ConnectionError("reset"), ConnectionError("reset"), "ok"])

    @async_retry(max_attempts=3, backoff_factor=2.0, exceptions=(ConnectionError,))
    async def flaky():
        return await calls()

    assert await flaky() == "ok"
    assert calls.await_count == 3
    assert [c.args[0] for c in no_sleep.await_args_list] == [2.0, 4.0]


@pytest.mark.asyncio
async def test_reraises_when_exhausted(no_sleep):
    @async_retry(max_attempts=2, exceptions=(ConnectionError,))
    async def always_down():
        raise ConnectionError("down")

    with pytest.raises(ConnectionError, match="down"):
        await always_down()

    assert no_sleep.await_count == 1


@pytest.mark.asyncio
async def test_other_exceptions_are_not_retried(no_sleep):
    calls = AsyncMock(side_effect=ValueError("bad"))

    @async_retry(max_attempts=3, exceptions=(ConnectionError,))
    async def broken():
        return await calls()

    with pytest.raises(ValueError):
        await broken()

    assert calls.await_count == 1
    no_sleep.assert_not_awaited()
