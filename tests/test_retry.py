"""Tests for reachinbox.retry."""

from __future__ import annotations

import httpx
import pytest

from reachinbox.config import RetryConfig
from reachinbox.retry import with_retry


@pytest.fixture
def config() -> RetryConfig:
    return RetryConfig(max_attempts=3, initial_wait_seconds=0.01, max_wait_seconds=0.05)


class TestWithRetry:
    @pytest.mark.asyncio
    async def test_succeeds_first_try(self, config: RetryConfig):
        call_count = 0

        @with_retry(config)
        async def fn():
            nonlocal call_count
            call_count += 1
            return "ok"

        assert await fn() == "ok"
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_retries_transport_errors_then_succeeds(self, config: RetryConfig):
        call_count = 0

        @with_retry(config)
        async def fn():
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise httpx.ConnectError("transient")
            return "recovered"

        assert await fn() == "recovered"
        assert call_count == 3

    @pytest.mark.asyncio
    async def test_exhausts_retries_and_reraises(self, config: RetryConfig):
        call_count = 0
        request = httpx.Request("POST", "http://hook.test/")

        @with_retry(config)
        async def fn():
            nonlocal call_count
            call_count += 1
            raise httpx.HTTPStatusError("boom", request=request, response=httpx.Response(503, request=request))

        with pytest.raises(httpx.HTTPStatusError):
            await fn()
        assert call_count == 3

    @pytest.mark.asyncio
    async def test_non_http_errors_fail_immediately(self, config: RetryConfig):
        call_count = 0

        @with_retry(config)
        async def fn():
            nonlocal call_count
            call_count += 1
            raise ValueError("bad payload")

        with pytest.raises(ValueError):
            await fn()
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_custom_retryable_exceptions(self, config: RetryConfig):
        call_count = 0

        @with_retry(config, retryable_exceptions=(ConnectionError,))
        async def fn():
            nonlocal call_count
            call_count += 1
            raise ConnectionError("down")

        with pytest.raises(ConnectionError):
            await fn()
        assert call_count == 3
