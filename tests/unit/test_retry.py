"""
Unit tests for retry helpers.
"""

from unittest.mock import AsyncMock

import httpx
import pytest

from quizscout.utils.retry import backoff_seconds, fetch_retry


class TestBackoffSeconds:
    """Tests for backoff_seconds."""

    def test_exponential_growth(self):
        """Test doubling per attempt without jitter."""
        assert [backoff_seconds(a, base=30, jitter=False) for a in (1, 2, 3, 4)] == [30, 60, 120, 240]

    def test_cap(self):
        """Test that delays stop at the cap."""
        assert backoff_seconds(20, base=30, cap=3600, jitter=False) == 3600

    def test_jitter_bounds(self):
        """Test that jitter adds at most 10%."""
        for _ in range(20):
            delay = backoff_seconds(3, base=30)
            assert 120 <= delay <= 132


class TestFetchRetry:
    """Tests for the fetch_retry decorator."""

    @pytest.mark.asyncio
    async def test_retries_transport_errors(self):
        """Test that connection errors are retried then succeed."""
        call = AsyncMock(side_effect=[httpx.ConnectError("reset"), "ok"])

        @fetch_retry(max_attempts=3, min_wait_seconds=0, max_wait_seconds=0)
        async def get():
            return await call()

        assert await get() == "ok"
        assert call.await_count == 2

    @pytest.mark.asyncio
    async def test_does_not_retry_timeouts(self):
        """Test that timeouts surface immediately."""
        call = AsyncMock(side_effect=httpx.ReadTimeout("slow"))

        @fetch_retry(max_attempts=3, min_wait_seconds=0, max_wait_seconds=0)
        async def get():
            return await call()

        with pytest.raises(httpx.ReadTimeout):
            await get()
        assert call.await_count == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        """Test that the last transport error is re-raised."""
        call = AsyncMock(side_effect=httpx.ConnectError("down"))

        @fetch_retry(max_attempts=2, min_wait_seconds=0, max_wait_seconds=0)
        async def get():
            return await call()

        with pytest.raises(httpx.ConnectError):
            await get()
        assert call.await_count == 2
