"""Tests for connection utilities."""
import httpx
import pytest
from meshup.utils.connection import (
    with_retry,
    RETRYABLE_EXCEPTIONS,
)


class TestWithRetry:
    """Tests for retry decorator."""

    @pytest.mark.asyncio
    async def test_async_success_no_retry(self):
        """Successful async function doesn't retry."""
        call_count = 0

        @with_retry(max_attempts=3)
        async def succeeding_func():
            nonlocal call_count
            call_count += 1
            return "success"

        result = await succeeding_func()
        assert result == "success"
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_async_retry_then_success(self):
        """Socket not there yet, then the daemon answers."""
        call_count = 0

        @with_retry(max_attempts=3, min_wait=0.01, max_wait=0.1)
        async def failing_then_succeeding():
            nonlocal call_count
            call_count += 1
            if call_count < 2:
                raise FileNotFoundError("/run/tailscale/tailscaled.sock")
            return "success"

        result = await failing_then_succeeding()
        assert result == "success"
        assert call_count == 2

    @pytest.mark.asyncio
    async def test_async_max_retries_exceeded(self):
        """Async function raises after max retries."""
        call_count = 0

        @with_retry(max_attempts=3, min_wait=0.01, max_wait=0.1)
        async def always_failing():
            nonlocal call_count
            call_count += 1
            raise ConnectionRefusedError("Connection refused")

        with pytest.raises(ConnectionRefusedError):
            await always_failing()
        assert call_count == 3

    @pytest.mark.asyncio
    async def test_non_retryable_exception(self):
        """Non-retryable exceptions are not retried."""
        call_count = 0

        @with_retry(max_attempts=3)
        async def timing_out():
            nonlocal call_count
            call_count += 1
            raise httpx.ReadTimeout("daemon too slow")

        with pytest.raises(httpx.ReadTimeout):
            await timing_out()
        assert call_count == 1  # Request reached the daemon


class TestRetryableExceptions:
    """Tests for retryable exceptions list."""

    def test_connection_refused_is_retryable(self):
        """ConnectionRefusedError is retryable."""
        assert ConnectionRefusedError in RETRYABLE_EXCEPTIONS

    def test_missing_socket_is_retryable(self):
        """FileNotFoundError (socket not created yet) is retryable."""
        assert FileNotFoundError in RETRYABLE_EXCEPTIONS

    def test_httpx_connect_error_is_retryable(self):
        assert httpx.ConnectError in RETRYABLE_EXCEPTIONS

    def test_read_errors_are_not_retryable(self):
        """Requests that reached the daemon are never replayed."""
        assert httpx.ReadError not in RETRYABLE_EXCEPTIONS
        assert TimeoutError not in RETRYABLE_EXCEPTIONS
