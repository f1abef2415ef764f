"""
Tests for the Error Recovery System

Tests for error classification and retry strategies.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from app.core.recovery import (
    ChainError,
    ConflictError,
    ErrorKind,
    ExponentialBackoffStrategy,
    InsufficientSignaturesError,
    RecoverableError,
    RetryConfig,
    RetryStrategy,
    SubmissionFailedError,
    UnrecoverableError,
    ValidationError,
    classify_error,
)


# =============================================================================
# Error Classification Tests
# =============================================================================

class TestErrorClassification:
    """Tests for error classification."""

    def test_recoverable_error_is_recoverable(self):
        """Test that RecoverableError is classified as recoverable."""
        error = RecoverableError("Test error")
        assert error.context.recoverable is True

    def test_unrecoverable_error_is_not_recoverable(self):
        """Test that UnrecoverableError is classified as not recoverable."""
        error = UnrecoverableError("Test error")
        assert error.context.recoverable is False

    def test_chain_error_context(self):
        """Test ChainError carries chain id and kind."""
        error = ChainError("eth_gasPrice timed out", chain_id=31337)

        assert error.kind == ErrorKind.CHAIN
        assert error.context.chain_id == 31337
        assert error.context.recoverable is True

    def test_submission_failed_is_chain_error(self):
        error = SubmissionFailedError("gave up", chain_id=1)
        assert isinstance(error, ChainError)
        assert error.code == "SUBMISSION_FAILED"

    def test_to_dict(self):
        """Test the error body exposed to API callers."""
        error = ConflictError("Invoice is being processed", code="PAYMENT_IN_PROGRESS")
        assert error.to_dict() == {
            "kind": "conflict",
            "code": "PAYMENT_IN_PROGRESS",
            "message": "Invoice is being processed",
        }

    def test_insufficient_signatures_details(self):
        error = InsufficientSignaturesError("need more", transfer_id="ab", collected=1, threshold=2)
        assert error.details == {"transferId": "ab", "collected": 1, "threshold": 2}
        assert error.kind == ErrorKind.INSUFFICIENT_SIGNATURES

    def test_classify_network_error(self):
        """Test classification of plain network errors."""
        context = classify_error(Exception("Connection refused"))
        assert context.kind == ErrorKind.CHAIN
        assert context.recoverable is True

    def test_classify_unknown_error(self):
        """Test classification of unknown errors."""
        context = classify_error(Exception("Something weird happened"))
        assert context.kind == ErrorKind.INTERNAL
        assert context.recoverable is False


# =============================================================================
# Retry Strategy Tests
# =============================================================================

class TestRetryStrategy:
    """Tests for RetryStrategy."""

    @pytest.mark.asyncio
    async def test_success_on_first_attempt(self):
        """Test successful operation on first attempt."""
        strategy = RetryStrategy(RetryConfig(max_attempts=3), sleep=AsyncMock())
        operation = AsyncMock(return_value="success")

        result = await strategy.execute(operation)

        assert result == "success"
        assert operation.call_count == 1

    @pytest.mark.asyncio
    async def test_retry_on_chain_error(self):
        """Test retry on chain errors."""
        sleep = AsyncMock()
        strategy = RetryStrategy(RetryConfig(max_attempts=3, jitter=False), sleep=sleep)
        operation = AsyncMock(side_effect=[ChainError("flaky"), ChainError("flaky"), "success"])

        result = await strategy.execute(operation)

        assert result == "success"
        assert operation.call_count == 3
        assert sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_no_retry_on_unrecoverable(self):
        """Test no retry on unrecoverable errors."""
        sleep = AsyncMock()
        strategy = RetryStrategy(RetryConfig(max_attempts=3), sleep=sleep)
        operation = AsyncMock(side_effect=ValidationError("bad input"))

        with pytest.raises(ValidationError):
            await strategy.execute(operation)

        assert operation.call_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_max_attempts_exceeded(self):
        """Test that the last error propagates after max attempts."""
        strategy = RetryStrategy(RetryConfig(max_attempts=2), sleep=AsyncMock())
        operation = AsyncMock(side_effect=ChainError("down"))

        with pytest.raises(ChainError):
            await strategy.execute(operation)

        assert operation.call_count == 2

    @pytest.mark.asyncio
    async def test_retry_after_respected(self):
        """Test that a hinted retry delay is used."""
        sleep = AsyncMock()
        strategy = RetryStrategy(RetryConfig(max_attempts=2, max_delay_seconds=10), sleep=sleep)
        operation = AsyncMock(side_effect=[ChainError("rate limited", retry_after=4.0), "ok"])

        await strategy.execute(operation)

        sleep.assert_awaited_once_with(4.0)

    @pytest.mark.asyncio
    async def test_logs_each_retry(self):
        logger = MagicMock()
        strategy = RetryStrategy(RetryConfig(max_attempts=2), logger=logger, sleep=AsyncMock())
        operation = AsyncMock(side_effect=[ChainError("flaky"), "ok"])

        await strategy.execute(operation, {"operation": "eth_gasPrice"})

        logger.warning.assert_called_once()
        assert "eth_gasPrice" in logger.warning.call_args[0][0]


class TestExponentialBackoff:
    """Tests for ExponentialBackoffStrategy."""

    def test_delay_increases(self):
        """Test that delay increases exponentially."""
        config = RetryConfig(initial_delay_seconds=1.0, exponential_base=2.0, jitter=False)

        assert config.get_delay(0) == 1.0
        assert config.get_delay(1) == 2.0
        assert config.get_delay(2) == 4.0

    def test_delay_capped(self):
        """Test that delay is capped at max."""
        config = RetryConfig(initial_delay_seconds=1.0, max_delay_seconds=5.0, jitter=False)
        assert config.get_delay(10) == 5.0

    def test_configured_from_arguments(self):
        strategy = ExponentialBackoffStrategy(max_attempts=5, initial_delay=0.1, max_delay=2.0)
        assert strategy.config.max_attempts == 5
        assert strategy.config.initial_delay_seconds == 0.1
        assert strategy.config.jitter is True

    @pytest.mark.asyncio
    async def test_zero_delay_sleeps_zero(self):
        sleep = AsyncMock()
        strategy = ExponentialBackoffStrategy(max_attempts=3, initial_delay=0, sleep=sleep)
        operation = AsyncMock(side_effect=[ChainError("flaky"), "ok"])

        assert await strategy.execute(operation) == "ok"
        sleep.assert_awaited_once_with(0)
