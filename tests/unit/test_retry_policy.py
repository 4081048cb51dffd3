"""Tests for the exponential backoff retry policy."""

import asyncio

import pytest

from tus_uploader.exceptions import (
    AuthenticationFailure,
    ProtocolError,
    SourceUnavailable,
    TransferFailure,
    TransportError,
)
from tus_uploader.models import ChunkResponse, RetryConfig
from tus_uploader.retry_policy import RetryDecision, RetryPolicy


def _policy(**fields) -> RetryPolicy:
    return RetryPolicy(RetryConfig(**fields))


class TestBackoffDelay:
    def test_doubles_from_initial_delay(self) -> None:
        policy = _policy(initial_delay=1.0, max_delay=30.0, backoff_multiplier=2)
        assert [policy.backoff_delay(k) for k in range(6)] == [
            1.0,
            2.0,
            4.0,
            8.0,
            16.0,
            30.0,
        ]

    def test_capped_at_max_delay(self) -> None:
        policy = _policy(initial_delay=1.0, backoff_multiplier=1000, max_delay=0.1)
        assert all(policy.backoff_delay(k) == 0.1 for k in range(10))

    def test_huge_attempt_saturates(self) -> None:
        policy = _policy(initial_delay=1.0, backoff_multiplier=1000, max_delay=5.0)
        assert policy.backoff_delay(10_000) == 5.0

    def test_multiplier_of_one_is_constant(self) -> None:
        policy = _policy(initial_delay=0.25, backoff_multiplier=1)
        assert {policy.backoff_delay(k) for k in range(5)} == {0.25}


class TestShouldRetry:
    def test_transport_error_retries_until_max(self) -> None:
        policy = _policy(max_retries=2, initial_delay=1.0)
        error = TransportError("connection reset")

        assert policy.should_retry(0, error) == RetryDecision.after(1.0)
        assert policy.should_retry(1, error) == RetryDecision.after(2.0)
        assert policy.should_retry(2, error) == RetryDecision.stop()

    def test_retryable_status_retries(self) -> None:
        policy = _policy(max_retries=3)
        assert policy.should_retry(0, ChunkResponse(status=503)).retry is True
        assert policy.should_retry(0, TransferFailure("x", 429)).retry is True

    def test_non_retryable_status_stops(self) -> None:
        policy = _policy(max_retries=3, retryable_statuses=[500])
        assert policy.should_retry(0, ChunkResponse(status=404)) == RetryDecision.stop()
        assert policy.should_retry(0, TransferFailure("x", 404)).retry is False

    def test_success_stops(self) -> None:
        assert _policy().should_retry(0, ChunkResponse(status=204)).retry is False

    def test_retryable_2xx_listed_status_still_stops(self) -> None:
        policy = _policy(retryable_statuses=[204])
        assert policy.should_retry(0, ChunkResponse(status=204)).retry is False

    def test_zero_retries_never_retries(self) -> None:
        policy = _policy(max_retries=0)
        assert policy.should_retry(0, TransportError("reset")).retry is False
        assert policy.should_retry(0, ChunkResponse(status=500)).retry is False

    def test_negative_max_retries_behaves_as_zero(self) -> None:
        policy = _policy(max_retries=-1)
        assert policy.should_retry(0, ChunkResponse(status=500)).retry is False

    def test_empty_statuses_only_retry_transport_errors(self) -> None:
        policy = _policy(max_retries=2, retryable_statuses=[])
        assert policy.should_retry(0, ChunkResponse(status=503)).retry is False
        assert policy.should_retry(0, TransportError("timeout")).retry is True

    @pytest.mark.parametrize(
        "error",
        [
            AuthenticationFailure("denied", 401),
            AuthenticationFailure("denied", 403),
            ProtocolError("no location"),
            SourceUnavailable("gone"),
        ],
    )
    def test_fatal_errors_never_retry(self, error) -> None:
        # 401/403 stop even when listed as retryable
        policy = _policy(max_retries=5, retryable_statuses=[401, 403, 500])
        assert policy.should_retry(0, error).retry is False


class TestWait:
    @pytest.mark.asyncio
    async def test_wait_elapses_without_cancellation(self) -> None:
        policy = _policy()
        assert await policy.wait(0.01, asyncio.Event()) is False

    @pytest.mark.asyncio
    async def test_wait_interrupted_by_cancellation(self) -> None:
        policy = _policy()
        event = asyncio.Event()
        loop = asyncio.get_running_loop()
        loop.call_later(0.01, event.set)

        started = loop.time()
        assert await policy.wait(30.0, event) is True
        assert loop.time() - started < 5.0

    @pytest.mark.asyncio
    async def test_wait_returns_immediately_when_already_cancelled(self) -> None:
        event = asyncio.Event()
        event.set()
        assert await _policy().wait(30.0, event) is True
