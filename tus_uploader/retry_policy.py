"""Exponential backoff retry policy.

The policy is a pure decision over (attempt, outcome); the only side effect
it owns is the interruptible wait between attempts.
"""

import asyncio
import logging
from dataclasses import dataclass

from tus_uploader.exceptions import TransferFailure, TransportError
from tus_uploader.models import ChunkResponse, RetryConfig

logger = logging.getLogger(__name__)

Outcome = ChunkResponse | BaseException


@dataclass(frozen=True)
class RetryDecision:
    """Result of evaluating one attempt's outcome."""

    retry: bool
    delay: float = 0.0

    @classmethod
    def stop(cls) -> "RetryDecision":
        """Do not retry."""
        return cls(retry=False)

    @classmethod
    def after(cls, delay: float) -> "RetryDecision":
        """Retry once ``delay`` seconds have elapsed."""
        return cls(retry=True, delay=delay)


class RetryPolicy:
    """Decide whether a failed attempt is retried and after how long."""

    def __init__(self, config: RetryConfig | None = None) -> None:
        """Initialize the policy.

        Args:
            config: Backoff configuration; defaults apply when omitted.
        """
        self._config = config or RetryConfig()

    @property
    def config(self) -> RetryConfig:
        """The immutable configuration this policy evaluates against."""
        return self._config

    def backoff_delay(self, attempt: int) -> float:
        """Delay for 0-indexed ``attempt``, capped at ``max_delay``."""
        config = self._config
        try:
            delay = config.initial_delay * config.backoff_multiplier**attempt
        except OverflowError:
            return config.max_delay
        return min(delay, config.max_delay)

    def should_retry(self, attempt: int, outcome: Outcome) -> RetryDecision:
        """Evaluate one attempt.

        Args:
            attempt: 0-indexed number of the attempt that produced ``outcome``.
            outcome: The response received, or the error raised instead.

        Returns:
            ``RetryDecision.after(delay)`` for a retryable failure with
            attempts left, otherwise ``RetryDecision.stop()``.
        """
        if isinstance(outcome, TransportError):
            retryable = True
        elif isinstance(outcome, ChunkResponse):
            retryable = (
                not outcome.ok and outcome.status in self._config.retryable_statuses
            )
        elif isinstance(outcome, TransferFailure):
            retryable = outcome.status in self._config.retryable_statuses
        else:
            retryable = False

        if not retryable or attempt >= self._config.max_retries:
            return RetryDecision.stop()
        return RetryDecision.after(self.backoff_delay(attempt))

    async def wait(self, delay: float, cancel_event: asyncio.Event) -> bool:
        """Sleep for ``delay`` seconds unless cancellation is requested.

        Args:
            delay: Seconds to wait.
            cancel_event: Set by the session when the caller cancels.

        Returns:
            True if the wait was interrupted by cancellation.
        """
        if cancel_event.is_set():
            return True
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        logger.info("Retry wait interrupted by cancellation")
        return True
