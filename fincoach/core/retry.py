"""
Exponential-backoff retry primitives.

RetryExecutor wraps any async operation: it retries failures the caller's
predicate accepts, backing off min(base * 2^(attempt-1), max) between
attempts, and re-raises the last error (annotated with the attempt count)
once the budget is spent. Each execute() call keeps its own attempt
count, so one executor can serve concurrent callers.

Waits are timed and cancellable: pass an asyncio.Event owned by the
session and setting it interrupts the wait with RetryCancelledError.
"""

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

import structlog

from fincoach.core.config import coaching_config
from fincoach.core.exceptions import RetryCancelledError

log = structlog.get_logger(__name__)

T = TypeVar("T")


async def cancellable_sleep(
    delay: float, stop_event: Optional[asyncio.Event] = None
) -> None:
    """Sleep for ``delay`` seconds unless ``stop_event`` is set first.

    Raises:
        RetryCancelledError: If the stop event is (or becomes) set
    """
    if stop_event is None:
        await asyncio.sleep(delay)
        return

    if stop_event.is_set():
        raise RetryCancelledError("Wait cancelled before it started")

    try:
        await asyncio.wait_for(stop_event.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return

    raise RetryCancelledError("Wait cancelled by stop signal")


def _always(_: BaseException) -> bool:
    return True


class RetryExecutor:
    """Retry an async operation with capped exponential backoff.

    Usage:
        executor = RetryExecutor(max_retries=3, base_delay=0.5)
        data = await executor.execute(
            lambda: storage.load(key),
            should_retry=lambda e: isinstance(e, StorageError),
        )
    """

    def __init__(
        self,
        max_retries: Optional[int] = None,
        base_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
    ):
        """
        Args:
            max_retries: Retries after the first attempt (defaults to coaching_config)
            base_delay: Delay before the first retry, in seconds
            max_delay: Upper bound on any single delay, in seconds
        """
        cfg = coaching_config.retry
        self.max_retries = max_retries if max_retries is not None else cfg.max_retries
        self.base_delay = base_delay if base_delay is not None else cfg.base_delay_seconds
        self.max_delay = max_delay if max_delay is not None else cfg.max_delay_seconds
        # Attempts made by the most recent execute(); informational only
        self.last_attempts = 0

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number ``attempt`` (1-indexed)."""
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        should_retry: Callable[[BaseException], bool] = _always,
        stop_event: Optional[asyncio.Event] = None,
    ) -> T:
        """
        Run ``operation`` until it succeeds or the retry budget is spent.

        Args:
            operation: Zero-argument callable returning an awaitable
            should_retry: Predicate deciding whether an error is retryable
            stop_event: Optional event that aborts pending waits

        Returns:
            The operation's result

        Raises:
            Exception: The last error from ``operation`` once retries are
                exhausted or the predicate refuses it
            RetryCancelledError: If ``stop_event`` fires during a wait
        """
        failures = 0

        while True:
            try:
                result = await operation()
            except Exception as e:
                failures += 1

                if failures > self.max_retries or not should_retry(e):
                    self.last_attempts = failures
                    log.warning(
                        "retry_exhausted",
                        attempts=failures,
                        max_retries=self.max_retries,
                        error_type=type(e).__name__,
                        error=str(e),
                    )
                    e.add_note(f"Gave up after {failures} attempt(s)")
                    raise

                delay = self.delay_for(failures)
                log.info(
                    "retry_attempt_failed",
                    attempt=failures,
                    max_retries=self.max_retries,
                    delay_seconds=delay,
                    error_type=type(e).__name__,
                )
                await cancellable_sleep(delay, stop_event)
            else:
                self.last_attempts = failures + 1
                return result
