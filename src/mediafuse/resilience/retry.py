"""
Bounded retry with exponential backoff and jitter.

A single RetryPolicy value is injected into every external-call adapter and
into the job poller, replacing per-call-site retry loops.
"""

import asyncio
import logging
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from mediafuse.core.config import Settings
from mediafuse.core.exceptions import ProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_retryable_error(error: BaseException) -> bool:
    """
    Default retry classifier.

    Rate-limited, unavailable and unknown provider failures are retried;
    invalid input, open circuits and anything that is not a provider
    error are surfaced immediately.
    """
    return isinstance(error, ProviderError) and error.retryable


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry configuration and executor.

    Attributes:
        max_attempts: Total attempts including the first call
        base_delay: Initial delay in seconds for exponential backoff
        max_delay: Maximum delay in seconds between attempts
        jitter: Upper bound of the random extra delay, as a fraction of the delay
        is_retryable: Predicate deciding whether an error may be retried
        sleep: Awaitable sleep function (injectable for tests)
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    jitter: float = 0.3
    is_retryable: Callable[[BaseException], bool] = is_retryable_error
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, compare=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    @classmethod
    def from_settings(cls, settings: Settings, **overrides) -> "RetryPolicy":
        """Build a policy from application settings."""
        params = {
            "max_attempts": settings.retry_max_attempts,
            "base_delay": settings.retry_base_delay_seconds,
            "max_delay": settings.retry_max_delay_seconds,
            "jitter": settings.retry_jitter,
        }
        params.update(overrides)
        return cls(**params)

    def compute_delay(self, attempt: int, error: BaseException | None = None) -> float:
        """
        Calculate the delay before the next attempt.

        Args:
            attempt: Attempt that just failed (0-indexed)
            error: The failure, consulted for a provider Retry-After hint

        Returns:
            Delay in seconds, never above max_delay
        """
        delay = min(self.base_delay * (2**attempt), self.max_delay)
        if self.jitter:
            delay += delay * self.jitter * random.random()

        retry_after = getattr(error, "retry_after", None)
        if retry_after:
            delay = max(delay, float(retry_after))

        return min(delay, self.max_delay)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        description: str = "operation",
        deadline: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> T:
        """
        Run an async operation, retrying retryable failures.

        Args:
            operation: Zero-argument coroutine factory, called once per attempt
            description: Label for log messages
            deadline: Clock reading after which no further attempt is made;
                backoff sleeps are clipped to it
            clock: Monotonic time source the deadline is measured on

        Returns:
            The operation's result

        Raises:
            The last error once attempts are exhausted or the deadline has
            passed, or the first non-retryable error unchanged
        """
        for attempt in range(self.max_attempts):
            try:
                return await operation()
            except Exception as e:
                if not self.is_retryable(e):
                    raise

                if attempt >= self.max_attempts - 1:
                    logger.warning(
                        f"{description} failed after all retries",
                        extra={
                            "attempts": self.max_attempts,
                            "error": str(e),
                        },
                    )
                    raise

                delay = self.compute_delay(attempt, e)
                if deadline is not None:
                    remaining = deadline - clock()
                    if remaining <= 0:
                        logger.warning(
                            f"{description} failed and the deadline has passed",
                            extra={"attempts": attempt + 1, "error": str(e)},
                        )
                        raise
                    delay = min(delay, remaining)

                logger.warning(
                    f"{description} failed, retrying",
                    extra={
                        "attempt": attempt + 1,
                        "max_attempts": self.max_attempts,
                        "delay_seconds": round(delay, 2),
                        "error": str(e),
                    },
                )
                await self.sleep(delay)

        raise AssertionError("unreachable")  # pragma: no cover
