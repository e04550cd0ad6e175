"""
Per-service circuit breaking for external providers.

One CircuitBreaker exists per provider name, held in a
CircuitBreakerRegistry that is constructed once per worker process and
shared by every concurrently running pipeline. This is the only
cross-request mutable state in the pipeline, so every state change happens
under the breaker's lock with a single mutation per call outcome.

Half-open strategy: exactly one trial call is admitted; concurrent callers
arriving while the trial is in flight fail fast with CircuitOpenError
rather than queueing.

Every state transition starts a new epoch. A call only reports its outcome
to the epoch it was admitted in, so a slow call admitted while CLOSED cannot
close or re-open the circuit after it has moved on.
"""

import asyncio
import logging
import threading
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from mediafuse.core.config import Settings
from mediafuse.core.exceptions import CircuitOpenError, InvalidInputError, ValidationError
from mediafuse.models.enums import CircuitState

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CircuitSnapshot:
    """Point-in-time view of one breaker."""

    service_name: str
    state: CircuitState
    consecutive_failures: int
    opened_at: float | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "service_name": self.service_name,
            "state": self.state.value,
            "consecutive_failures": self.consecutive_failures,
            "opened_at": self.opened_at,
        }


def counts_as_failure(error: BaseException) -> bool:
    """
    Whether an error should count against the provider.

    Rejected input means the provider answered correctly, so it
    neither trips nor resets the circuit.
    """
    return not isinstance(error, (InvalidInputError, ValidationError))


class CircuitBreaker:
    """
    Failure gate for a single external service.

    Transitions:
        CLOSED -> OPEN after failure_threshold consecutive failures
        OPEN -> HALF_OPEN once recovery_timeout has elapsed since opening
        HALF_OPEN -> CLOSED on the trial call's success
        HALF_OPEN -> OPEN on the trial call's failure (timer resets)
    """

    def __init__(
        self,
        service_name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the breaker.

        Args:
            service_name: Name of the protected service
            failure_threshold: Consecutive failures before opening
            recovery_timeout: Seconds an open circuit waits before a trial
            clock: Monotonic time source (injectable for tests)
        """
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")

        self.service_name = service_name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._lock = threading.Lock()

        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._opened_at: float | None = None
        self._trial_in_flight = False
        self._epoch = 0

    @property
    def state(self) -> CircuitState:
        """Current state, with the OPEN -> HALF_OPEN timeout applied."""
        with self._lock:
            self._refresh()
            return self._state

    def snapshot(self) -> CircuitSnapshot:
        with self._lock:
            self._refresh()
            return CircuitSnapshot(
                service_name=self.service_name,
                state=self._state,
                consecutive_failures=self._consecutive_failures,
                opened_at=self._opened_at,
            )

    def _refresh(self) -> None:
        # Caller holds the lock.
        if (
            self._state is CircuitState.OPEN
            and self._opened_at is not None
            and self._clock() - self._opened_at >= self.recovery_timeout
        ):
            self._state = CircuitState.HALF_OPEN
            self._trial_in_flight = False
            self._epoch += 1
            logger.info(
                f"Circuit for {self.service_name} half-open",
                extra={"service": self.service_name},
            )

    def _admit(self) -> tuple[bool, int]:
        """
        Admit or reject a call.

        Returns:
            Whether the admitted call is the half-open trial, and the
            epoch it was admitted in

        Raises:
            CircuitOpenError: If the circuit is open or a trial is in flight
        """
        with self._lock:
            self._refresh()

            if self._state is CircuitState.OPEN:
                raise CircuitOpenError(self.service_name)

            if self._state is CircuitState.HALF_OPEN:
                if self._trial_in_flight:
                    raise CircuitOpenError(
                        self.service_name,
                        f"Circuit half-open for {self.service_name}; trial call already in flight",
                    )
                self._trial_in_flight = True
                return True, self._epoch

            return False, self._epoch

    def _is_stale(self, epoch: int | None) -> bool:
        # Caller holds the lock.
        if epoch is None or epoch == self._epoch:
            return False
        logger.debug(
            f"Ignoring outcome of a call admitted before the last transition of {self.service_name}",
            extra={"service": self.service_name, "call_epoch": epoch, "epoch": self._epoch},
        )
        return True

    def _open(self) -> None:
        # Caller holds the lock.
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        self._trial_in_flight = False
        self._epoch += 1
        logger.warning(
            f"Circuit for {self.service_name} opened",
            extra={
                "service": self.service_name,
                "consecutive_failures": self._consecutive_failures,
                "recovery_timeout": self.recovery_timeout,
            },
        )

    def record_success(self, epoch: int | None = None) -> None:
        """
        Record a successful call.

        Args:
            epoch: Epoch the call was admitted in; outcomes from an
                earlier epoch are ignored (None always applies)
        """
        with self._lock:
            if self._is_stale(epoch):
                return
            if self._state is not CircuitState.CLOSED:
                self._epoch += 1
                logger.info(
                    f"Circuit for {self.service_name} closed",
                    extra={"service": self.service_name},
                )
            self._state = CircuitState.CLOSED
            self._consecutive_failures = 0
            self._opened_at = None
            self._trial_in_flight = False

    def record_failure(self, epoch: int | None = None) -> None:
        """
        Record a failed call.

        Args:
            epoch: Epoch the call was admitted in; outcomes from an
                earlier epoch are ignored (None always applies)
        """
        with self._lock:
            if self._is_stale(epoch):
                return
            self._consecutive_failures += 1
            if self._state is CircuitState.HALF_OPEN:
                self._open()
            elif (
                self._state is CircuitState.CLOSED
                and self._consecutive_failures >= self.failure_threshold
            ):
                self._open()

    def _release_trial(self, trial: bool, epoch: int) -> None:
        if not trial:
            return
        with self._lock:
            if epoch == self._epoch:
                self._trial_in_flight = False

    async def call(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run an async operation through the breaker.

        Args:
            operation: Zero-argument coroutine factory

        Returns:
            The operation's result

        Raises:
            CircuitOpenError: Without invoking the operation, if rejected
            Whatever the operation raises, after recording the outcome
        """
        trial, epoch = self._admit()
        try:
            result = await operation()
        except asyncio.CancelledError:
            self._release_trial(trial, epoch)
            raise
        except Exception as e:
            if counts_as_failure(e):
                self.record_failure(epoch)
            else:
                self._release_trial(trial, epoch)
            raise

        self.record_success(epoch)
        return result


class CircuitBreakerRegistry:
    """
    Process-wide set of breakers keyed by service name.

    Constructed explicitly by the worker bootstrap and passed to the
    synthesis clients of every pipeline run.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._lock = threading.Lock()
        self._breakers: dict[str, CircuitBreaker] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "CircuitBreakerRegistry":
        return cls(
            failure_threshold=settings.circuit_failure_threshold,
            recovery_timeout=settings.circuit_recovery_timeout_seconds,
        )

    def get(self, service_name: str) -> CircuitBreaker:
        """Get the breaker for a service, creating it on first use."""
        with self._lock:
            breaker = self._breakers.get(service_name)
            if breaker is None:
                breaker = CircuitBreaker(
                    service_name,
                    failure_threshold=self.failure_threshold,
                    recovery_timeout=self.recovery_timeout,
                    clock=self._clock,
                )
                self._breakers[service_name] = breaker
            return breaker

    async def call(self, service_name: str, operation: Callable[[], Awaitable[T]]) -> T:
        """Run an operation through the named service's breaker."""
        return await self.get(service_name).call(operation)

    def snapshot(self) -> dict[str, CircuitSnapshot]:
        with self._lock:
            breakers = list(self._breakers.values())
        return {breaker.service_name: breaker.snapshot() for breaker in breakers}
