"""
Tests for per-service circuit breaking.
"""

import asyncio

import pytest

from conftest import FakeClock, FakeProvider
from mediafuse.core.exceptions import (
    CircuitOpenError,
    InvalidInputError,
    RateLimitError,
    ServiceUnavailableError,
)
from mediafuse.models.enums import CircuitState, JobKind
from mediafuse.models.job import VideoSubmission
from mediafuse.resilience.circuit_breaker import CircuitBreaker, CircuitBreakerRegistry
from mediafuse.resilience.retry import RetryPolicy
from mediafuse.services.synthesis import VideoSynthesisClient


def failing(error: Exception):
    async def operation():
        raise error

    return operation


async def succeed():
    return "ok"


async def trip(breaker: CircuitBreaker) -> None:
    for _ in range(breaker.failure_threshold):
        with pytest.raises(ServiceUnavailableError):
            await breaker.call(failing(ServiceUnavailableError(service="Runway", message="down")))


class TestCircuitTransitions:
    """Tests for state transitions."""

    async def test_opens_after_threshold(self, clock: FakeClock) -> None:
        """The circuit should open after failure_threshold consecutive failures."""
        breaker = CircuitBreaker("Runway", failure_threshold=3, recovery_timeout=60, clock=clock)

        await trip(breaker)

        assert breaker.state is CircuitState.OPEN
        assert breaker.snapshot().consecutive_failures == 3

    async def test_success_resets_failure_count(self, clock: FakeClock) -> None:
        """A success should reset the consecutive failure count."""
        breaker = CircuitBreaker("Runway", failure_threshold=3, clock=clock)
        error = ServiceUnavailableError(service="Runway", message="down")

        for _ in range(2):
            with pytest.raises(ServiceUnavailableError):
                await breaker.call(failing(error))
        await breaker.call(succeed)
        for _ in range(2):
            with pytest.raises(ServiceUnavailableError):
                await breaker.call(failing(error))

        assert breaker.state is CircuitState.CLOSED

    async def test_open_rejects_without_calling(self, clock: FakeClock) -> None:
        """An open circuit should fail fast without invoking the operation."""
        breaker = CircuitBreaker("Runway", failure_threshold=1, clock=clock)
        await trip(breaker)
        calls = 0

        async def operation():
            nonlocal calls
            calls += 1

        with pytest.raises(CircuitOpenError):
            await breaker.call(operation)
        assert calls == 0

    async def test_half_open_after_recovery_timeout(self, clock: FakeClock) -> None:
        """The circuit should become half-open once the timeout elapses."""
        breaker = CircuitBreaker("Runway", failure_threshold=1, recovery_timeout=60, clock=clock)
        await trip(breaker)

        clock.advance(59)
        assert breaker.state is CircuitState.OPEN

        clock.advance(1)
        assert breaker.state is CircuitState.HALF_OPEN

    async def test_trial_success_closes(self, clock: FakeClock) -> None:
        """A successful trial should close the circuit."""
        breaker = CircuitBreaker("Runway", failure_threshold=1, recovery_timeout=60, clock=clock)
        await trip(breaker)
        clock.advance(60)

        assert await breaker.call(succeed) == "ok"
        assert breaker.state is CircuitState.CLOSED
        assert breaker.snapshot().consecutive_failures == 0

    async def test_trial_failure_reopens_with_fresh_timer(self, clock: FakeClock) -> None:
        """A failed trial should reopen the circuit and restart the timer."""
        breaker = CircuitBreaker("Runway", failure_threshold=1, recovery_timeout=60, clock=clock)
        await trip(breaker)
        clock.advance(60)

        with pytest.raises(ServiceUnavailableError):
            await breaker.call(failing(ServiceUnavailableError(service="Runway", message="down")))

        assert breaker.state is CircuitState.OPEN
        assert breaker.snapshot().opened_at == clock.now
        clock.advance(30)
        assert breaker.state is CircuitState.OPEN

    async def test_invalid_input_does_not_count(self, clock: FakeClock) -> None:
        """Rejected input should neither trip nor reset the circuit."""
        breaker = CircuitBreaker("Runway", failure_threshold=2, clock=clock)

        with pytest.raises(ServiceUnavailableError):
            await breaker.call(failing(ServiceUnavailableError(service="Runway", message="down")))
        for _ in range(5):
            with pytest.raises(InvalidInputError):
                await breaker.call(failing(InvalidInputError(service="Runway", message="bad")))

        assert breaker.state is CircuitState.CLOSED
        assert breaker.snapshot().consecutive_failures == 1


class TestHalfOpenConcurrency:
    """Tests for the single half-open trial."""

    async def test_only_one_trial_admitted(self, clock: FakeClock) -> None:
        """Concurrent callers should fail fast while the trial is in flight."""
        breaker = CircuitBreaker("Runway", failure_threshold=1, recovery_timeout=60, clock=clock)
        await trip(breaker)
        clock.advance(60)

        release = asyncio.Event()
        trial_calls = 0

        async def trial():
            nonlocal trial_calls
            trial_calls += 1
            await release.wait()
            return "trial"

        trial_task = asyncio.create_task(breaker.call(trial))
        await asyncio.sleep(0)

        results = await asyncio.gather(
            *(breaker.call(trial) for _ in range(5)), return_exceptions=True
        )
        assert all(isinstance(r, CircuitOpenError) for r in results)

        release.set()
        assert await trial_task == "trial"
        assert trial_calls == 1
        assert breaker.state is CircuitState.CLOSED

    async def test_cancelled_trial_releases_slot(self, clock: FakeClock) -> None:
        """Cancelling the trial should let the next caller try."""
        breaker = CircuitBreaker("Runway", failure_threshold=1, recovery_timeout=60, clock=clock)
        await trip(breaker)
        clock.advance(60)

        never = asyncio.Event()

        async def hang():
            await never.wait()

        trial_task = asyncio.create_task(breaker.call(hang))
        await asyncio.sleep(0)
        trial_task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await trial_task

        assert breaker.state is CircuitState.HALF_OPEN
        assert await breaker.call(succeed) == "ok"


class TestLateOutcomes:
    """Tests for calls that finish after the circuit changed state."""

    @staticmethod
    async def slow_call(breaker: CircuitBreaker, release: asyncio.Event, error: Exception | None):
        async def operation():
            await release.wait()
            if error is not None:
                raise error
            return "late"

        return await breaker.call(operation)

    async def test_late_success_does_not_close_half_open(self, clock: FakeClock) -> None:
        """A call admitted while closed should not close the circuit during the trial."""
        breaker = CircuitBreaker("Runway", failure_threshold=2, recovery_timeout=60, clock=clock)
        release_late = asyncio.Event()
        late = asyncio.create_task(self.slow_call(breaker, release_late, None))
        await asyncio.sleep(0)

        await trip(breaker)
        clock.advance(60)
        release_trial = asyncio.Event()
        trial = asyncio.create_task(self.slow_call(breaker, release_trial, None))
        await asyncio.sleep(0)

        release_late.set()
        assert await late == "late"

        assert breaker.state is CircuitState.HALF_OPEN
        with pytest.raises(CircuitOpenError):
            await breaker.call(succeed)

        release_trial.set()
        assert await trial == "late"
        assert breaker.state is CircuitState.CLOSED

    async def test_late_failure_does_not_reopen(self, clock: FakeClock) -> None:
        """A call admitted while closed should not re-open the circuit or reset its timer."""
        breaker = CircuitBreaker("Runway", failure_threshold=2, recovery_timeout=60, clock=clock)
        release_late = asyncio.Event()
        late = asyncio.create_task(
            self.slow_call(
                breaker, release_late, ServiceUnavailableError(service="Runway", message="slow")
            )
        )
        await asyncio.sleep(0)

        await trip(breaker)
        opened_at = breaker.snapshot().opened_at
        clock.advance(60)
        assert breaker.state is CircuitState.HALF_OPEN

        release_late.set()
        with pytest.raises(ServiceUnavailableError):
            await late

        snapshot = breaker.snapshot()
        assert snapshot.state is CircuitState.HALF_OPEN
        assert snapshot.opened_at == opened_at
        assert await breaker.call(succeed) == "ok"
        assert breaker.state is CircuitState.CLOSED


class TestCircuitBreakerRegistry:
    """Tests for the shared registry."""

    def test_one_breaker_per_service(self, circuits: CircuitBreakerRegistry) -> None:
        """The same name should always map to the same breaker."""
        assert circuits.get("Runway") is circuits.get("Runway")
        assert circuits.get("Runway") is not circuits.get("Polly")

    async def test_services_are_isolated(self, circuits: CircuitBreakerRegistry) -> None:
        """Failures against one service should not affect another."""
        for _ in range(5):
            with pytest.raises(ServiceUnavailableError):
                await circuits.call(
                    "Runway", failing(ServiceUnavailableError(service="Runway", message="down"))
                )

        snapshot = circuits.snapshot()
        assert snapshot["Runway"].state is CircuitState.OPEN
        assert await circuits.call("Polly", succeed) == "ok"
        assert circuits.get("Polly").state is CircuitState.CLOSED


class TestRateLimitedVideoProvider:
    """Rate limiting against the video provider end to end."""

    async def test_circuit_opens_after_five_rate_limits(
        self, clock: FakeClock, circuits: CircuitBreakerRegistry
    ) -> None:
        """Five rate-limited submissions should open the circuit; the sixth never reaches the provider."""
        provider = FakeProvider(
            "Runway",
            JobKind.VIDEO,
            submit_errors=[RateLimitError(service="Runway", message="slow down") for _ in range(10)],
        )
        client = VideoSynthesisClient(
            provider,
            circuits,
            RetryPolicy(max_attempts=5, base_delay=1.0, jitter=0, sleep=clock.sleep),
        )
        params = VideoSubmission(
            prompt="city skyline", duration_seconds=10, destination_locator="s3://test-media/v.mp4"
        )

        with pytest.raises(RateLimitError):
            await client.submit(params)
        assert len(provider.submit_calls) == 5
        assert circuits.get("Runway").state is CircuitState.OPEN

        with pytest.raises(CircuitOpenError):
            await client.submit(params)
        assert len(provider.submit_calls) == 5
