"""
Resilient synthesis clients.

A SynthesisClient wraps a provider adapter with the shared resilience
primitives: submissions go through the retry policy and the provider's
circuit breaker, while status checks go through the breaker only (the
poller applies retries around them).
"""

import logging
from typing import Generic, Protocol, TypeVar

from mediafuse.models.enums import JobKind
from mediafuse.models.job import JobHandle, NarrationSubmission, StatusReport, VideoSubmission
from mediafuse.resilience.circuit_breaker import CircuitBreakerRegistry
from mediafuse.resilience.retry import RetryPolicy

logger = logging.getLogger(__name__)

P = TypeVar("P", contravariant=True)
ParamsT = TypeVar("ParamsT")


class SynthesisProvider(Protocol[P]):
    """Adapter for an external generation API."""

    @property
    def service_name(self) -> str: ...

    async def submit(self, params: P) -> JobHandle: ...

    async def check_status(self, handle: JobHandle) -> StatusReport: ...


class SynthesisClient(Generic[ParamsT]):
    """
    Provider adapter guarded by retries and a circuit breaker.

    Args:
        provider: Adapter performing the actual API calls
        circuits: Process-wide breaker registry
        retry_policy: Policy applied to submissions
    """

    kind: JobKind

    def __init__(
        self,
        provider: SynthesisProvider[ParamsT],
        circuits: CircuitBreakerRegistry,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self._provider = provider
        self._circuits = circuits
        self._retry_policy = retry_policy or RetryPolicy()

    @property
    def service_name(self) -> str:
        return self._provider.service_name

    async def submit(self, params: ParamsT) -> JobHandle:
        """
        Submit a job to the provider.

        Raises:
            CircuitOpenError: If the provider's circuit rejects the call
            ProviderError: If the submission fails after retries
        """
        handle = await self._retry_policy.run(
            lambda: self._circuits.call(self.service_name, lambda: self._provider.submit(params)),
            description=f"{self.service_name} {self.kind.value} submission",
        )
        logger.info(
            f"{self.kind.value.capitalize()} job submitted",
            extra={"service": self.service_name, "external_job_id": handle.external_job_id},
        )
        return handle

    async def check_status(self, handle: JobHandle) -> StatusReport:
        """Check a job through the provider's circuit breaker."""
        return await self._circuits.call(
            self.service_name, lambda: self._provider.check_status(handle)
        )


class VideoSynthesisClient(SynthesisClient[VideoSubmission]):
    """Synthesis client for video generation."""

    kind = JobKind.VIDEO


class NarrationSynthesisClient(SynthesisClient[NarrationSubmission]):
    """Synthesis client for narration generation."""

    kind = JobKind.NARRATION
