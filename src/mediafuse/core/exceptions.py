"""
Custom exception classes for mediafuse.

These exceptions provide structured error handling throughout the pipeline.
Provider failures carry a classification that drives retry and circuit
breaker decisions; pipeline stages translate them into either a failed
result (video) or a degradation warning (narration, subtitles, muxing).
"""

import enum
from typing import Any


class MediaFuseError(Exception):
    """
    Base exception for all mediafuse-specific errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional error details (optional)
    """

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize the exception.

        Args:
            message: Human-readable error message
            code: Machine-readable error code
            details: Additional error context
        """
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for task results and logs.

        Returns:
            Dictionary representation of the error
        """
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


class ValidationError(MediaFuseError):
    """
    Raised when a generation request fails validation.

    Never retried. The orchestrator reports it as a failed result
    without contacting any provider.
    """

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize ValidationError.

        Args:
            message: Description of the validation error
            field: Name of the field that failed validation (optional)
            details: Additional validation context
        """
        error_details = details or {}
        if field:
            error_details["field"] = field

        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            details=error_details,
        )


class NotFoundError(MediaFuseError):
    """Raised when a stored object does not exist."""

    def __init__(
        self,
        resource_type: str,
        resource_id: str | None = None,
        message: str | None = None,
    ) -> None:
        if message is None:
            if resource_id:
                message = f"{resource_type} with ID '{resource_id}' not found"
            else:
                message = f"{resource_type} not found"

        super().__init__(
            message=message,
            code="NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": resource_id},
        )


class ExternalServiceError(MediaFuseError):
    """
    Raised when an external service call fails.

    Used for errors from Runway, Polly and S3.
    """

    def __init__(
        self,
        service: str,
        message: str,
        original_error: str | None = None,
        retry_after: float | None = None,
        code: str = "EXTERNAL_SERVICE_ERROR",
    ) -> None:
        """
        Initialize ExternalServiceError.

        Args:
            service: Name of the external service
            message: Description of the error
            original_error: Original error message from the service
            retry_after: Seconds to wait before retrying (optional)
            code: Machine-readable error code
        """
        details: dict[str, Any] = {"service": service}
        if original_error:
            details["original_error"] = original_error
        if retry_after:
            details["retry_after"] = retry_after

        self.service = service
        self.retry_after = retry_after
        super().__init__(
            message=message,
            code=code,
            details=details,
        )


class ProviderErrorKind(str, enum.Enum):
    """
    Classification of synthesis provider failures.

    Attributes:
        RATE_LIMITED: Provider throttled the request (retryable)
        INVALID_INPUT: Provider rejected the request (never retried)
        SERVICE_UNAVAILABLE: Provider or network is down (retryable)
        UNKNOWN: Unclassified failure (retryable)
    """

    RATE_LIMITED = "rate_limited"
    INVALID_INPUT = "invalid_input"
    SERVICE_UNAVAILABLE = "service_unavailable"
    UNKNOWN = "unknown"


class ProviderError(ExternalServiceError):
    """
    Classified failure from a synthesis provider.

    The kind decides whether RetryPolicy retries the call and whether
    the circuit breaker counts it.
    """

    kind: ProviderErrorKind = ProviderErrorKind.UNKNOWN

    def __init__(
        self,
        service: str,
        message: str,
        original_error: str | None = None,
        retry_after: float | None = None,
        kind: ProviderErrorKind | None = None,
    ) -> None:
        if kind is not None:
            self.kind = kind
        super().__init__(
            service=service,
            message=message,
            original_error=original_error,
            retry_after=retry_after,
            code=self.kind.value.upper(),
        )
        self.details["kind"] = self.kind.value

    @property
    def retryable(self) -> bool:
        """Whether a retry could plausibly succeed."""
        return self.kind is not ProviderErrorKind.INVALID_INPUT


class RateLimitError(ProviderError):
    """Raised when a provider throttles the request."""

    kind = ProviderErrorKind.RATE_LIMITED


class InvalidInputError(ProviderError):
    """Raised when a provider rejects the request parameters."""

    kind = ProviderErrorKind.INVALID_INPUT


class ServiceUnavailableError(ProviderError):
    """Raised when a provider is unreachable or failing server-side."""

    kind = ProviderErrorKind.SERVICE_UNAVAILABLE


class CircuitOpenError(MediaFuseError):
    """
    Raised when a call is rejected by an open circuit breaker.

    The provider is not contacted.
    """

    def __init__(self, service: str, message: str | None = None) -> None:
        self.service = service
        super().__init__(
            message=message or f"Circuit open for {service}; call rejected",
            code="CIRCUIT_OPEN",
            details={"service": service},
        )


class JobTimeoutError(MediaFuseError):
    """Raised when a synthesis job never reached a terminal state in its budget."""

    def __init__(self, job_id: str, max_wait: float) -> None:
        super().__init__(
            message=f"Job {job_id} did not finish within {max_wait:.0f} seconds",
            code="JOB_TIMEOUT",
            details={"job_id": job_id, "max_wait": max_wait},
        )


class JobStateError(MediaFuseError):
    """Raised on an illegal synthesis job state transition."""

    def __init__(self, job_id: str, message: str) -> None:
        super().__init__(
            message=message,
            code="JOB_STATE_ERROR",
            details={"job_id": job_id},
        )


class MuxError(MediaFuseError):
    """
    Raised when the muxing step fails.

    Attributes:
        exit_code: Exit code of the muxing process (None if it never exited)
        stderr_tail: Last lines of diagnostic output
    """

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        stderr_tail: list[str] | None = None,
    ) -> None:
        self.exit_code = exit_code
        self.stderr_tail = stderr_tail or []
        super().__init__(
            message=message,
            code="MUX_FAILURE",
            details={"exit_code": exit_code, "stderr_tail": self.stderr_tail},
        )


class PipelineError(MediaFuseError):
    """Raised when a pipeline stage fails in an unexpected way."""

    def __init__(
        self,
        message: str,
        stage: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        error_details = details or {}
        error_details["stage"] = stage

        super().__init__(
            message=message,
            code="PIPELINE_ERROR",
            details=error_details,
        )


class ProcessTimeoutError(MediaFuseError):
    """Raised when an external process exceeds its time limit and is killed."""

    def __init__(self, program: str, timeout: float, stderr_tail: list[str] | None = None) -> None:
        self.stderr_tail = stderr_tail or []
        super().__init__(
            message=f"{program} exceeded {timeout:.0f} seconds and was killed",
            code="PROCESS_TIMEOUT",
            details={"program": program, "timeout": timeout},
        )
