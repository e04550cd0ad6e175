"""
Synthesis job models.

A SynthesisJob tracks one external generation request (video or narration)
for the lifetime of a single orchestrator run. It is never shared across
requests, so it carries no locking.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from mediafuse.core.exceptions import JobStateError
from mediafuse.models.enums import JobKind, JobStatus


@dataclass(frozen=True)
class JobHandle:
    """
    Handle returned by a provider submission.

    Attributes:
        kind: Video or narration
        external_job_id: Provider-issued job identifier
        destination_locator: Storage key the job output will be written to
    """

    kind: JobKind
    external_job_id: str
    destination_locator: str


@dataclass(frozen=True)
class StatusReport:
    """
    Result of a single status check against a provider.

    Attributes:
        status: Normalized job status
        result_locator: Storage key of the output (only when COMPLETED)
        error: Provider or poller error message (FAILED / TIMED_OUT)
        progress: Provider progress indicator (0-100) when available
    """

    status: JobStatus
    result_locator: str | None = None
    error: str | None = None
    progress: int | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


@dataclass
class SynthesisJob:
    """
    One external synthesis job owned by an orchestrator run.

    Attributes:
        kind: Video or narration
        id: Local identifier for logging and correlation
        external_job_id: Provider job id, set once submitted
        status: Current status (monotonic)
        result_locator: Output storage key, only set on completion
        submitted_at: Submission timestamp
        last_polled_at: Timestamp of the last status update
        error: Failure reason for FAILED / TIMED_OUT jobs
    """

    kind: JobKind
    id: str = field(default_factory=lambda: str(uuid4()))
    external_job_id: str | None = None
    status: JobStatus = JobStatus.PENDING
    result_locator: str | None = None
    submitted_at: datetime | None = None
    last_polled_at: datetime | None = None
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def is_completed(self) -> bool:
        return self.status is JobStatus.COMPLETED

    @property
    def was_submitted(self) -> bool:
        """Whether the provider accepted the job (and so consumed units)."""
        return self.external_job_id is not None

    def mark_submitted(self, handle: JobHandle) -> None:
        """Record the provider handle after a successful submission."""
        self.external_job_id = handle.external_job_id
        self.submitted_at = datetime.now(UTC)

    def advance(
        self,
        status: JobStatus,
        result_locator: str | None = None,
        error: str | None = None,
    ) -> None:
        """
        Move the job forward to a new status.

        Backward moves (e.g. a provider reporting "queued" after
        "running") are ignored. Any change to a terminal job raises.

        Args:
            status: Newly observed status
            result_locator: Output locator, required for COMPLETED
            error: Failure reason for FAILED / TIMED_OUT

        Raises:
            JobStateError: If the job is already terminal, or COMPLETED
                is reported without a result locator
        """
        self.last_polled_at = datetime.now(UTC)

        if self.status.is_terminal:
            if status is self.status:
                return
            raise JobStateError(
                self.id,
                f"{self.kind.value} job {self.id} is already {self.status.value}; "
                f"cannot move to {status.value}",
            )

        if status.rank < self.status.rank:
            return

        if status is JobStatus.COMPLETED:
            if not result_locator:
                raise JobStateError(
                    self.id,
                    f"{self.kind.value} job {self.id} completed without a result locator",
                )
            self.result_locator = result_locator
        elif status.is_terminal:
            self.error = error

        self.status = status

    def fail(self, error: str) -> None:
        """Mark a non-terminal job as failed."""
        self.advance(JobStatus.FAILED, error=error)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "id": self.id,
            "kind": self.kind.value,
            "external_job_id": self.external_job_id,
            "status": self.status.value,
            "result_locator": self.result_locator,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
            "last_polled_at": self.last_polled_at.isoformat() if self.last_polled_at else None,
            "error": self.error,
        }


@dataclass(frozen=True)
class VideoSubmission:
    """
    Parameters of a video synthesis submission.

    Attributes:
        prompt: Visual prompt sent to the provider
        duration_seconds: Requested clip duration
        destination_locator: Where the finished clip will be stored
    """

    prompt: str
    duration_seconds: float
    destination_locator: str


@dataclass(frozen=True)
class NarrationSubmission:
    """
    Parameters of a narration synthesis submission.

    Attributes:
        text: Text or SSML to speak
        voice_id: Provider voice identifier
        text_type: "ssml" or "text"
        plain_text: Fallback text for engines without SSML support
        language: Language code of the voice
        key_prefix: Sub-prefix under the narration output prefix
    """

    text: str
    voice_id: str
    text_type: str = "ssml"
    plain_text: str | None = None
    language: str = "en-US"
    key_prefix: str = ""

    @property
    def characters(self) -> int:
        """Billable characters (the spoken text, not the markup)."""
        return len(self.plain_text if self.plain_text is not None else self.text)
