"""
Enum definitions for mediafuse models.

These enums define the valid values for status and type fields used by
synthesis jobs, circuit breakers and mux settings.
"""

import enum


class JobKind(str, enum.Enum):
    """Kind of external synthesis job."""

    VIDEO = "video"
    NARRATION = "narration"


class JobStatus(str, enum.Enum):
    """
    Synthesis job status values.

    Status only moves forward. COMPLETED, FAILED and TIMED_OUT are terminal.

    Attributes:
        PENDING: Submitted, provider has not started work
        RUNNING: Provider is generating
        COMPLETED: Output written to the result locator
        FAILED: Provider reported failure, or the status check failed hard
        TIMED_OUT: Job never reached a terminal state within its budget
    """

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        """Check if no further transitions are allowed."""
        return self in _TERMINAL_STATUSES

    @property
    def rank(self) -> int:
        """Position in the forward-only lifecycle."""
        return _STATUS_RANK[self]


_TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.TIMED_OUT})

_STATUS_RANK = {
    JobStatus.PENDING: 0,
    JobStatus.RUNNING: 1,
    JobStatus.COMPLETED: 2,
    JobStatus.FAILED: 2,
    JobStatus.TIMED_OUT: 2,
}


class CircuitState(str, enum.Enum):
    """
    Circuit breaker states.

    Attributes:
        CLOSED: Calls flow normally
        OPEN: Calls are rejected without contacting the provider
        HALF_OPEN: A single trial call is allowed through
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class MuxQuality(str, enum.Enum):
    """Encoding quality presets for re-encoded output."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
