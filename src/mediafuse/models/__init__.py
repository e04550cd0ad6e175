"""
Domain models for mediafuse.

Exports request/result schemas, synthesis job tracking and mux types.
"""

from mediafuse.models.enums import CircuitState, JobKind, JobStatus, MuxQuality
from mediafuse.models.generation import (
    GenerationRequest,
    MediaMetadata,
    PipelineResult,
    VoiceConfig,
)
from mediafuse.models.job import (
    JobHandle,
    NarrationSubmission,
    StatusReport,
    SynthesisJob,
    VideoSubmission,
)
from mediafuse.models.mux import MuxRequest, MuxResult

__all__ = [
    # Enums
    "CircuitState",
    "JobKind",
    "JobStatus",
    "MuxQuality",
    # Boundary schemas
    "GenerationRequest",
    "VoiceConfig",
    "MediaMetadata",
    "PipelineResult",
    # Jobs
    "JobHandle",
    "StatusReport",
    "SynthesisJob",
    "VideoSubmission",
    "NarrationSubmission",
    # Muxing
    "MuxRequest",
    "MuxResult",
]
