"""
Generation request and pipeline result schemas.

These are the boundary shapes of the orchestrator: the request comes in from
a worker task payload and the result goes out to publishing and cost-display
consumers. Both accept and emit camelCase keys at the boundary.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from mediafuse.models.enums import MuxQuality


class BoundaryModel(BaseModel):
    """Base schema accepting both snake_case and camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class VoiceConfig(BoundaryModel):
    """
    Narration voice settings.

    Attributes:
        voice: Provider voice id (e.g. "Matthew")
        speed: Speaking rate (x-slow, slow, medium, fast, x-fast)
        language: BCP-47 language code
    """

    model_config = ConfigDict(frozen=True)

    voice: str = "Matthew"
    speed: str = "medium"
    language: str = "en-US"


class GenerationRequest(BoundaryModel):
    """
    Immutable content request.

    Semantic checks (non-empty prompt, duration bounds) are applied by the
    orchestrator so that invalid requests still yield a structured result.

    Attributes:
        prompt: Visual prompt for the video provider
        topic: Content topic, drives prompt hints and default voice
        duration_seconds: Target video duration
        audio_enabled: Whether to synthesize narration
        voice_config: Optional narration voice override
        subtitle_enabled: Whether to produce (and burn in) subtitles
        trend_id: Optional source identifier used in storage keys
        narration_script: Explicit narration text (derived when omitted)
        output_format: Container of the final artifact
        quality: Encoding preset used when the video is re-encoded
    """

    model_config = ConfigDict(frozen=True)

    prompt: str
    topic: str = "general"
    duration_seconds: float
    audio_enabled: bool = True
    voice_config: VoiceConfig | None = None
    subtitle_enabled: bool = False
    trend_id: str | None = None
    narration_script: str | None = None
    output_format: str = "mp4"
    quality: MuxQuality = MuxQuality.HIGH


class MediaMetadata(BoundaryModel):
    """Metadata describing the produced artifact."""

    duration_seconds: float = 0
    file_size_bytes: int = 0
    format: str = ""
    has_audio: bool = False
    has_subtitles: bool = False
    merged: bool = False


class PipelineResult(BoundaryModel):
    """
    Structured outcome of one orchestrator run.

    `success` is tied to the video stage only; degraded narration,
    subtitles or muxing surface through metadata flags and warnings.
    """

    success: bool
    artifact_locator: str | None = None
    metadata: MediaMetadata = Field(default_factory=MediaMetadata)
    cost_estimate: float = 0.0
    execution_time_ms: int = 0
    warnings: list[str] = Field(default_factory=list)
    error: str | None = None
    video_job_id: str | None = None
    narration_job_id: str | None = None
    subtitle_locator: str | None = None

    @classmethod
    def failed(
        cls,
        error: str,
        cost_estimate: float = 0.0,
        execution_time_ms: int = 0,
        warnings: list[str] | None = None,
        **extra: Any,
    ) -> "PipelineResult":
        """Build a failed result with empty metadata."""
        return cls(
            success=False,
            error=error,
            cost_estimate=cost_estimate,
            execution_time_ms=execution_time_ms,
            warnings=warnings or [],
            **extra,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize with camelCase keys for downstream consumers."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
