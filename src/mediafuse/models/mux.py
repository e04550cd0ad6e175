"""Mux request and result models."""

from dataclasses import dataclass

from mediafuse.core.exceptions import JobStateError
from mediafuse.models.enums import MuxQuality
from mediafuse.models.job import SynthesisJob


@dataclass(frozen=True)
class MuxRequest:
    """
    Inputs for one muxing run.

    Only ever built from completed jobs; see `from_jobs`.

    Attributes:
        video_locator: Storage key of the video (required)
        audio_locator: Storage key of the narration track
        subtitle_locator: Storage key of an SRT file to burn in
        output_format: Output container
        quality: Encoding preset used when re-encoding
    """

    video_locator: str
    audio_locator: str | None = None
    subtitle_locator: str | None = None
    output_format: str = "mp4"
    quality: MuxQuality = MuxQuality.HIGH

    def __post_init__(self) -> None:
        if not self.video_locator:
            raise ValueError("MuxRequest requires a video locator")

    @classmethod
    def from_jobs(
        cls,
        video_job: SynthesisJob,
        narration_job: SynthesisJob | None = None,
        subtitle_locator: str | None = None,
        output_format: str = "mp4",
        quality: MuxQuality = MuxQuality.HIGH,
    ) -> "MuxRequest":
        """
        Build a request from completed synthesis jobs.

        Raises:
            JobStateError: If any referenced job is not completed
        """
        for job in (video_job, narration_job):
            if job is not None and not job.is_completed:
                raise JobStateError(
                    job.id,
                    f"Cannot mux {job.kind.value} job {job.id} in state {job.status.value}",
                )

        return cls(
            video_locator=video_job.result_locator or "",
            audio_locator=narration_job.result_locator if narration_job else None,
            subtitle_locator=subtitle_locator,
            output_format=output_format,
            quality=quality,
        )


@dataclass(frozen=True)
class MuxResult:
    """
    Outcome of a mux (or of skipping it).

    `merged=False` means the pipeline degraded and `output_locator`
    is the original video locator.
    """

    output_locator: str
    size_bytes: int
    has_audio: bool
    has_subtitles: bool
    merged: bool

    @classmethod
    def unmerged(cls, video_locator: str, size_bytes: int = 0) -> "MuxResult":
        return cls(
            output_locator=video_locator,
            size_bytes=size_bytes,
            has_audio=False,
            has_subtitles=False,
            merged=False,
        )
