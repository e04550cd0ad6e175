"""
Media generation pipeline orchestrator.

One generate() call owns one run: it validates the request, runs the video
and narration stages as concurrent tasks, and fuses whatever finished into
a single artifact. Only the video stage is fatal; narration, subtitles and
muxing degrade into warnings.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from decimal import Decimal
from pathlib import PurePosixPath
from typing import Any
from uuid import uuid4

from mediafuse.core.config import Settings, get_settings
from mediafuse.core.exceptions import MediaFuseError, MuxError, ValidationError
from mediafuse.integrations.storage_client import ObjectStorage, build_locator
from mediafuse.jobs.poller import AsyncJobPoller
from mediafuse.models.enums import JobKind
from mediafuse.models.generation import GenerationRequest, MediaMetadata, PipelineResult
from mediafuse.models.job import NarrationSubmission, SynthesisJob, VideoSubmission
from mediafuse.models.mux import MuxRequest, MuxResult
from mediafuse.resilience.retry import RetryPolicy
from mediafuse.services.cost import CostEstimator, CostRates
from mediafuse.services.muxer import MediaMuxer, build_output_locator
from mediafuse.services.narration import (
    build_narration_submission,
    default_narration_script,
    enhance_prompt_for_topic,
    fit_script_to_duration,
)
from mediafuse.services.subtitles import build_srt
from mediafuse.services.synthesis import NarrationSynthesisClient, VideoSynthesisClient

logger = logging.getLogger(__name__)


class GenerationOrchestrator:
    """
    Coordinates video synthesis, narration synthesis and muxing.

    Example:
        ```python
        orchestrator = GenerationOrchestrator(
            video_client=VideoSynthesisClient(runway, circuits, retry_policy),
            narration_client=NarrationSynthesisClient(polly, circuits, retry_policy),
            muxer=MediaMuxer(storage),
            storage=storage,
        )
        result = await orchestrator.generate(request)
        ```
    """

    def __init__(
        self,
        video_client: VideoSynthesisClient,
        narration_client: NarrationSynthesisClient,
        muxer: MediaMuxer,
        storage: ObjectStorage,
        poller: AsyncJobPoller | None = None,
        cost_estimator: CostEstimator | None = None,
        settings: Settings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            video_client: Guarded video provider client
            narration_client: Guarded narration provider client
            muxer: Muxer merging finished media
            storage: Storage for subtitles and artifact metadata
            poller: Job poller (built from settings if omitted)
            cost_estimator: Cost estimator (rates from settings if omitted)
            settings: Application settings instance
            clock: Monotonic time source for execution time
        """
        self._settings = settings or get_settings()
        self._video_client = video_client
        self._narration_client = narration_client
        self._muxer = muxer
        self._storage = storage
        self._poller = poller or AsyncJobPoller(
            retry_policy=RetryPolicy.from_settings(self._settings)
        )
        self._cost_estimator = cost_estimator or CostEstimator(
            CostRates.from_settings(self._settings)
        )
        self._clock = clock

    def _validate(self, request: GenerationRequest) -> None:
        """
        Apply semantic request checks.

        Raises:
            ValidationError: If the request cannot be processed
        """
        if not request.prompt or not request.prompt.strip():
            raise ValidationError("Prompt cannot be empty", field="prompt")

        low = self._settings.min_duration_seconds
        high = self._settings.max_duration_seconds
        if not low <= request.duration_seconds <= high:
            raise ValidationError(
                f"Duration must be between {low:g} and {high:g} seconds",
                field="duration_seconds",
                details={"duration_seconds": request.duration_seconds},
            )

    async def generate(self, request: GenerationRequest) -> PipelineResult:
        """
        Run the full pipeline for one request.

        Args:
            request: Content request

        Returns:
            PipelineResult; success is False only for invalid requests and
            fatal video failures
        """
        start = self._clock()

        try:
            self._validate(request)
        except ValidationError as e:
            logger.info("Rejected generation request", extra={"error": e.message})
            return PipelineResult.failed(e.message, execution_time_ms=self._elapsed_ms(start))

        run_key = request.trend_id or uuid4().hex[:12]
        bucket = self._settings.media_bucket
        warnings: list[str] = []

        video_job = SynthesisJob(kind=JobKind.VIDEO)
        video_params = VideoSubmission(
            prompt=enhance_prompt_for_topic(request.prompt, request.topic),
            duration_seconds=request.duration_seconds,
            destination_locator=build_locator(bucket, f"videos/{request.topic}/{run_key}.mp4"),
        )

        narration_job: SynthesisJob | None = None
        narration_params: NarrationSubmission | None = None
        if request.audio_enabled:
            narration_job = SynthesisJob(kind=JobKind.NARRATION)
            narration_params = build_narration_submission(request, key_prefix=f"{request.topic}/")

        logger.info(
            "Starting generation pipeline",
            extra={
                "run_key": run_key,
                "topic": request.topic,
                "duration_seconds": request.duration_seconds,
                "audio_enabled": request.audio_enabled,
                "subtitle_enabled": request.subtitle_enabled,
            },
        )

        video_task = asyncio.create_task(
            self._run_stage(
                video_job,
                self._video_client,
                video_params,
                interval=self._settings.video_poll_interval_seconds,
                max_wait=self._settings.video_max_wait_seconds,
            )
        )
        narration_task: asyncio.Task[None] | None = None
        if narration_job is not None and narration_params is not None:
            narration_task = asyncio.create_task(
                self._run_stage(
                    narration_job,
                    self._narration_client,
                    narration_params,
                    interval=self._settings.narration_poll_interval_seconds,
                    max_wait=self._settings.narration_max_wait_seconds,
                )
            )

        try:
            await video_task

            if not video_job.is_completed:
                if narration_task is not None:
                    narration_task.cancel()
                    await asyncio.gather(narration_task, return_exceptions=True)

                logger.error(
                    "Video stage failed; aborting run",
                    extra={"run_key": run_key, "video_job": video_job.to_dict()},
                )
                return PipelineResult.failed(
                    f"Video generation failed: {video_job.error or video_job.status.value}",
                    cost_estimate=self._cost(request, video_job, narration_job, narration_params),
                    execution_time_ms=self._elapsed_ms(start),
                    warnings=warnings,
                    video_job_id=video_job.external_job_id,
                    narration_job_id=narration_job.external_job_id if narration_job else None,
                )

            if narration_task is not None:
                await narration_task
        finally:
            for task in (video_task, narration_task):
                if task is not None and not task.done():
                    task.cancel()

        if narration_job is not None and not narration_job.is_completed:
            warnings.append(
                f"Narration unavailable ({narration_job.status.value}): "
                f"{narration_job.error or 'no audio produced'}"
            )

        subtitle_locator: str | None = None
        if request.subtitle_enabled:
            subtitle_locator = await self._store_subtitles(
                request, narration_params, build_locator(bucket, f"subtitles/{run_key}.srt"), warnings
            )

        mux_result = await self._fuse(request, video_job, narration_job, subtitle_locator, warnings)

        if subtitle_locator and not mux_result.has_subtitles:
            warnings.append("Subtitles were not burned in; the SRT file is available separately")

        metadata = MediaMetadata(
            duration_seconds=request.duration_seconds,
            file_size_bytes=mux_result.size_bytes,
            format=request.output_format
            if mux_result.merged
            else (PurePosixPath(mux_result.output_locator).suffix.lstrip(".") or "mp4"),
            has_audio=mux_result.has_audio,
            has_subtitles=mux_result.has_subtitles,
            merged=mux_result.merged,
        )

        result = PipelineResult(
            success=True,
            artifact_locator=mux_result.output_locator,
            metadata=metadata,
            cost_estimate=self._cost(request, video_job, narration_job, narration_params),
            execution_time_ms=self._elapsed_ms(start),
            warnings=warnings,
            video_job_id=video_job.external_job_id,
            narration_job_id=narration_job.external_job_id if narration_job else None,
            subtitle_locator=subtitle_locator,
        )

        logger.info(
            "Generation pipeline complete",
            extra={
                "run_key": run_key,
                "artifact_locator": result.artifact_locator,
                "merged": metadata.merged,
                "warnings": len(warnings),
                "execution_time_ms": result.execution_time_ms,
            },
        )
        return result

    async def _run_stage(
        self,
        job: SynthesisJob,
        client: VideoSynthesisClient | NarrationSynthesisClient,
        params: Any,
        interval: float,
        max_wait: float,
    ) -> None:
        """
        Submit a job and poll it to a terminal state.

        Failures are recorded on the job rather than raised.
        """
        try:
            handle = await client.submit(params)
            job.mark_submitted(handle)

            await self._poller.poll(
                job.id,
                lambda: client.check_status(handle),
                interval=interval,
                max_wait=max_wait,
                on_status=lambda report: job.advance(
                    report.status,
                    result_locator=report.result_locator,
                    error=report.error,
                ),
            )
        except MediaFuseError as e:
            logger.warning(
                f"{job.kind.value.capitalize()} stage failed",
                extra={"job_id": job.id, "code": e.code, "error": e.message},
            )
            self._fail(job, e.message)
        except Exception as e:
            logger.exception(
                f"Unexpected error in {job.kind.value} stage",
                extra={"job_id": job.id},
            )
            self._fail(job, f"Unexpected error: {e}")

        logger.info(
            f"{job.kind.value.capitalize()} stage finished",
            extra={"job_id": job.id, "status": job.status.value},
        )

    @staticmethod
    def _fail(job: SynthesisJob, error: str) -> None:
        if not job.is_terminal:
            job.fail(error)

    async def _store_subtitles(
        self,
        request: GenerationRequest,
        narration_params: NarrationSubmission | None,
        locator: str,
        warnings: list[str],
    ) -> str | None:
        """Build and store the SRT sidecar; failures become warnings."""
        if narration_params is not None and narration_params.plain_text is not None:
            script = narration_params.plain_text
        else:
            script = fit_script_to_duration(default_narration_script(request), request.duration_seconds)

        srt = build_srt(script, request.duration_seconds)
        if not srt:
            warnings.append("Subtitles skipped: narration script is empty")
            return None

        try:
            await self._storage.put(locator, srt.encode("utf-8"), content_type="application/x-subrip")
        except MediaFuseError as e:
            logger.warning("Failed to store subtitles", extra={"locator": locator, "error": e.message})
            warnings.append(f"Subtitles unavailable: {e.message}")
            return None
        return locator

    async def _fuse(
        self,
        request: GenerationRequest,
        video_job: SynthesisJob,
        narration_job: SynthesisJob | None,
        subtitle_locator: str | None,
        warnings: list[str],
    ) -> MuxResult:
        """Mux when narration completed, otherwise fall back to the bare video."""
        video_locator = video_job.result_locator or ""

        if narration_job is not None and narration_job.is_completed:
            mux_request = MuxRequest.from_jobs(
                video_job,
                narration_job,
                subtitle_locator=subtitle_locator,
                output_format=request.output_format,
                quality=request.quality,
            )
            try:
                return await self._muxer.mux(
                    mux_request, build_output_locator(video_locator, request.output_format)
                )
            except MuxError as e:
                logger.warning(
                    "Muxing failed; returning video without narration",
                    extra={"error": e.message, "exit_code": e.exit_code},
                )
                warnings.append(f"Muxing failed; returning unmerged video: {e.message}")

        return MuxResult.unmerged(video_locator, size_bytes=await self._artifact_size(video_locator))

    async def _artifact_size(self, locator: str) -> int:
        try:
            metadata = await self._storage.head_metadata(locator)
        except MediaFuseError as e:
            logger.warning(
                "Could not read artifact size",
                extra={"locator": locator, "error": e.message},
            )
            return 0
        return metadata.size_bytes

    def _cost(
        self,
        request: GenerationRequest,
        video_job: SynthesisJob,
        narration_job: SynthesisJob | None,
        narration_params: NarrationSubmission | None,
    ) -> float:
        """Estimate cost from the units that were actually submitted."""
        video_seconds = request.duration_seconds if video_job.was_submitted else 0
        characters = (
            narration_params.characters
            if narration_job is not None and narration_job.was_submitted and narration_params
            else 0
        )
        total = self._cost_estimator.estimate(video_seconds, characters).total
        return float(total.quantize(Decimal("0.000001")))

    def _elapsed_ms(self, start: float) -> int:
        return int((self._clock() - start) * 1000)
