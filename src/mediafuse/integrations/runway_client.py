"""
Runway API client for AI video generation.

This module provides the video provider adapter:
- Text-to-video task submission
- Task status checks
- Materializing finished clips into object storage

API Reference: https://docs.dev.runwayml.com/
"""

import logging
from decimal import Decimal
from typing import Any

import httpx

from mediafuse.core.config import Settings, get_settings
from mediafuse.core.exceptions import ProviderError, ServiceUnavailableError, ValidationError
from mediafuse.integrations.base_client import BaseHTTPClient, classify_response
from mediafuse.integrations.storage_client import ObjectStorage
from mediafuse.models.enums import JobKind, JobStatus
from mediafuse.models.job import JobHandle, StatusReport, VideoSubmission

logger = logging.getLogger(__name__)

# Clip lengths accepted by the text-to-video endpoint
SUPPORTED_CLIP_SECONDS = (5, 10)

STATUS_MAPPING: dict[str, JobStatus] = {
    "pending": JobStatus.PENDING,
    "queued": JobStatus.PENDING,
    "throttled": JobStatus.PENDING,
    "running": JobStatus.RUNNING,
    "processing": JobStatus.RUNNING,
    "in_progress": JobStatus.RUNNING,
    "succeeded": JobStatus.COMPLETED,
    "completed": JobStatus.COMPLETED,
    "failed": JobStatus.FAILED,
    "error": JobStatus.FAILED,
    "cancelled": JobStatus.FAILED,
    "canceled": JobStatus.FAILED,
}


def clip_seconds_for(duration_seconds: float) -> int:
    """Pick the shortest supported clip covering the requested duration."""
    for seconds in SUPPORTED_CLIP_SECONDS:
        if duration_seconds <= seconds:
            return seconds
    return SUPPORTED_CLIP_SECONDS[-1]


def extract_output_url(data: dict[str, Any]) -> str | None:
    """Pull the first output URL from a task payload."""
    output = data.get("output")
    if isinstance(output, list) and output:
        first = output[0]
        return first if isinstance(first, str) else first.get("url")
    if isinstance(output, str):
        return output
    return None


def extract_progress(data: dict[str, Any]) -> int | None:
    """Normalize provider progress (0-1 float or 0-100) to a percentage."""
    progress = data.get("progress")
    if progress is None:
        return None
    try:
        value = float(progress)
    except (TypeError, ValueError):
        return None
    if value <= 1:
        value *= 100
    return max(0, min(100, int(value)))


class RunwayClient(BaseHTTPClient):
    """
    Runway API client for text-to-video synthesis.

    Example:
        ```python
        async with RunwayClient(storage=storage) as client:
            handle = await client.submit(
                VideoSubmission(
                    prompt="Aerial shot of a city skyline at dusk",
                    duration_seconds=10,
                    destination_locator="s3://media/videos/clip.mp4",
                )
            )
            report = await client.check_status(handle)
        ```
    """

    def __init__(
        self,
        storage: ObjectStorage,
        api_key: str | None = None,
        settings: Settings | None = None,
        timeout: float = 60.0,
        download_timeout: float = 300.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the Runway client.

        Args:
            storage: Storage that finished clips are written to
            api_key: Runway API key (uses settings if not provided)
            settings: Application settings instance
            timeout: Request timeout in seconds
            download_timeout: Timeout for downloading finished clips
            transport: Optional httpx transport (used by tests)

        Raises:
            ValidationError: If no API key is configured
        """
        settings = settings or get_settings()
        api_key = api_key or settings.runway_api_key

        if not api_key:
            raise ValidationError(
                message="Runway API key is required",
                field="runway_api_key",
            )

        super().__init__(
            base_url=settings.runway_base_url,
            api_key=api_key,
            settings=settings,
            timeout=timeout,
            transport=transport,
        )

        self._storage = storage
        self._model = settings.runway_model
        self._ratio = settings.runway_aspect_ratio
        self._download_timeout = download_timeout
        self._total_usage.unit_type = "seconds"

    @property
    def service_name(self) -> str:
        """Return service name for logging."""
        return "Runway"

    def _get_headers(self) -> dict[str, str]:
        """Return default headers for API requests."""
        return {
            "Authorization": f"Bearer {self._api_key or ''}",
            "Content-Type": "application/json",
            "Accept": "application/json",
            "X-Runway-Version": "2024-11-06",  # API version
        }

    async def submit(self, params: VideoSubmission) -> JobHandle:
        """
        Submit a text-to-video task.

        Args:
            params: Prompt, duration and destination of the clip

        Returns:
            JobHandle for status tracking

        Raises:
            ProviderError: If the submission fails
        """
        duration = clip_seconds_for(params.duration_seconds)
        payload: dict[str, Any] = {
            "promptText": params.prompt,
            "model": self._model,
            "duration": duration,
            "ratio": self._ratio,
        }

        logger.info(
            "Creating Runway video generation",
            extra={
                "prompt_preview": params.prompt[:100],
                "duration": duration,
                "ratio": self._ratio,
                "model": self._model,
            },
        )

        response = await self._post("text_to_video", json_data=payload)
        data = response.json()

        task_id = data.get("id")
        if not task_id:
            raise ProviderError(
                service=self.service_name,
                message="No task ID returned from Runway API",
                original_error=str(data)[:500],
            )

        self._total_usage.record_units(
            duration, Decimal(duration) / 60 * self._settings.video_cost_per_minute_usd
        )
        logger.info("Runway generation task created", extra={"task_id": task_id})

        return JobHandle(
            kind=JobKind.VIDEO,
            external_job_id=task_id,
            destination_locator=params.destination_locator,
        )

    async def check_status(self, handle: JobHandle) -> StatusReport:
        """
        Check a task and store its clip once it has succeeded.

        Args:
            handle: Handle returned by submit()

        Returns:
            StatusReport; COMPLETED only after the clip is in storage

        Raises:
            ProviderError: If the status check or download fails
        """
        response = await self._get(f"tasks/{handle.external_job_id}")
        data = response.json()

        raw_status = str(data.get("status") or "pending").lower()
        status = STATUS_MAPPING.get(raw_status, JobStatus.PENDING)
        progress = extract_progress(data)

        if status is JobStatus.FAILED:
            reason = data.get("failure") or data.get("failureCode") or raw_status
            return StatusReport(
                status=JobStatus.FAILED,
                error=f"Runway task {raw_status}: {reason}",
                progress=progress,
            )

        if status is not JobStatus.COMPLETED:
            return StatusReport(status=status, progress=progress)

        video_url = extract_output_url(data)
        if not video_url:
            return StatusReport(
                status=JobStatus.FAILED,
                error="Runway task succeeded without an output URL",
            )

        content = await self._download(video_url)
        await self._storage.put(handle.destination_locator, content, content_type="video/mp4")

        logger.info(
            "Runway clip stored",
            extra={
                "task_id": handle.external_job_id,
                "locator": handle.destination_locator,
                "size_bytes": len(content),
            },
        )
        return StatusReport(
            status=JobStatus.COMPLETED,
            result_locator=handle.destination_locator,
            progress=100,
        )

    async def _download(self, url: str) -> bytes:
        """Download a finished clip from the provider's output URL."""
        try:
            response = await self._client.get(
                url, timeout=self._download_timeout, follow_redirects=True
            )
        except httpx.RequestError as e:
            raise ServiceUnavailableError(
                service=self.service_name,
                message="Failed to download Runway output",
                original_error=str(e),
            ) from e

        if response.status_code >= 400:
            raise classify_response(self.service_name, response)
        return response.content


def get_runway_client(storage: ObjectStorage, settings: Settings | None = None) -> RunwayClient:
    """Create a Runway client from settings."""
    return RunwayClient(storage=storage, settings=settings)
