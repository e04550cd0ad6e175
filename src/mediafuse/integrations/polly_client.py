"""
Amazon Polly client for narration synthesis.

Narration is produced with asynchronous speech synthesis tasks that write
MP3 output straight to the media bucket, so long scripts never pass
through the worker. Blocking boto3 calls run in a worker thread.
"""

import asyncio
import logging
import time
from decimal import Decimal
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from mediafuse.core.config import Settings, get_settings
from mediafuse.core.exceptions import (
    InvalidInputError,
    ProviderError,
    RateLimitError,
    ServiceUnavailableError,
)
from mediafuse.integrations.base_client import UsageMetrics
from mediafuse.integrations.storage_client import build_locator, parse_locator
from mediafuse.models.enums import JobKind, JobStatus
from mediafuse.models.job import JobHandle, NarrationSubmission, StatusReport

logger = logging.getLogger(__name__)

SERVICE_NAME = "Polly"

STANDARD_SAMPLE_RATE = "22050"

RATE_LIMIT_CODES = frozenset({"ThrottlingException", "Throttling", "TooManyRequestsException"})

INVALID_INPUT_CODES = frozenset(
    {
        "ValidationException",
        "InvalidParameterValue",
        "InvalidSsmlException",
        "TextLengthExceededException",
        "EngineNotSupportedException",
        "LanguageNotSupportedException",
        "InvalidSampleRateException",
        "LexiconNotFoundException",
        "InvalidS3BucketException",
        "InvalidS3KeyException",
        "SsmlMarksNotSupportedForTextTypeException",
        "MarksNotSupportedForFormatException",
        "SynthesisTaskNotFoundException",
        "InvalidTaskIdException",
    }
)

UNAVAILABLE_CODES = frozenset({"ServiceFailureException", "ServiceUnavailable", "InternalFailure"})

STATUS_MAPPING: dict[str, JobStatus] = {
    "scheduled": JobStatus.PENDING,
    "inProgress": JobStatus.RUNNING,
    "completed": JobStatus.COMPLETED,
    "failed": JobStatus.FAILED,
}


def classify_boto_error(error: Exception) -> ProviderError:
    """
    Map a botocore failure to a provider error.

    Args:
        error: ClientError or BotoCoreError raised by boto3

    Returns:
        The classified error (not raised)
    """
    if isinstance(error, ClientError):
        code = error.response.get("Error", {}).get("Code", "Unknown")
        message = error.response.get("Error", {}).get("Message", str(error))
        status_code = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)

        if code in RATE_LIMIT_CODES or status_code == 429:
            return RateLimitError(
                service=SERVICE_NAME,
                message=f"Polly throttled the request: {message}",
                original_error=code,
            )
        if code in INVALID_INPUT_CODES:
            return InvalidInputError(
                service=SERVICE_NAME,
                message=f"Polly rejected the request: {message}",
                original_error=code,
            )
        if code in UNAVAILABLE_CODES or status_code >= 500:
            return ServiceUnavailableError(
                service=SERVICE_NAME,
                message=f"Polly service failure: {message}",
                original_error=code,
            )
        return ProviderError(
            service=SERVICE_NAME,
            message=f"Polly API error: {message}",
            original_error=code,
        )

    if isinstance(
        error,
        (EndpointConnectionError, ConnectTimeoutError, ReadTimeoutError, ConnectionClosedError),
    ):
        return ServiceUnavailableError(
            service=SERVICE_NAME,
            message="Polly endpoint unreachable",
            original_error=str(error),
        )

    return ProviderError(
        service=SERVICE_NAME,
        message=f"Polly call failed: {error}",
        original_error=type(error).__name__,
    )


class PollyClient:
    """
    Narration provider backed by Amazon Polly speech synthesis tasks.

    Example:
        ```python
        client = PollyClient()
        handle = await client.submit(
            NarrationSubmission(text=ssml, voice_id="Matthew", plain_text=script)
        )
        report = await client.check_status(handle)
        ```
    """

    def __init__(
        self,
        settings: Settings | None = None,
        client: Any | None = None,
    ) -> None:
        """
        Initialize the Polly client.

        Args:
            settings: Application settings instance
            client: Preconfigured boto3 Polly client (used by tests)
        """
        self._settings = settings or get_settings()
        self._bucket = self._settings.media_bucket
        self._prefix = self._settings.narration_prefix
        self._engine = self._settings.polly_engine
        self._sample_rate = self._settings.polly_sample_rate
        self._total_usage = UsageMetrics(provider=SERVICE_NAME, unit_type="characters")

        self._client = client or boto3.client(
            "polly",
            region_name=self._settings.aws_region,
            config=Config(retries={"max_attempts": 1, "mode": "standard"}),
        )

    @property
    def service_name(self) -> str:
        """Return service name for logging."""
        return SERVICE_NAME

    @property
    def total_usage(self) -> UsageMetrics:
        """Get total usage metrics for this client."""
        return self._total_usage

    async def _call(self, method: str, **kwargs: Any) -> dict[str, Any]:
        start_time = time.time()
        try:
            return await asyncio.to_thread(getattr(self._client, method), **kwargs)
        except (ClientError, BotoCoreError) as e:
            raise classify_boto_error(e) from e
        finally:
            self._total_usage.record_request(int((time.time() - start_time) * 1000))

    def _task_params(self, params: NarrationSubmission, engine: str) -> dict[str, Any]:
        key_prefix = f"{self._prefix}{params.key_prefix}"
        if engine == "standard":
            return {
                "Text": params.plain_text if params.plain_text is not None else params.text,
                "TextType": "text" if params.plain_text is not None else params.text_type,
                "VoiceId": params.voice_id,
                "OutputFormat": "mp3",
                "Engine": "standard",
                "OutputS3BucketName": self._bucket,
                "OutputS3KeyPrefix": key_prefix,
                "SampleRate": STANDARD_SAMPLE_RATE,
            }
        return {
            "Text": params.text,
            "TextType": params.text_type,
            "VoiceId": params.voice_id,
            "OutputFormat": "mp3",
            "Engine": engine,
            "OutputS3BucketName": self._bucket,
            "OutputS3KeyPrefix": key_prefix,
            "SampleRate": self._sample_rate,
        }

    async def submit(self, params: NarrationSubmission) -> JobHandle:
        """
        Start a speech synthesis task.

        When the configured engine rejects the request, the task is
        started once more on the standard engine with plain text.

        Args:
            params: Text, voice and output prefix of the narration

        Returns:
            JobHandle whose destination is the task's MP3 output

        Raises:
            ProviderError: If the task could not be started
        """
        try:
            response = await self._call(
                "start_speech_synthesis_task", **self._task_params(params, self._engine)
            )
        except InvalidInputError as e:
            if self._engine == "standard":
                raise
            logger.warning(
                "Polly engine rejected the request; retrying on standard engine",
                extra={"engine": self._engine, "voice_id": params.voice_id, "error": e.message},
            )
            response = await self._call(
                "start_speech_synthesis_task", **self._task_params(params, "standard")
            )

        task = response.get("SynthesisTask", {})
        task_id = task.get("TaskId")
        if not task_id:
            raise ProviderError(
                service=SERVICE_NAME,
                message="No task ID returned from Polly",
                original_error=str(response)[:500],
            )

        output_uri = task.get("OutputUri")
        if output_uri:
            destination = build_locator(*parse_locator(output_uri))
        else:
            destination = build_locator(
                self._bucket, f"{self._prefix}{params.key_prefix}{task_id}.mp3"
            )

        self._total_usage.record_units(
            params.characters,
            Decimal(params.characters)
            / 1_000_000
            * self._settings.narration_cost_per_million_chars_usd,
        )
        logger.info(
            "Polly synthesis task started",
            extra={
                "task_id": task_id,
                "voice_id": params.voice_id,
                "characters": params.characters,
                "locator": destination,
            },
        )
        return JobHandle(
            kind=JobKind.NARRATION,
            external_job_id=task_id,
            destination_locator=destination,
        )

    async def check_status(self, handle: JobHandle) -> StatusReport:
        """
        Check a speech synthesis task.

        Args:
            handle: Handle returned by submit()

        Returns:
            StatusReport for the task

        Raises:
            ProviderError: If the status check fails
        """
        response = await self._call("get_speech_synthesis_task", TaskId=handle.external_job_id)
        task = response.get("SynthesisTask", {})

        raw_status = task.get("TaskStatus", "scheduled")
        status = STATUS_MAPPING.get(raw_status, JobStatus.PENDING)

        if status is JobStatus.FAILED:
            reason = task.get("TaskStatusReason") or "unknown reason"
            return StatusReport(status=JobStatus.FAILED, error=f"Polly task failed: {reason}")

        if status is JobStatus.COMPLETED:
            output_uri = task.get("OutputUri")
            locator = (
                build_locator(*parse_locator(output_uri))
                if output_uri
                else handle.destination_locator
            )
            return StatusReport(status=JobStatus.COMPLETED, result_locator=locator)

        return StatusReport(status=status)


def get_polly_client(settings: Settings | None = None) -> PollyClient:
    """Create a Polly client from settings."""
    return PollyClient(settings=settings)
