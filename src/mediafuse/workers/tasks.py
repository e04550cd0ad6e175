"""
Media generation tasks.

generate_media is the worker entry point: it validates the payload, runs
one orchestrator pipeline on a fresh event loop and returns the result in
its camelCase boundary shape for publishing and cost-display consumers.
"""

import asyncio
import logging
from typing import Any

import pydantic
from celery import shared_task

from mediafuse.core.config import Settings, get_settings
from mediafuse.core.exceptions import MediaFuseError
from mediafuse.integrations import PollyClient, RunwayClient, StorageClient
from mediafuse.models import GenerationRequest, PipelineResult
from mediafuse.resilience import CircuitBreakerRegistry, RetryPolicy
from mediafuse.services import (
    GenerationOrchestrator,
    MediaMuxer,
    NarrationSynthesisClient,
    VideoSynthesisClient,
)
from mediafuse.workers.celery_app import (
    GENERATION_SOFT_TIME_LIMIT,
    GENERATION_TIME_LIMIT,
    circuit_registry,
)

logger = logging.getLogger(__name__)


async def run_generation(
    request: GenerationRequest,
    settings: Settings,
    circuits: CircuitBreakerRegistry,
) -> PipelineResult:
    """
    Build the provider clients and run one pipeline.

    Args:
        request: Validated generation request
        settings: Application settings instance
        circuits: Process-wide breaker registry

    Returns:
        The pipeline result
    """
    storage = StorageClient(settings=settings)
    retry_policy = RetryPolicy.from_settings(settings)

    async with RunwayClient(storage=storage, settings=settings) as runway:
        orchestrator = GenerationOrchestrator(
            video_client=VideoSynthesisClient(runway, circuits, retry_policy),
            narration_client=NarrationSynthesisClient(
                PollyClient(settings=settings), circuits, retry_policy
            ),
            muxer=MediaMuxer(storage, settings=settings),
            storage=storage,
            settings=settings,
        )
        return await orchestrator.generate(request)


def _describe_validation_error(error: pydantic.ValidationError) -> str:
    problems = [
        f"{'.'.join(str(part) for part in item['loc'])}: {item['msg']}"
        for item in error.errors()
    ]
    return "Invalid generation request: " + "; ".join(problems)


@shared_task(
    bind=True,
    name="mediafuse.workers.tasks.generate_media",
    acks_late=True,
    reject_on_worker_lost=True,
    time_limit=GENERATION_TIME_LIMIT,
    soft_time_limit=GENERATION_SOFT_TIME_LIMIT,
)
def generate_media(self, request_payload: dict[str, Any]) -> dict[str, Any]:
    """
    Generate a media artifact for one content request.

    Pipeline failures are reported in the returned result rather than
    retried by Celery; provider retries happen inside the pipeline.

    Args:
        request_payload: Request in boundary shape (camelCase or snake_case)

    Returns:
        PipelineResult.to_dict()
    """
    task_id = getattr(self.request, "id", None)
    logger.info("Starting media generation task", extra={"task_id": task_id})

    try:
        request = GenerationRequest.model_validate(request_payload)
    except pydantic.ValidationError as e:
        logger.warning(
            "Invalid generation payload",
            extra={"task_id": task_id, "error_count": e.error_count()},
        )
        return PipelineResult.failed(_describe_validation_error(e)).to_dict()

    try:
        result = asyncio.run(run_generation(request, get_settings(), circuit_registry))
    except MediaFuseError as e:
        logger.error(
            "Media generation could not start",
            extra={"task_id": task_id, "code": e.code, "error": e.message},
        )
        result = PipelineResult.failed(e.message)

    logger.info(
        "Media generation task finished",
        extra={
            "task_id": task_id,
            "success": result.success,
            "artifact_locator": result.artifact_locator,
        },
    )
    return result.to_dict()
