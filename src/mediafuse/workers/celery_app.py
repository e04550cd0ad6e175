"""
Celery application configuration for mediafuse.

This module configures the Celery app with:
- Redis broker and result backend
- Routing of generation tasks to the media queue
- Time limits above the video polling budget
- Serialization settings

It also owns the process-wide circuit breaker registry shared by every
pipeline run executing in this worker process.
"""

import logging

from celery import Celery

from mediafuse.core.config import get_settings
from mediafuse.resilience.circuit_breaker import CircuitBreakerRegistry

logger = logging.getLogger(__name__)

# Get settings
settings = get_settings()

# =============================================================================
# Celery Application Configuration
# =============================================================================

celery_app = Celery(
    "mediafuse_workers",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["mediafuse.workers.tasks"],
)

# =============================================================================
# Task Serialization Settings
# =============================================================================

celery_app.conf.update(
    # Use JSON for serialization (more secure than pickle)
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    # Timezone configuration
    timezone="UTC",
    enable_utc=True,
)

# =============================================================================
# Task Execution Settings
# =============================================================================

# A run may poll video for the full budget and then mux
GENERATION_TIME_LIMIT = int(
    settings.video_max_wait_seconds + settings.mux_timeout_seconds + 600
)
GENERATION_SOFT_TIME_LIMIT = GENERATION_TIME_LIMIT - 60

celery_app.conf.update(
    # Acknowledge tasks late (after execution) for reliability
    task_acks_late=True,
    # Reject tasks when worker shuts down, so they get re-queued
    task_reject_on_worker_lost=True,
    # Only prefetch one task at a time for long-running tasks
    worker_prefetch_multiplier=1,
    task_time_limit=GENERATION_TIME_LIMIT,
    task_soft_time_limit=GENERATION_SOFT_TIME_LIMIT,
    # Track task start time
    task_track_started=True,
)

# =============================================================================
# Task Routing Configuration
# =============================================================================

celery_app.conf.task_routes = {
    "mediafuse.workers.tasks.generate_media": {"queue": "media"},
}

celery_app.conf.task_queues = {
    "default": {
        "exchange": "default",
        "routing_key": "default",
    },
    "media": {
        "exchange": "media",
        "routing_key": "media",
    },
}

celery_app.conf.task_default_queue = "default"

# =============================================================================
# Result Backend Settings
# =============================================================================

celery_app.conf.update(
    # Keep task results for 24 hours
    result_expires=86400,
    result_extended=True,
)

# =============================================================================
# Logging Configuration
# =============================================================================

celery_app.conf.update(
    worker_log_format="[%(asctime)s: %(levelname)s/%(processName)s] %(message)s",
    worker_task_log_format=(
        "[%(asctime)s: %(levelname)s/%(processName)s] "
        "[%(task_name)s(%(task_id)s)] %(message)s"
    ),
)

# =============================================================================
# Shared Resilience State
# =============================================================================

circuit_registry = CircuitBreakerRegistry.from_settings(settings)


__all__ = [
    "celery_app",
    "circuit_registry",
    "GENERATION_TIME_LIMIT",
    "GENERATION_SOFT_TIME_LIMIT",
]
