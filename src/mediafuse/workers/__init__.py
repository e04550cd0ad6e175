"""
Celery workers for mediafuse.

This module provides the Celery infrastructure and the media generation
task that runs one orchestrator pipeline per request.
"""

from mediafuse.workers.celery_app import celery_app, circuit_registry
from mediafuse.workers.tasks import generate_media, run_generation

__all__ = [
    "celery_app",
    "circuit_registry",
    "generate_media",
    "run_generation",
]
