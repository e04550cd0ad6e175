"""Job polling primitives."""

from mediafuse.jobs.poller import AsyncJobPoller

__all__ = ["AsyncJobPoller"]
