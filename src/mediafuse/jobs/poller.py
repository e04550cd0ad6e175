"""
Bounded polling of long-running external jobs.

The poller is a plain coroutine: it owns no background task, timer or
thread, so returning (or being cancelled) leaves nothing behind.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from mediafuse.core.exceptions import JobTimeoutError, MediaFuseError
from mediafuse.models.enums import JobStatus
from mediafuse.models.job import StatusReport
from mediafuse.resilience.retry import RetryPolicy

logger = logging.getLogger(__name__)


class AsyncJobPoller:
    """
    Polls a status function until the job is terminal or the budget lapses.

    Timing contract:
        - TIMED_OUT is reported only once elapsed time reaches max_wait
        - it is reported no later than max_wait + interval
        - sleeps are clipped to the remaining budget, including retry
          backoff inside a status check

    Example:
        ```python
        poller = AsyncJobPoller(retry_policy=RetryPolicy())
        report = await poller.poll(
            job.id,
            lambda: client.check_status(handle),
            interval=30,
            max_wait=1800,
        )
        ```
    """

    def __init__(
        self,
        retry_policy: RetryPolicy | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Initialize the poller.

        Args:
            retry_policy: Policy applied to each status check
            clock: Monotonic time source
            sleep: Awaitable sleep between checks
        """
        self._retry_policy = retry_policy or RetryPolicy()
        self._clock = clock
        self._sleep = sleep

    async def poll(
        self,
        job_id: str,
        check_status: Callable[[], Awaitable[StatusReport]],
        interval: float,
        max_wait: float,
        on_status: Callable[[StatusReport], None] | None = None,
    ) -> StatusReport:
        """
        Poll until a terminal status or timeout.

        Args:
            job_id: Identifier used in logs
            check_status: Coroutine factory returning the current status
            interval: Seconds between checks
            max_wait: Total budget in seconds
            on_status: Callback invoked with every observed report

        Returns:
            A terminal StatusReport (COMPLETED, FAILED or TIMED_OUT)
        """
        if interval <= 0:
            raise ValueError("interval must be positive")

        start = self._clock()
        polls = 0

        logger.info(
            "Polling job",
            extra={"job_id": job_id, "interval": interval, "max_wait": max_wait},
        )

        while True:
            polls += 1
            report: StatusReport | None
            try:
                report = await self._retry_policy.run(
                    check_status,
                    description=f"Status check for job {job_id}",
                    deadline=start + max_wait,
                    clock=self._clock,
                )
            except MediaFuseError as e:
                if self._retry_policy.is_retryable(e) and self._clock() - start >= max_wait:
                    # Still failing transiently when the budget ran out
                    report = None
                    logger.warning(
                        "Status check still failing at the end of the wait budget",
                        extra={"job_id": job_id, "polls": polls, "error": e.message},
                    )
                else:
                    report = StatusReport(status=JobStatus.FAILED, error=e.message)
                    logger.warning(
                        "Status check failed hard",
                        extra={"job_id": job_id, "polls": polls, "error": e.message},
                    )

            if report is not None and on_status is not None:
                on_status(report)

            if report is not None and report.is_terminal:
                logger.info(
                    "Job reached terminal status",
                    extra={
                        "job_id": job_id,
                        "status": report.status.value,
                        "polls": polls,
                        "elapsed_seconds": round(self._clock() - start, 2),
                    },
                )
                return report

            elapsed = self._clock() - start
            if elapsed >= max_wait:
                logger.warning(
                    "Job timed out",
                    extra={"job_id": job_id, "polls": polls, "elapsed_seconds": round(elapsed, 2)},
                )
                timed_out = StatusReport(
                    status=JobStatus.TIMED_OUT,
                    error=JobTimeoutError(job_id, max_wait).message,
                )
                if on_status is not None:
                    on_status(timed_out)
                return timed_out

            logger.debug(
                "Job still in progress",
                extra={
                    "job_id": job_id,
                    "status": report.status.value,
                    "progress": report.progress,
                    "elapsed_seconds": round(elapsed, 2),
                },
            )
            await self._sleep(min(interval, max_wait - elapsed))
