"""
Pytest configuration and fixtures for mediafuse tests.

Provides settings, a controllable clock, and in-memory fakes for storage,
the ffmpeg process and the synthesis providers.
"""

import asyncio
import os
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import pytest

# Set test environment before importing application
os.environ["ENVIRONMENT"] = "development"
os.environ["REDIS_URL"] = "redis://localhost:6379/1"
os.environ["RUNWAY_API_KEY"] = "test-runway-key"
os.environ["MEDIA_BUCKET"] = "test-media"
os.environ["AWS_REGION"] = "us-east-1"

from mediafuse.core.config import Settings
from mediafuse.core.exceptions import NotFoundError
from mediafuse.integrations.storage_client import ObjectMetadata
from mediafuse.jobs.poller import AsyncJobPoller
from mediafuse.models.enums import JobKind, JobStatus
from mediafuse.models.job import JobHandle, StatusReport
from mediafuse.resilience.circuit_breaker import CircuitBreakerRegistry
from mediafuse.resilience.retry import RetryPolicy
from mediafuse.services.process import ProcessResult


class FakeClock:
    """Monotonic clock whose sleep advances time instantly."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


class InMemoryStorage:
    """Object storage keeping objects in a dict."""

    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.fail_put: Exception | None = None
        self.fail_head: Exception | None = None

    async def put(self, locator: str, data: bytes, content_type: str | None = None) -> int:
        if self.fail_put is not None:
            raise self.fail_put
        self.objects[locator] = data
        return len(data)

    async def get(self, locator: str) -> bytes:
        if locator not in self.objects:
            raise NotFoundError(resource_type="S3Object", resource_id=locator)
        return self.objects[locator]

    async def head_metadata(self, locator: str) -> ObjectMetadata:
        if self.fail_head is not None:
            raise self.fail_head
        data = await self.get(locator)
        return ObjectMetadata(locator=locator, size_bytes=len(data))

    async def download_to_path(self, locator: str, path: Path) -> int:
        data = await self.get(locator)
        Path(path).write_bytes(data)
        return len(data)

    async def upload_from_path(
        self, path: Path, locator: str, content_type: str | None = None
    ) -> int:
        return await self.put(locator, Path(path).read_bytes(), content_type)


class FakeProcessRunner:
    """Process port that writes a fake output file instead of running ffmpeg."""

    def __init__(
        self,
        exit_code: int = 0,
        stderr_tail: list[str] | None = None,
        output: bytes = b"merged-media",
        error: Exception | None = None,
    ) -> None:
        self.exit_code = exit_code
        self.stderr_tail = stderr_tail or []
        self.output = output
        self.error = error
        self.calls: list[list[str]] = []
        self.scratch_dirs: list[Path] = []

    async def run(self, args: Sequence[str], timeout: float) -> ProcessResult:
        args = list(args)
        self.calls.append(args)
        output_path = Path(args[-1])
        self.scratch_dirs.append(output_path.parent)
        if self.error is not None:
            raise self.error
        if self.exit_code == 0 and self.output:
            output_path.write_bytes(self.output)
        return ProcessResult(exit_code=self.exit_code, stderr_tail=list(self.stderr_tail))


class FakeProvider:
    """
    Scriptable synthesis provider.

    Submissions raise the queued submit errors first, then succeed.
    Status checks replay `statuses` in order (the last one repeats); an
    exception in the list is raised. A COMPLETED report without a locator
    is completed at the handle's destination and `content` is stored there.
    """

    def __init__(
        self,
        service_name: str,
        kind: JobKind,
        statuses: list[StatusReport | Exception] | None = None,
        submit_errors: list[Exception] | None = None,
        storage: InMemoryStorage | None = None,
        content: bytes = b"media-bytes",
        block: asyncio.Event | None = None,
    ) -> None:
        self.service_name = service_name
        self.kind = kind
        self.statuses = list(statuses or [StatusReport(status=JobStatus.COMPLETED)])
        self.submit_errors = list(submit_errors or [])
        self.storage = storage
        self.content = content
        self.block = block
        self.submit_calls: list[Any] = []
        self.status_calls = 0
        self.cancelled = False

    async def submit(self, params: Any) -> JobHandle:
        self.submit_calls.append(params)
        if self.submit_errors:
            raise self.submit_errors.pop(0)
        number = len(self.submit_calls)
        destination = getattr(
            params,
            "destination_locator",
            f"s3://test-media/audio/{self.service_name.lower()}-{number}.mp3",
        )
        return JobHandle(
            kind=self.kind,
            external_job_id=f"{self.service_name.lower()}-job-{number}",
            destination_locator=destination,
        )

    async def check_status(self, handle: JobHandle) -> StatusReport:
        self.status_calls += 1
        if self.block is not None:
            try:
                await self.block.wait()
            except asyncio.CancelledError:
                self.cancelled = True
                raise

        index = min(self.status_calls - 1, len(self.statuses) - 1)
        report = self.statuses[index]
        if isinstance(report, Exception):
            raise report

        if report.status is JobStatus.COMPLETED and report.result_locator is None:
            if self.storage is not None:
                await self.storage.put(handle.destination_locator, self.content)
            return StatusReport(
                status=JobStatus.COMPLETED, result_locator=handle.destination_locator
            )
        return report


@pytest.fixture
def settings() -> Settings:
    """Provide settings with short budgets and no .env influence."""
    return Settings(
        _env_file=None,
        runway_api_key="test-runway-key",
        media_bucket="test-media",
        video_poll_interval_seconds=30,
        video_max_wait_seconds=1800,
        narration_poll_interval_seconds=5,
        narration_max_wait_seconds=300,
        retry_max_attempts=3,
        retry_base_delay_seconds=1,
        retry_max_delay_seconds=10,
        retry_jitter=0,
    )


@pytest.fixture
def clock() -> FakeClock:
    """Provide a fake monotonic clock."""
    return FakeClock()


@pytest.fixture
def retry_policy(clock: FakeClock) -> RetryPolicy:
    """Provide a jitter-free retry policy sleeping on the fake clock."""
    return RetryPolicy(max_attempts=3, base_delay=1.0, max_delay=10.0, jitter=0, sleep=clock.sleep)


@pytest.fixture
def poller(clock: FakeClock, retry_policy: RetryPolicy) -> AsyncJobPoller:
    """Provide a poller driven by the fake clock."""
    return AsyncJobPoller(retry_policy=retry_policy, clock=clock, sleep=clock.sleep)


@pytest.fixture
def circuits(clock: FakeClock) -> CircuitBreakerRegistry:
    """Provide a fresh breaker registry on the fake clock."""
    return CircuitBreakerRegistry(failure_threshold=5, recovery_timeout=60.0, clock=clock)


@pytest.fixture
def storage() -> InMemoryStorage:
    """Provide empty in-memory storage."""
    return InMemoryStorage()


@pytest.fixture
def process_runner() -> FakeProcessRunner:
    """Provide a process runner that succeeds."""
    return FakeProcessRunner()
