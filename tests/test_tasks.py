"""
Tests for the Celery generation task.

Tasks are executed eagerly with `apply`; the pipeline itself is replaced
so no provider is contacted.
"""

import pytest

from mediafuse.core.exceptions import ValidationError
from mediafuse.models import GenerationRequest, MediaMetadata, PipelineResult
from mediafuse.workers import tasks
from mediafuse.workers.celery_app import GENERATION_SOFT_TIME_LIMIT, GENERATION_TIME_LIMIT


class TestGenerateMedia:
    """Tests for the generate_media task."""

    def test_invalid_payload(self) -> None:
        """A malformed payload should return a failed result without running the pipeline."""
        result = tasks.generate_media.apply(args=[{"topic": "investing"}]).get()

        assert result["success"] is False
        assert result["error"].startswith("Invalid generation request:")
        assert "prompt" in result["error"]

    def test_runs_pipeline(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """A valid camelCase payload should run the pipeline and return its result."""
        seen: list[GenerationRequest] = []

        async def fake_run_generation(request, settings, circuits) -> PipelineResult:
            seen.append(request)
            return PipelineResult(
                success=True,
                artifact_locator="s3://test-media/videos/investing/t1_merged.mp4",
                metadata=MediaMetadata(duration_seconds=10, format="mp4", has_audio=True, merged=True),
                cost_estimate=0.17,
            )

        monkeypatch.setattr(tasks, "run_generation", fake_run_generation)

        result = tasks.generate_media.apply(
            args=[{"prompt": "Markets rally", "topic": "investing", "durationSeconds": 10, "trendId": "t1"}]
        ).get()

        assert seen[0].duration_seconds == 10
        assert seen[0].trend_id == "t1"
        assert result["success"] is True
        assert result["artifactLocator"].endswith("t1_merged.mp4")
        assert result["metadata"]["hasAudio"] is True

    def test_startup_failure(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """A failure to build the pipeline should become a failed result."""

        async def broken_run_generation(request, settings, circuits) -> PipelineResult:
            raise ValidationError("Runway API key not configured", field="runway_api_key")

        monkeypatch.setattr(tasks, "run_generation", broken_run_generation)

        result = tasks.generate_media.apply(
            args=[{"prompt": "Markets rally", "durationSeconds": 10}]
        ).get()

        assert result["success"] is False
        assert result["error"] == "Runway API key not configured"

    def test_time_limits(self) -> None:
        """The soft limit should leave room for cleanup before the hard limit."""
        assert GENERATION_SOFT_TIME_LIMIT < GENERATION_TIME_LIMIT
        assert tasks.generate_media.time_limit == GENERATION_TIME_LIMIT
