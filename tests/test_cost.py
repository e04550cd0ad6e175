"""
Tests for cost estimation.
"""

from decimal import Decimal

import pytest

from mediafuse.services.cost import CostEstimator, CostRates, estimate

RATES = CostRates(video_per_minute=Decimal("0.80"), narration_per_million_chars=Decimal("4.00"))


class TestEstimate:
    """Tests for the pure estimate function."""

    def test_video_minute(self) -> None:
        """One minute of video should cost the per-minute rate."""
        breakdown = estimate(60, 0, RATES)

        assert breakdown.video == Decimal("0.80")
        assert breakdown.narration == 0
        assert breakdown.total == Decimal("0.80")

    def test_narration_characters(self) -> None:
        """A million characters should cost the per-million rate."""
        breakdown = estimate(0, 1_000_000, RATES)

        assert breakdown.narration == Decimal("4.00")

    def test_deterministic(self) -> None:
        """Identical inputs should give identical output."""
        assert estimate(17.5, 321, RATES) == estimate(17.5, 321, RATES)

    @pytest.mark.parametrize("duration", [2, 7.5, 10, 33, 120])
    def test_doubling_duration_doubles_video_term(self, duration: float) -> None:
        """The video term should be linear in duration."""
        single = estimate(duration, 500, RATES)
        double = estimate(duration * 2, 500, RATES)

        assert double.video == pytest.approx(single.video * 2)
        assert double.narration == single.narration

    def test_rejects_negative_units(self) -> None:
        """Negative billable units should be rejected."""
        with pytest.raises(ValueError):
            estimate(-1, 0, RATES)

    def test_to_dict(self) -> None:
        """The breakdown should serialize to floats."""
        assert estimate(60, 1_000_000, RATES).to_dict() == {
            "video": 0.8,
            "narration": 4.0,
            "total": 4.8,
        }


class TestCostEstimator:
    """Tests for the estimator wrapper."""

    def test_rates_from_settings(self, settings) -> None:
        """Default rates should come from settings."""
        estimator = CostEstimator(CostRates.from_settings(settings))

        assert estimator.rates.video_per_minute == settings.video_cost_per_minute_usd
        assert estimator.estimate(30).total == Decimal("0.40")
