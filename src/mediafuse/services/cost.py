"""
Cost estimation for generation runs.

Estimates are computed from the units actually submitted to providers,
so a run that failed after submission still reports what it consumed.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from mediafuse.core.config import Settings, get_settings

SECONDS_PER_MINUTE = Decimal("60")
CHARACTERS_PER_MILLION = Decimal("1000000")


@dataclass(frozen=True)
class CostRates:
    """
    Provider pricing.

    Attributes:
        video_per_minute: USD per minute of generated video
        narration_per_million_chars: USD per million synthesized characters
    """

    video_per_minute: Decimal = Decimal("0.80")
    narration_per_million_chars: Decimal = Decimal("4.00")

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "CostRates":
        settings = settings or get_settings()
        return cls(
            video_per_minute=settings.video_cost_per_minute_usd,
            narration_per_million_chars=settings.narration_cost_per_million_chars_usd,
        )


@dataclass(frozen=True)
class CostBreakdown:
    """Estimated cost per provider, in USD."""

    video: Decimal
    narration: Decimal

    @property
    def total(self) -> Decimal:
        return self.video + self.narration

    def to_dict(self) -> dict[str, Any]:
        return {
            "video": float(self.video),
            "narration": float(self.narration),
            "total": float(self.total),
        }


def estimate(
    duration_seconds: float,
    narration_characters: int,
    rates: CostRates,
) -> CostBreakdown:
    """
    Estimate the cost of a run.

    Args:
        duration_seconds: Seconds of video submitted (0 if none)
        narration_characters: Characters submitted for narration (0 if none)
        rates: Pricing to apply

    Returns:
        CostBreakdown; the video term is linear in duration
    """
    if duration_seconds < 0 or narration_characters < 0:
        raise ValueError("Billable units cannot be negative")

    video = Decimal(str(duration_seconds)) / SECONDS_PER_MINUTE * rates.video_per_minute
    narration = (
        Decimal(narration_characters) / CHARACTERS_PER_MILLION * rates.narration_per_million_chars
    )
    return CostBreakdown(video=video, narration=narration)


class CostEstimator:
    """Estimates run cost with a fixed set of rates."""

    def __init__(self, rates: CostRates | None = None) -> None:
        self.rates = rates or CostRates.from_settings()

    def estimate(self, duration_seconds: float, narration_characters: int = 0) -> CostBreakdown:
        return estimate(duration_seconds, narration_characters, self.rates)
