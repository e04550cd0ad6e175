"""
Pipeline services.

- synthesis: resilient provider clients
- muxer / process: ffmpeg-based fusion
- narration / subtitles: script shaping
- cost: run cost estimation
- orchestrator: the end-to-end pipeline
"""

from mediafuse.services.cost import CostBreakdown, CostEstimator, CostRates, estimate
from mediafuse.services.muxer import MediaMuxer, build_ffmpeg_args, build_output_locator
from mediafuse.services.orchestrator import GenerationOrchestrator
from mediafuse.services.process import AsyncProcessRunner, ProcessPort, ProcessResult
from mediafuse.services.synthesis import (
    NarrationSynthesisClient,
    SynthesisClient,
    SynthesisProvider,
    VideoSynthesisClient,
)

__all__ = [
    "CostBreakdown",
    "CostEstimator",
    "CostRates",
    "estimate",
    "MediaMuxer",
    "build_ffmpeg_args",
    "build_output_locator",
    "GenerationOrchestrator",
    "AsyncProcessRunner",
    "ProcessPort",
    "ProcessResult",
    "NarrationSynthesisClient",
    "SynthesisClient",
    "SynthesisProvider",
    "VideoSynthesisClient",
]
