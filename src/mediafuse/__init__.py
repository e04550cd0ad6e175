"""
mediafuse - Asynchronous media generation and fusion orchestrator.

Turns a content request into a finished video artifact by coordinating:
- Video synthesis jobs (Runway)
- Narration synthesis jobs (Amazon Polly)
- Subtitle generation
- FFmpeg muxing of the results
- Per-provider circuit breaking and bounded polling
"""

__version__ = "0.1.0"
