"""
External service integrations.

Provides provider adapters for:
- Runway (video synthesis over HTTP)
- Amazon Polly (narration synthesis)
- S3 (artifact storage)
"""

from mediafuse.integrations.base_client import BaseHTTPClient, UsageMetrics
from mediafuse.integrations.polly_client import PollyClient, get_polly_client
from mediafuse.integrations.runway_client import RunwayClient, get_runway_client
from mediafuse.integrations.storage_client import (
    ObjectMetadata,
    ObjectStorage,
    StorageClient,
    build_locator,
    get_storage_client,
    parse_locator,
)

__all__ = [
    # Base
    "BaseHTTPClient",
    "UsageMetrics",
    # Providers
    "PollyClient",
    "get_polly_client",
    "RunwayClient",
    "get_runway_client",
    # Storage
    "ObjectMetadata",
    "ObjectStorage",
    "StorageClient",
    "build_locator",
    "get_storage_client",
    "parse_locator",
]
