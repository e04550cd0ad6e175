"""
mediafuse core module.

This module contains the foundational components:
- Configuration management
- Custom exceptions
"""

from mediafuse.core.config import Settings, get_settings
from mediafuse.core.exceptions import (
    CircuitOpenError,
    ExternalServiceError,
    InvalidInputError,
    JobStateError,
    JobTimeoutError,
    MediaFuseError,
    MuxError,
    NotFoundError,
    PipelineError,
    ProcessTimeoutError,
    ProviderError,
    ProviderErrorKind,
    RateLimitError,
    ServiceUnavailableError,
    ValidationError,
)

__all__ = [
    "Settings",
    "get_settings",
    "MediaFuseError",
    "ValidationError",
    "NotFoundError",
    "ExternalServiceError",
    "ProviderError",
    "ProviderErrorKind",
    "RateLimitError",
    "InvalidInputError",
    "ServiceUnavailableError",
    "CircuitOpenError",
    "JobStateError",
    "JobTimeoutError",
    "MuxError",
    "ProcessTimeoutError",
    "PipelineError",
]
