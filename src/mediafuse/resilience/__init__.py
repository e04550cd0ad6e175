"""Retry and circuit-breaking primitives for external calls."""

from mediafuse.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitSnapshot,
)
from mediafuse.resilience.retry import RetryPolicy, is_retryable_error

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitSnapshot",
    "RetryPolicy",
    "is_retryable_error",
]
