"""
Base HTTP client with error classification and common utilities.

This module provides a base class for HTTP provider integrations with:
- Async HTTP client with connection pooling
- Provider error classification (rate limited, invalid input, unavailable)
- Usage tracking
- Comprehensive logging

Retries are deliberately not performed here: a single attempt is made and
failures are raised as classified ProviderErrors, so that the injected
RetryPolicy and circuit breaker see every attempt.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

import httpx

from mediafuse.core.config import Settings, get_settings
from mediafuse.core.exceptions import (
    InvalidInputError,
    ProviderError,
    RateLimitError,
    ServiceUnavailableError,
)

logger = logging.getLogger(__name__)


@dataclass
class UsageMetrics:
    """
    Tracks usage metrics for external API calls.

    Attributes:
        provider: Name of the service provider
        units_used: Number of units consumed (characters, seconds, etc.)
        unit_type: Type of unit
        estimated_cost_usd: Estimated cost in USD
        request_count: Number of API requests made
        latency_ms: Total latency in milliseconds
    """

    provider: str
    units_used: int = 0
    unit_type: str = "units"
    estimated_cost_usd: Decimal = field(default_factory=lambda: Decimal("0"))
    request_count: int = 0
    latency_ms: int = 0

    def record_request(self, latency_ms: int) -> None:
        """
        Record an API request with its latency.

        Args:
            latency_ms: Request latency in milliseconds
        """
        self.request_count += 1
        self.latency_ms += latency_ms

    def record_units(self, units: int, cost_usd: Decimal) -> None:
        """Add consumed units and their estimated cost."""
        self.units_used += units
        self.estimated_cost_usd += cost_usd

    def to_dict(self) -> dict[str, Any]:
        """Convert metrics to dictionary for logging."""
        return {
            "provider": self.provider,
            "units_used": self.units_used,
            "unit_type": self.unit_type,
            "estimated_cost_usd": float(self.estimated_cost_usd),
            "request_count": self.request_count,
            "latency_ms": self.latency_ms,
        }


def parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header given in seconds."""
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def classify_response(service: str, response: httpx.Response) -> ProviderError:
    """
    Map an unsuccessful HTTP response to a provider error.

    Args:
        service: Service name for the error
        response: Response with a 4xx/5xx status

    Returns:
        The classified error (not raised)
    """
    status_code = response.status_code
    try:
        body = response.text[:500]
    except httpx.ResponseNotRead:
        body = ""

    if status_code == 429:
        return RateLimitError(
            service=service,
            message=f"{service} rate limit exceeded",
            original_error=body,
            retry_after=parse_retry_after(response.headers.get("Retry-After")),
        )
    if status_code in (400, 422):
        return InvalidInputError(
            service=service,
            message=f"{service} rejected the request: {status_code}",
            original_error=body,
        )
    if status_code >= 500:
        return ServiceUnavailableError(
            service=service,
            message=f"{service} server error: {status_code}",
            original_error=body,
        )
    return ProviderError(
        service=service,
        message=f"{service} API error: {status_code}",
        original_error=body,
    )


class BaseHTTPClient(ABC):
    """
    Abstract base class for async HTTP provider clients.

    Provides common functionality for external API integrations:
    - Async HTTP client with connection pooling
    - Single-attempt requests raising classified ProviderErrors
    - Request/response logging

    Subclasses must implement:
    - service_name: Property returning the service name
    - _get_headers(): Method returning default headers
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        settings: Settings | None = None,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the HTTP client.

        Args:
            base_url: Base URL for API requests
            api_key: API key for authentication
            settings: Application settings instance
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._settings = settings or get_settings()
        self._timeout = timeout

        # Create async HTTP client
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(timeout),
            limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
            transport=transport,
        )

        # Track cumulative usage
        self._total_usage = UsageMetrics(provider=self.service_name)

    @property
    @abstractmethod
    def service_name(self) -> str:
        """Return the name of the service for logging and error messages."""
        pass

    @abstractmethod
    def _get_headers(self) -> dict[str, str]:
        """Return default headers for API requests."""
        pass

    @property
    def total_usage(self) -> UsageMetrics:
        """Get cumulative usage metrics for this client instance."""
        return self._total_usage

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        await self._client.aclose()

    async def __aenter__(self) -> "BaseHTTPClient":
        """Context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit."""
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        """
        Make a single HTTP request.

        Args:
            method: HTTP method (GET, POST, etc.)
            path: API endpoint path
            headers: Additional headers to include
            params: Query parameters
            json_data: JSON body data
            timeout: Request-specific timeout override

        Returns:
            httpx.Response object for a 2xx/3xx response

        Raises:
            RateLimitError: On HTTP 429
            InvalidInputError: On a rejected request (400/422)
            ServiceUnavailableError: On 5xx, timeouts and connection errors
            ProviderError: On any other failure status
        """
        url = f"{self._base_url}/{path.lstrip('/')}"
        request_headers = self._get_headers()
        if headers:
            request_headers.update(headers)

        start_time = time.time()
        try:
            response = await self._client.request(
                method=method,
                url=url,
                headers=request_headers,
                params=params,
                json=json_data,
                timeout=timeout or self._timeout,
            )
        except httpx.TimeoutException as e:
            logger.warning(
                f"{self.service_name} request timeout",
                extra={"method": method, "url": url, "error": str(e)},
            )
            raise ServiceUnavailableError(
                service=self.service_name,
                message=f"{self.service_name} request timed out",
                original_error=str(e),
            ) from e
        except httpx.RequestError as e:
            logger.warning(
                f"{self.service_name} connection error",
                extra={"method": method, "url": url, "error": str(e)},
            )
            raise ServiceUnavailableError(
                service=self.service_name,
                message=f"{self.service_name} connection failed",
                original_error=str(e),
            ) from e

        elapsed_ms = int((time.time() - start_time) * 1000)
        self._total_usage.record_request(elapsed_ms)

        logger.info(
            f"{self.service_name} API request",
            extra={
                "method": method,
                "url": url,
                "status_code": response.status_code,
                "elapsed_ms": elapsed_ms,
            },
        )

        if response.status_code >= 400:
            error = classify_response(self.service_name, response)
            logger.warning(
                f"{self.service_name} API error",
                extra={
                    "status_code": response.status_code,
                    "kind": error.kind.value,
                    "error": error.details.get("original_error", ""),
                },
            )
            raise error

        return response

    async def _get(
        self,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Make a GET request."""
        return await self._request("GET", path, params=params, headers=headers)

    async def _post(
        self,
        path: str,
        *,
        json_data: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Make a POST request."""
        return await self._request("POST", path, json_data=json_data, headers=headers)
