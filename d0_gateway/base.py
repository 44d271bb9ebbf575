"""
Base API client with common functionality for all external API providers
"""
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from core.config import get_settings
from core.exceptions import ExternalAPIError
from core.logging import get_logger

from .exceptions import InvalidResponseError
from .metrics import GatewayMetrics


class BaseAPIClient(ABC):
    """Abstract base class for all external API clients"""

    def __init__(
        self,
        provider: str,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.provider = provider
        self.settings = get_settings()
        self.logger = get_logger(f"gateway.{provider}", domain="d0")

        # Resolved on first request so a missing key fails before any network call
        self.api_key = api_key
        self.base_url = base_url or self._get_base_url()

        self.metrics = GatewayMetrics()

        # HTTP client with proper timeouts; transport is injectable for tests
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(float(self.settings.request_timeout)),
            transport=transport,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        await self.client.aclose()

    @abstractmethod
    def _get_base_url(self) -> str:
        """Get the base URL for this provider"""

    @abstractmethod
    def _get_headers(self) -> Dict[str, str]:
        """Get authentication headers for this provider"""

    def _ensure_api_key(self) -> str:
        """Return the API key, raising ConfigurationError if it is not configured"""
        if not self.api_key:
            self.api_key = self.settings.get_api_key(self.provider)
        return self.api_key

    async def _prepare_headers(self) -> Dict[str, str]:
        """Resolve credentials and build request headers"""
        self._ensure_api_key()
        return self._get_headers()

    def _build_error(self, response: httpx.Response) -> ExternalAPIError:
        """Translate a non-2xx response into an exception"""
        return ExternalAPIError(
            provider=self.provider,
            message=f"HTTP {response.status_code}",
            status_code=response.status_code,
            response_body=response.text,
        )

    async def make_request(self, method: str, endpoint: str, **kwargs) -> Any:
        """
        Make an authenticated API request

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: API endpoint path
            **kwargs: Additional arguments passed to httpx

        Returns:
            Decoded JSON body

        Raises:
            ConfigurationError: When the provider credential is missing
            ExternalAPIError: When the API returns an error or cannot be reached
        """
        headers = await self._prepare_headers()
        headers.update(kwargs.pop("headers", {}) or {})

        url = f"{self.base_url.rstrip('/')}/{endpoint.lstrip('/')}"
        start_time = time.time()
        status_code = 0

        try:
            response = await self.client.request(method, url, headers=headers, **kwargs)
            status_code = response.status_code
        except httpx.HTTPError as e:
            self.logger.warning(f"{method} {endpoint} failed: {e}")
            raise ExternalAPIError(provider=self.provider, message=str(e) or type(e).__name__) from e
        finally:
            self.metrics.record_api_call(
                provider=self.provider,
                endpoint=endpoint,
                status_code=status_code,
                duration=time.time() - start_time,
            )

        if not response.is_success:
            self.logger.warning(f"{method} {endpoint} returned HTTP {response.status_code}")
            raise self._build_error(response)

        try:
            return response.json()
        except ValueError as e:
            raise InvalidResponseError(self.provider, "JSON", response.text) from e
