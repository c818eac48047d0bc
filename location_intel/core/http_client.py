"""
Base HTTP client with bounded concurrency and unified error handling.

Provides the shared foundation for every upstream data source. Requests
are attempted exactly once: a timeout or error marks the source as
unavailable for the current request and is classified into an APIError
so the calling adapter can log it and return no data.
"""
import asyncio
import logging
from abc import ABC
from typing import Any, Dict, Optional, Union

import httpx

from location_intel.core.api_errors import (
    APIError,
    FatalError,
    MalformedResponseError,
    UpstreamUnavailableError,
    classify_http_error,
)

logger = logging.getLogger(__name__)


class BaseAPIClient(ABC):
    """
    Base class for all upstream API clients.

    Provides unified:
    - Single-attempt HTTP requests with per-call timeouts
    - Bounded concurrency via semaphore
    - Standardized error classification
    - Connection pooling (one lazily created httpx.AsyncClient)

    Subclasses should:
    - Set SOURCE_NAME and BASE_URL class attributes
    - Implement source-specific methods that call _request()
    - Override _check_api_error() for source-specific error payloads
    """

    # Override in subclass
    SOURCE_NAME: str = "unknown"
    BASE_URL: str = ""

    # Default settings
    DEFAULT_MAX_CONCURRENCY: int = 4
    DEFAULT_TIMEOUT: float = 8.0
    DEFAULT_CONNECT_TIMEOUT: float = 5.0

    def __init__(
        self,
        api_key: Optional[str] = None,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        timeout: float = DEFAULT_TIMEOUT,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the API client.

        Args:
            api_key: Optional API key for authentication
            max_concurrency: Maximum concurrent requests (semaphore size)
            timeout: Default per-call timeout in seconds
            connect_timeout: Connection timeout in seconds
            http_client: Pre-built httpx client (shared pool or test transport)
        """
        self.api_key = api_key
        self.max_concurrency = max_concurrency
        self.timeout = timeout
        self.connect_timeout = connect_timeout

        self.semaphore = asyncio.Semaphore(max_concurrency)

        # Injected clients are owned by the caller and never closed here
        self._client: Optional[httpx.AsyncClient] = http_client
        self._owns_client = http_client is None

        logger.debug(
            f"Initialized {self.SOURCE_NAME} client: "
            f"api_key_present={api_key is not None}, "
            f"max_concurrency={max_concurrency}, "
            f"timeout={timeout}s"
        )

    @property
    def is_configured(self) -> bool:
        """Whether the client has what it needs to make calls."""
        return True

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client with connection pooling."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout, connect=self.connect_timeout),
                follow_redirects=True,
                limits=httpx.Limits(
                    max_connections=self.max_concurrency * 2,
                    max_keepalive_connections=self.max_concurrency
                )
            )
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None
            logger.debug(f"{self.SOURCE_NAME} client closed")

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit - ensures cleanup."""
        await self.close()

    def _check_api_error(
        self,
        data: Any,
        resource_id: str
    ) -> Optional[APIError]:
        """
        Check a 2xx response body for source-specific errors.

        Override in subclass to handle source-specific error formats.

        Args:
            data: Parsed JSON response
            resource_id: Resource being requested (for logging)

        Returns:
            APIError if error detected, None otherwise
        """
        if isinstance(data, dict) and "error" in data:
            error_msg = data.get("error")
            if isinstance(error_msg, dict):
                error_msg = error_msg.get("message", str(error_msg))
            return FatalError(
                message=str(error_msg),
                source=self.SOURCE_NAME,
                response_data=data
            )
        return None

    def _build_headers(self) -> Dict[str, str]:
        """
        Build request headers.

        Override to add source-specific headers (e.g., Authorization).
        """
        return {
            "Accept": "application/json",
            "User-Agent": f"location-intel/{self.SOURCE_NAME}-client"
        }

    async def _request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Union[Dict[str, Any], list]] = None,
        form_data: Optional[Dict[str, str]] = None,
        resource_id: str = "unknown",
        extra_headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """
        Make a single HTTP request and parse its JSON body.

        Args:
            method: HTTP method (GET, POST, etc.)
            url: Full URL or path (if path, BASE_URL is prepended)
            params: Query parameters
            json_body: JSON body for POST requests
            form_data: Form-encoded body for POST requests
            resource_id: Identifier for logging
            extra_headers: Additional headers to include
            timeout: Per-call timeout override in seconds

        Returns:
            Parsed JSON response

        Raises:
            APIError: On any failure (HTTP status, network, timeout, bad payload)
        """
        if not url.startswith("http"):
            url = f"{self.BASE_URL.rstrip('/')}/{url.lstrip('/')}"

        headers = self._build_headers()
        if extra_headers:
            headers.update(extra_headers)

        call_timeout = httpx.Timeout(
            timeout or self.timeout, connect=min(self.connect_timeout, timeout or self.timeout)
        )

        async with self.semaphore:
            client = await self._get_client()

            logger.debug(f"[{self.SOURCE_NAME}] {method} {resource_id}")

            try:
                response = await client.request(
                    method,
                    url,
                    params=params,
                    json=json_body,
                    data=form_data,
                    headers=headers,
                    timeout=call_timeout,
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                raise classify_http_error(
                    e.response.status_code,
                    e.response.text[:500],
                    self.SOURCE_NAME
                )
            except httpx.TimeoutException as e:
                raise UpstreamUnavailableError(
                    message=f"Timed out after {call_timeout.read}s: {resource_id} ({e.__class__.__name__})",
                    source=self.SOURCE_NAME
                )
            except httpx.RequestError as e:
                raise UpstreamUnavailableError(
                    message=f"Request failed: {str(e)}",
                    source=self.SOURCE_NAME
                )

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedResponseError(
                message=f"Invalid JSON for {resource_id}: {e}",
                source=self.SOURCE_NAME
            )

        api_error = self._check_api_error(data, resource_id)
        if api_error:
            raise api_error

        logger.debug(f"[{self.SOURCE_NAME}] Successfully fetched {resource_id}")
        return data

    async def get(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        resource_id: str = "unknown",
        extra_headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """Make GET request."""
        return await self._request(
            "GET",
            url,
            params=params,
            resource_id=resource_id,
            extra_headers=extra_headers,
            timeout=timeout,
        )

    async def post(
        self,
        url: str,
        json_body: Optional[Union[Dict[str, Any], list]] = None,
        form_data: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        resource_id: str = "unknown",
        extra_headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """Make POST request with either a JSON or a form-encoded body."""
        return await self._request(
            "POST",
            url,
            params=params,
            json_body=json_body,
            form_data=form_data,
            resource_id=resource_id,
            extra_headers=extra_headers,
            timeout=timeout,
        )
