"""
Error classification for upstream data sources and engine operations.

Upstream errors never cross a provider boundary: adapters catch them and
report "no data". They exist so that logs say *why* a source was
unavailable. The engine-level errors at the bottom are the only ones a
caller of the public operations can see.
"""

from typing import Optional, Dict, Any


class APIError(Exception):
    """
    Base exception for all upstream API errors.

    Attributes:
        message: Human-readable error description
        source: Source tag (e.g., 'cbs', 'bag', 'overpass', 'google')
        status_code: HTTP status code if applicable
        response_data: Raw response data for debugging
        transient: Whether the same request could succeed later
    """

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        status_code: Optional[int] = None,
        response_data: Optional[Dict[str, Any]] = None,
        transient: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.source = source
        self.status_code = status_code
        self.response_data = response_data
        self.transient = transient

    def __str__(self) -> str:
        parts = [self.message]
        if self.source:
            parts.insert(0, f"[{self.source}]")
        if self.status_code:
            parts.append(f"(HTTP {self.status_code})")
        return " ".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "source": self.source,
            "status_code": self.status_code,
            "transient": self.transient,
        }


class UpstreamUnavailableError(APIError):
    """
    The source could not be reached or answered with a server error.

    Covers HTTP 5xx, network failures and per-call timeouts. Nothing is
    retried; the source simply counts as unavailable for this request.
    """

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        status_code: Optional[int] = None,
        response_data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            source=source,
            status_code=status_code,
            response_data=response_data,
            transient=True,
        )


class RateLimitError(APIError):
    """Rate limiting error (HTTP 429 or API-specific throttling)."""

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        retry_after: Optional[int] = None,
        response_data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            source=source,
            status_code=429,
            response_data=response_data,
            transient=True,
        )
        self.retry_after = retry_after


class FatalError(APIError):
    """
    Errors that indicate a permanent problem with the request.

    Examples:
    - Invalid API key (401)
    - Resource not found (404)
    - Invalid request parameters (400)
    - Forbidden access (403)
    """

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        status_code: Optional[int] = None,
        response_data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            source=source,
            status_code=status_code,
            response_data=response_data,
            transient=False,
        )


class AuthenticationError(FatalError):
    """Authentication failed - invalid or missing API key."""

    def __init__(
        self,
        message: str = "Authentication failed - check API key",
        source: Optional[str] = None,
        response_data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message, source=source, status_code=401, response_data=response_data
        )


class NotFoundError(FatalError):
    """Requested resource not found."""

    def __init__(
        self,
        message: str = "Resource not found",
        source: Optional[str] = None,
        resource_id: Optional[str] = None,
        response_data: Optional[Dict[str, Any]] = None,
    ):
        if resource_id:
            message = f"{message}: {resource_id}"
        super().__init__(
            message=message, source=source, status_code=404, response_data=response_data
        )
        self.resource_id = resource_id


class ValidationError(FatalError):
    """Request validation failed - invalid parameters (HTTP 400)."""

    def __init__(
        self,
        message: str = "Invalid request parameters",
        source: Optional[str] = None,
        response_data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message, source=source, status_code=400, response_data=response_data
        )


class MalformedResponseError(FatalError):
    """The source answered 2xx but the payload was not what we expected."""

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message=message, source=source)


class ConfigurationError(FatalError):
    """
    Configuration error - missing required settings.

    Raised when an optional integration is used without its credential.
    """

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        missing_config: Optional[str] = None,
    ):
        super().__init__(message=message, source=source)
        self.missing_config = missing_config


# =============================================================================
# ENGINE ERRORS
# =============================================================================


class LLMNotConfiguredError(ConfigurationError):
    """No LLM credential is configured for the requested operation."""

    def __init__(self, message: str = "No LLM provider configured"):
        super().__init__(message=message, source="llm", missing_config="LLM API key")


class AgentOutputError(Exception):
    """The classification agent finished without a usable classifications object."""


class ConceptCheckTimeoutError(Exception):
    """
    A concept viability check exceeded its global deadline.

    This is the one failure that reaches callers: every other problem
    has already been absorbed by a fallback.
    """

    def __init__(self, concept: str, timeout_seconds: float):
        super().__init__(
            f"Concept check for '{concept}' exceeded {timeout_seconds:.0f}s"
        )
        self.concept = concept
        self.timeout_seconds = timeout_seconds


def classify_http_error(
    status_code: int, response_text: str = "", source: Optional[str] = None
) -> APIError:
    """
    Classify an HTTP error into the appropriate APIError subclass.

    Args:
        status_code: HTTP status code
        response_text: Response body text
        source: Source tag

    Returns:
        Appropriate APIError subclass instance
    """
    if status_code == 429:
        return RateLimitError(
            message=f"Rate limited: {response_text[:200]}", source=source
        )
    elif status_code == 401:
        return AuthenticationError(
            message=f"Authentication failed: {response_text[:200]}", source=source
        )
    elif status_code == 403:
        return FatalError(
            message=f"Access forbidden: {response_text[:200]}",
            source=source,
            status_code=403,
        )
    elif status_code == 404:
        return NotFoundError(message=f"Not found: {response_text[:200]}", source=source)
    elif status_code == 400:
        return ValidationError(
            message=f"Bad request: {response_text[:200]}", source=source
        )
    elif 500 <= status_code < 600:
        return UpstreamUnavailableError(
            message=f"Server error: {response_text[:200]}",
            source=source,
            status_code=status_code,
        )
    else:
        return APIError(
            message=f"HTTP error {status_code}: {response_text[:200]}",
            source=source,
            status_code=status_code,
        )
