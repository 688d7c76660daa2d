from typing import Any


class GHLError(Exception):
    """Base class for every error raised by ghl_client."""


class HttpClientError(GHLError):
    """A request failed at the transport or HTTP level.

    Attributes:
        status_code: HTTP status, or None for network errors and timeouts.
        response: parsed error body (dict or text) when the server answered.
        should_retry: whether the retry executor may try again.
        retry_after: milliseconds the server asked us to wait (429 only).
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response: Any = None,
        should_retry: bool = False,
        retry_after: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response = response
        self.should_retry = should_retry
        self.retry_after = retry_after

    def __repr__(self) -> str:
        return (
            f"HttpClientError({self.message!r}, status_code={self.status_code}, "
            f"should_retry={self.should_retry})"
        )


TransportError = HttpClientError


class ValidationError(GHLError):
    """A response did not match its schema.

    ``errors`` is a list of ``{"path", "message", "value"}`` dicts.
    """

    def __init__(self, message: str, errors: list[dict[str, Any]]):
        super().__init__(message)
        self.message = message
        self.errors = errors


class ConfigurationError(GHLError, ValueError):
    """The client is missing something it needs (location id, OAuth settings, ...)."""


class RefreshError(GHLError):
    """The OAuth token endpoint rejected a code or refresh-token exchange."""

    def __init__(self, message: str, status_code: int | None = None, response: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response = response
