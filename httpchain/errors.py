"""Errors raised by httpchain.

Configuration errors are recorded on the builder and raised when the request
is built or executed. Transport and decode errors are raised where they occur.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from httpchain.response import Response


class HttpChainError(Exception):
    """Base class for httpchain errors."""


class ConfigError(HttpChainError):
    """Raised when configuration loading or validation fails."""


class InvalidURLError(HttpChainError):
    """Raised when a request or proxy URL cannot be parsed."""


class MissingURLError(HttpChainError):
    """Raised when a request is executed without a URL."""

    def __init__(self) -> None:
        super().__init__("request lacks URL")


class MissingMethodError(HttpChainError):
    """Raised when a request is executed without a method."""

    def __init__(self) -> None:
        super().__init__("request lacks method")


class BodyConflictError(HttpChainError):
    """Raised when a body-producing call conflicts with the body already set."""


class EncodingError(HttpChainError):
    """Raised when a body value cannot be marshaled to JSON."""


class FileOpenError(HttpChainError):
    """Raised when an attachment file cannot be opened or read."""


class ProxyError(HttpChainError):
    """Raised when a proxy address is invalid or uses an unsupported scheme."""


class TransportError(HttpChainError):
    """Raised when the transport fails (DNS, connection refused, TLS, etc.)."""


class TooManyRedirectsError(TransportError):
    """Raised when the redirect chain exceeds the configured cap."""


class RequestTimeoutError(HttpChainError, TimeoutError):
    """Raised when the request does not complete within its timeout."""


class DecodeError(HttpChainError):
    """Raised when the response body cannot be decompressed."""


class UnmarshalError(DecodeError):
    """Raised when the response body is not valid JSON for the requested shape."""


class NotJSONError(HttpChainError):
    """Raised when JSON is requested from a response that isn't application/json.

    The message is the body text when the body is non-empty, otherwise the
    status line.
    """


class StatusNotOkError(HttpChainError):
    """Raised when the response status is >= 400.

    The decoded body is still available as ``value`` so callers can inspect
    error payloads.
    """

    def __init__(self, response: Response, value: Any) -> None:
        super().__init__(f"status code is not ok (>= 400): {response.status_line}")
        self.response = response
        self.value = value
