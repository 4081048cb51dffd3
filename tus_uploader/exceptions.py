"""Exception classes for the upload workflow."""

from typing import Any


class UploaderError(Exception):
    """Base error for the upload workflow."""


class ValidationError(UploaderError):
    """Raised when upload input is invalid (missing or oversized source)."""


class SourceUnavailable(UploaderError):
    """Raised when the local source cannot be read at the requested range."""


class ProtocolError(UploaderError):
    """Raised when the remote omits a field the protocol requires."""


class TransportError(UploaderError):
    """Raised when no HTTP response was received (reset, timeout, DNS)."""


class HTTPStatusError(UploaderError):
    """Base error for failures carrying an HTTP status."""

    def __init__(self, message: str, status: int, details: Any = None) -> None:
        """Initialize the error.

        Args:
            message: Human readable description.
            status: HTTP status code of the failing response.
            details: Optional response body or structured error detail.
        """
        super().__init__(message)
        self.status = status
        self.details = details


class AuthenticationFailure(HTTPStatusError):
    """Raised on 401/403 during session creation. Never retried."""


class TransferFailure(HTTPStatusError):
    """Raised on a non-2xx response; subject to the retry policy."""
