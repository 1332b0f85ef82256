"""
Exception classes for the Wings client.

All exceptions inherit from WingsClientError and provide structured
error information with codes, messages, and optional details.
"""

from typing import Optional


class WingsClientError(Exception):
    """Base exception for all Wings client errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class WingsConnectionError(WingsClientError):
    """Raised when the node agent cannot be reached (DNS, connect, timeout, TLS)."""

    pass


class WingsAuthenticationError(WingsClientError):
    """Raised on HTTP 401/403. Never retried."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int,
        details: Optional[dict] = None,
    ) -> None:
        super().__init__(code, message, details)
        self.status_code = status_code

    def to_dict(self) -> dict:
        result = super().to_dict()
        result["status_code"] = self.status_code
        return result



class WingsRequestError(WingsClientError):
    """Raised when the node agent answers with an HTTP error status."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int,
        details: Optional[dict] = None,
    ) -> None:
        super().__init__(code, message, details)
        self.status_code = status_code

    def to_dict(self) -> dict:
        result = super().to_dict()
        result["status_code"] = self.status_code
        return result


class NotFoundError(WingsRequestError):
    """Raised on HTTP 404."""

    pass


class RateLimitError(WingsRequestError):
    """Raised on HTTP 429."""

    pass


class SigningError(WingsClientError):
    """Raised when a token cannot be signed (missing secret, bad claims)."""

    pass


class InvalidTokenError(SigningError):
    """Raised when a token fails signature or time-claim validation."""

    pass


class NotConfiguredError(WingsClientError):
    """Raised when an optional component is used without being configured."""

    pass
