"""Custom exceptions for language-model operations."""

from typing import Any


class NlpError(Exception):
    """Base exception for all language-model errors.

    Attributes:
        message: Human-readable error description.
        code: Short error code string (e.g., "UPSTREAM_FAILED").
        details: Optional dictionary with additional context.
    """

    def __init__(
        self,
        message: str,
        code: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize NlpError.

        Args:
            message: Human-readable error description.
            code: Short error code string.
            details: Optional dictionary with additional context.
        """
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def __str__(self) -> str:
        """Return formatted error string."""
        if self.details:
            return f"[{self.code}] {self.message} (details: {self.details})"
        return f"[{self.code}] {self.message}"

    def __repr__(self) -> str:
        """Return repr string."""
        return f"{self.__class__.__name__}(message={self.message!r}, code={self.code!r}, details={self.details!r})"


class NlpConfigError(NlpError):
    """Raised when the language-model client is not configured.

    Common codes:
        - MISSING_API_KEY: No gateway API key configured.
    """
    pass


class UpstreamError(NlpError):
    """Raised when the language-model gateway fails.

    Common codes:
        - UPSTREAM_FAILED: Gateway returned a non-success status.
        - UPSTREAM_UNAVAILABLE: Transport error or timeout.
        - EMPTY_COMPLETION: Response carried no message content.

    Attributes:
        status_code: Upstream HTTP status, if a response was received.
    """

    def __init__(
        self,
        message: str,
        code: str = "UPSTREAM_FAILED",
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, {"upstream_status": status_code, **(details or {})})
        self.status_code = status_code
