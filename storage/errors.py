"""Custom exceptions for storage operations."""

from typing import Any


class StorageError(Exception):
    """Base exception for all storage errors.

    Attributes:
        message: Human-readable error description.
        code: Short error code string (e.g., "QUERY_FAILED").
        details: Optional dictionary with additional context.
    """

    def __init__(
        self,
        message: str,
        code: str = "QUERY_FAILED",
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize StorageError.

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


class NotFoundError(StorageError):
    """Raised when a requested row does not exist.

    Common codes:
        - SESSION_NOT_FOUND: No live-reaction session with that id.
        - REVIEW_NOT_FOUND: No manual review with that id.
        - TIMELINE_NOT_FOUND: No emotion graph with that id.
    """

    def __init__(
        self,
        message: str,
        code: str = "NOT_FOUND",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)
