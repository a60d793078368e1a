"""Custom exceptions for emotion timeline operations."""

from typing import Any


class TimelineError(Exception):
    """Base exception for all timeline errors.

    Attributes:
        message: Human-readable error description.
        code: Short error code string (e.g., "OUT_OF_RANGE").
        details: Optional dictionary with additional context.
    """

    def __init__(
        self,
        message: str,
        code: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize TimelineError.

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


class TimelineValidationError(TimelineError):
    """Raised when a point, timeline or producer input is invalid.

    Common codes:
        - OUT_OF_RANGE: Offset or score outside its closed range.
        - INVALID_POINT: Point is missing a field or is not numeric.
        - INVALID_SECTIONS: Section ratings are missing or unknown.
        - INVALID_ROW: Stored row does not match the timeline shape.
        - EMPTY_TIMELINE: Timeline has no points.
    """

    def __init__(
        self,
        message: str,
        code: str = "INVALID_TIMELINE",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class ModelOutputError(TimelineError):
    """Raised when language-model output cannot be adapted to a timeline.

    Common codes:
        - UNPARSEABLE: Output is not valid JSON after fence stripping.
        - NOT_AN_ARRAY: Parsed output is not a JSON array.
        - EMPTY_OUTPUT: Parsed array has no points.
        - INVALID_POINT: A point is malformed or out of range.
    """
    pass


class SessionStateError(TimelineError):
    """Raised when a live-reaction session is used in the wrong state.

    Common codes:
        - ALREADY_COMPLETED: Session already produced a timeline.
        - NO_SESSION: Sampler has no open session to persist against.
    """
    pass


class ReviewTimelineMissingError(TimelineError):
    """Raised when a review row was written but its timeline was not.

    The review keeps its independent value; the timeline can be rebuilt
    from the stored section ratings with ``regenerate_review_timeline``.
    """

    def __init__(
        self,
        message: str,
        review_id: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message,
            "REVIEW_TIMELINE_MISSING",
            {"review_id": review_id, **(details or {})},
        )
        self.review_id = review_id


class ReviewLinkError(TimelineError):
    """Raised when a review's timeline was stored but linking it failed.

    The timeline exists as ``graph_id``. Pass that id to
    ``regenerate_review_timeline`` to link it instead of storing a
    second timeline for the same review.
    """

    def __init__(
        self,
        message: str,
        review_id: str,
        graph_id: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message,
            "REVIEW_LINK_FAILED",
            {"review_id": review_id, "graph_id": graph_id, **(details or {})},
        )
        self.review_id = review_id
        self.graph_id = graph_id
