"""Error handling and HTTP mapping for the API.

This module provides:
- API-specific exception classes
- Mapping from internal errors to HTTP status codes
- Exception handlers for FastAPI

Error Code Mapping:
    - RequestValidationError -> 400 INVALID_REQUEST
    - NotFoundError -> 404 NOT_FOUND
    - TimelineValidationError, SessionStateError -> 422 INVALID_INPUT
    - UpstreamError -> 502 UPSTREAM_FAILED
    - ModelOutputError -> 502 INVALID_MODEL_OUTPUT
    - ReviewTimelineMissingError -> 500 REVIEW_TIMELINE_MISSING
    - ReviewLinkError -> 500 REVIEW_LINK_FAILED
    - StorageError -> 500 STORAGE_ERROR
    - Generic exceptions -> 500 INTERNAL_ERROR
"""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from nlp.errors import NlpError, UpstreamError
from storage.errors import NotFoundError, StorageError
from timeline.errors import (
    ModelOutputError,
    ReviewLinkError,
    ReviewTimelineMissingError,
    SessionStateError,
    TimelineError,
    TimelineValidationError,
)

from .schemas import ApiErrorResponse, ErrorDetail


logger = logging.getLogger(__name__)


# =============================================================================
# API Exception Classes
# =============================================================================


class ApiError(Exception):
    """Base exception for API errors.

    Attributes:
        status_code: HTTP status code to return.
        code: Machine-readable error code.
        message: Human-readable error message.
        details: Optional additional context.
    """

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details


class InvalidRequestError(ApiError):
    """Raised when the request body or path is malformed."""

    def __init__(
        self,
        message: str = "Invalid request",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            status_code=400,
            code="INVALID_REQUEST",
            message=message,
            details=details,
        )


class UnauthorizedError(ApiError):
    """Raised when the caller is not authenticated."""

    def __init__(
        self,
        message: str = "Unauthorized",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            status_code=401,
            code="UNAUTHORIZED",
            message=message,
            details=details,
        )


class ForbiddenError(ApiError):
    """Raised when the caller lacks a role or does not own the resource."""

    def __init__(
        self,
        message: str = "Forbidden",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            status_code=403,
            code="FORBIDDEN",
            message=message,
            details=details,
        )


class ResourceNotFoundError(ApiError):
    """Raised when a referenced row does not exist."""

    def __init__(
        self,
        message: str = "Not found",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            status_code=404,
            code="NOT_FOUND",
            message=message,
            details=details,
        )


class InvalidInputError(ApiError):
    """Raised when input validation fails."""

    def __init__(
        self,
        message: str = "Invalid input",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            status_code=422,
            code="INVALID_INPUT",
            message=message,
            details=details,
        )


class UpstreamFailedError(ApiError):
    """Raised when the language-model gateway fails."""

    def __init__(
        self,
        message: str = "AI processing failed",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            status_code=502,
            code="UPSTREAM_FAILED",
            message=message,
            details=details,
        )


class InvalidModelOutputError(ApiError):
    """Raised when the language model returns unusable output."""

    def __init__(
        self,
        message: str = "Invalid graph data format from AI",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            status_code=502,
            code="INVALID_MODEL_OUTPUT",
            message=message,
            details=details,
        )


class ReviewTimelineMissingApiError(ApiError):
    """Raised when a review was stored without its timeline."""

    def __init__(
        self,
        message: str = "Review saved without timeline",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            status_code=500,
            code="REVIEW_TIMELINE_MISSING",
            message=message,
            details=details,
        )


class ReviewLinkApiError(ApiError):
    """Raised when a review's timeline was stored but not linked."""

    def __init__(
        self,
        message: str = "Review timeline stored but not linked",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            status_code=500,
            code="REVIEW_LINK_FAILED",
            message=message,
            details=details,
        )


class StorageFailedError(ApiError):
    """Raised when the database rejects or fails a query."""

    def __init__(
        self,
        message: str = "Storage operation failed",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            status_code=500,
            code="STORAGE_ERROR",
            message=message,
            details=details,
        )


class InternalError(ApiError):
    """Raised for unexpected internal errors."""

    def __init__(
        self,
        message: str = "Internal server error",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            status_code=500,
            code="INTERNAL_ERROR",
            message=message,
            details=details,
        )


# =============================================================================
# Error Mapping Functions
# =============================================================================


def map_exception_to_api_error(exc: Exception) -> ApiError:
    """Map internal exceptions to appropriate API errors.

    Args:
        exc: The exception raised during processing.

    Returns:
        An ApiError subclass with appropriate HTTP status and code.
    """
    # Missing rows -> 404 (checked before the StorageError base)
    if isinstance(exc, NotFoundError):
        return ResourceNotFoundError(
            message=exc.message,
            details={"reason": exc.code, **exc.details},
        )

    # Storage failures -> 500
    if isinstance(exc, StorageError):
        return StorageFailedError(
            message=exc.message,
            details={"reason": exc.code, **exc.details},
        )

    # Review stored without timeline -> 500
    if isinstance(exc, ReviewTimelineMissingError):
        return ReviewTimelineMissingApiError(
            message=exc.message,
            details=exc.details,
        )

    # Timeline stored, review not linked -> 500
    if isinstance(exc, ReviewLinkError):
        return ReviewLinkApiError(
            message=exc.message,
            details=exc.details,
        )

    # Unusable model output -> 502
    if isinstance(exc, ModelOutputError):
        return InvalidModelOutputError(
            message=exc.message,
            details={"reason": exc.code, **exc.details},
        )

    # Bad points, ratings or session state -> 422
    if isinstance(exc, (TimelineValidationError, SessionStateError)):
        return InvalidInputError(
            message=exc.message,
            details={"reason": exc.code, **exc.details},
        )

    # Gateway failures -> 502
    if isinstance(exc, UpstreamError):
        return UpstreamFailedError(
            message=exc.message,
            details={"reason": exc.code, **exc.details},
        )

    # Remaining NLP errors (missing configuration) -> 500
    if isinstance(exc, NlpError):
        return InternalError(
            message=exc.message,
            details={"reason": exc.code},
        )

    # Already an API error, return as-is
    if isinstance(exc, ApiError):
        return exc

    # Generic fallback -> 500
    return InternalError(
        message=str(exc) or "An unexpected error occurred",
        details={"exception_type": type(exc).__name__},
    )


def create_error_response(api_error: ApiError) -> ApiErrorResponse:
    """Create a structured error response from an API error.

    Args:
        api_error: The API error to convert.

    Returns:
        ApiErrorResponse with properly structured error details.
    """
    return ApiErrorResponse(
        error=ErrorDetail(
            code=api_error.code,
            message=api_error.message,
            details=api_error.details,
        )
    )


def _json_error(request: Request, api_error: ApiError) -> JSONResponse:
    request_id = getattr(request.state, "request_id", "unknown")
    response = create_error_response(api_error)
    return JSONResponse(
        status_code=api_error.status_code,
        content=response.model_dump(mode="json"),
        headers={"X-Request-ID": request_id},
    )


# =============================================================================
# Exception Handlers
# =============================================================================


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    """Handle ApiError exceptions.

    Args:
        request: The incoming request.
        exc: The ApiError exception.

    Returns:
        JSONResponse with error details.
    """
    request_id = getattr(request.state, "request_id", "unknown")

    logger.warning(
        "API error: code=%s message=%s request_id=%s",
        exc.code,
        exc.message,
        request_id,
    )

    return _json_error(request, exc)


async def validation_error_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Handle request body and path validation failures as 400."""
    errors = [
        {
            "loc": [str(part) for part in err.get("loc", ())],
            "msg": err.get("msg", ""),
            "type": err.get("type", ""),
        }
        for err in exc.errors()
    ]
    api_error = InvalidRequestError(
        message="Request validation failed",
        details={"errors": errors},
    )

    logger.warning(
        "Request validation failed: path=%s errors=%d request_id=%s",
        request.url.path,
        len(errors),
        getattr(request.state, "request_id", "unknown"),
    )

    return _json_error(request, api_error)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle all unhandled exceptions.

    Maps internal exceptions to appropriate HTTP responses.

    Args:
        request: The incoming request.
        exc: The unhandled exception.

    Returns:
        JSONResponse with error details.
    """
    request_id = getattr(request.state, "request_id", "unknown")

    # Map to API error
    api_error = map_exception_to_api_error(exc)

    # Log with appropriate level
    if api_error.status_code >= 500:
        logger.error(
            "Internal error: code=%s message=%s request_id=%s",
            api_error.code,
            api_error.message,
            request_id,
            exc_info=exc,
        )
    else:
        logger.warning(
            "Request error: code=%s message=%s request_id=%s",
            api_error.code,
            api_error.message,
            request_id,
        )

    return _json_error(request, api_error)


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app.

    Args:
        app: The FastAPI application instance.
    """
    # Handle API errors
    app.add_exception_handler(ApiError, api_error_handler)

    # Malformed bodies and ids are client errors, not 422
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    # Handle all internal errors
    app.add_exception_handler(TimelineError, generic_exception_handler)
    app.add_exception_handler(StorageError, generic_exception_handler)
    app.add_exception_handler(NlpError, generic_exception_handler)

    # Catch-all for unexpected errors
    app.add_exception_handler(Exception, generic_exception_handler)
