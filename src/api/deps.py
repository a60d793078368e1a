"""FastAPI dependencies for the timeline API.

This module provides dependency injection functions for:
- Settings access
- Storage, auth gateway and language-model client access
- Bearer-token authentication and operator authorization
- Aggregation configuration

Example:
    >>> from fastapi import Depends
    >>> from src.api.deps import require_operator

    >>> @app.post("/aggregate")
    >>> async def endpoint(user_id: str = Depends(require_operator)):
    ...     return {"user": user_id}
"""

import logging
from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from nlp import LanguageModelClient
from storage import AuthGateway, TimelineStore
from timeline import AggregationConfig, ModerationStatus, weights_from_mapping

from .config import Settings, get_settings as _get_settings
from .errors import ForbiddenError, UnauthorizedError


logger = logging.getLogger(__name__)


# Re-export get_settings for dependency injection
get_settings = _get_settings


_bearer = HTTPBearer(auto_error=False)


# =============================================================================
# Application State
# =============================================================================


def get_app_settings(request: Request) -> Settings:
    """Get the settings the application was created with."""
    return request.app.state.settings


def get_store(request: Request) -> TimelineStore:
    """Get the storage backend attached to the application."""
    return request.app.state.store


def get_auth(request: Request) -> AuthGateway:
    """Get the auth gateway attached to the application."""
    return request.app.state.auth


def get_llm_client(request: Request) -> LanguageModelClient:
    """Get the language-model client attached to the application."""
    return request.app.state.llm_client


# =============================================================================
# Authentication
# =============================================================================


def get_current_user(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer)],
    auth: Annotated[AuthGateway, Depends(get_auth)],
) -> str:
    """Resolve the bearer token to a user id.

    The id is also left on ``request.state`` for the access log.

    Raises:
        UnauthorizedError: If the token is missing or not recognised.
    """
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError("Missing bearer token")

    user_id = auth.get_user_id(credentials.credentials)
    if user_id is None:
        raise UnauthorizedError("Invalid or expired token")

    request.state.user_id = user_id
    return user_id


def is_operator(auth: AuthGateway, settings: Settings, user_id: str) -> bool:
    """Check whether the user holds one of the operator roles."""
    return auth.has_any_role(user_id, settings.operator_roles)


def require_operator(
    user_id: Annotated[str, Depends(get_current_user)],
    auth: Annotated[AuthGateway, Depends(get_auth)],
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> str:
    """Require an authenticated user with an operator role.

    Raises:
        ForbiddenError: If the user holds none of the operator roles.
    """
    if not is_operator(auth, settings, user_id):
        logger.warning("Operator role required: user_id=%s", user_id)
        raise ForbiddenError(
            "Admin or moderator access required",
            details={"required_roles": list(settings.operator_roles)},
        )
    return user_id


# =============================================================================
# Configuration Builders
# =============================================================================


def aggregation_config_from_settings(settings: Settings) -> AggregationConfig:
    """Build the aggregation configuration from settings.

    Args:
        settings: Application settings.

    Returns:
        AggregationConfig with settings applied.
    """
    return AggregationConfig(
        window_size=settings.smoothing_window,
        offset_precision=settings.offset_precision,
        weights=weights_from_mapping(settings.aggregation_weights),
    )


def review_moderation_status(settings: Settings) -> ModerationStatus:
    """Initial moderation status of newly submitted manual reviews."""
    if settings.manual_review_auto_approve:
        return ModerationStatus.APPROVED
    return ModerationStatus.PENDING


def llm_client_from_settings(settings: Settings) -> LanguageModelClient:
    """Create the language-model client from settings."""
    return LanguageModelClient(
        base_url=settings.llm_gateway_url,
        api_key=settings.llm_api_key,
        model=settings.llm_model,
        temperature=settings.llm_temperature,
        timeout_sec=settings.llm_timeout_sec,
    )
