"""Configuration management for the emotion timeline API service.

This module provides centralized configuration using pydantic-settings,
loading values from environment variables with sensible defaults.

Example:
    >>> from src.api.config import get_settings
    >>> settings = get_settings()
    >>> print(settings.app_name)
    Movie Emotion Tracker API
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from timeline.schema import AGGREGATION_WEIGHTS, SourceKind


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    Environment variables use uppercase names matching the attribute names.

    Attributes:
        app_name: Name of the application for OpenAPI docs.
        app_version: API version string.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
        supabase_url: Supabase project URL. Empty selects the in-memory store.
        supabase_service_role_key: Service-role key for the Supabase project.
        llm_gateway_url: Base URL of the chat-completions gateway.
        llm_api_key: Bearer key for the gateway.
        llm_model: Model identifier for review analysis.
        llm_temperature: Sampling temperature for review analysis.
        llm_timeout_sec: Gateway request timeout.
        operator_roles: Roles allowed to run aggregation and NLP analysis.
        smoothing_window: Moving-average window for consensus smoothing.
        offset_precision: Decimal places of the offset merge key.
        aggregation_weights: Weight per source kind.
        batch_max_workers: Movies aggregated concurrently in batch mode.
        section_stride: Stride of section-rating expansion.
        manual_review_auto_approve: Approve manual reviews on submission.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application settings
    app_name: str = "Movie Emotion Tracker API"
    app_version: str = "1.0.0"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Storage settings
    supabase_url: str = ""
    supabase_service_role_key: str = ""

    # Language-model settings
    llm_gateway_url: str = "https://ai.gateway.lovable.dev/v1"
    llm_api_key: str = ""
    llm_model: str = "google/gemini-2.5-flash"
    llm_temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    llm_timeout_sec: float = Field(default=60.0, gt=0)

    # Authorization
    operator_roles: list[str] = ["admin", "moderator"]

    # Aggregation defaults
    smoothing_window: int = Field(default=5, ge=1)
    offset_precision: int = Field(default=1, ge=0)
    aggregation_weights: dict[str, float] = {
        kind.value: weight for kind, weight in AGGREGATION_WEIGHTS.items()
    }
    batch_max_workers: int = Field(default=1, ge=1)

    # Producer defaults
    section_stride: float = Field(default=5.0, gt=0)
    manual_review_auto_approve: bool = False

    @field_validator("aggregation_weights")
    @classmethod
    def _check_weights(cls, value: dict[str, float]) -> dict[str, float]:
        for key, weight in value.items():
            kind = SourceKind(key)
            if kind is SourceKind.CONSENSUS:
                raise ValueError("consensus cannot be weighted")
            if not 0 < weight <= 1:
                raise ValueError(f"weight for {key} must be in (0, 1], got {weight}")
        return value


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.

    Returns:
        Settings instance with values from environment.
    """
    return Settings()
