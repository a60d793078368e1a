"""Pydantic schemas for API request/response models.

This module defines all the request and response schemas used by the
API endpoints, ensuring consistent serialization and validation.
Field names are snake_case in Python and camelCase on the wire.

Example:
    >>> from src.api.schemas import AggregateResponse
    >>> AggregateResponse(success=True, points_aggregated=3, graphs_used=2).model_dump(
    ...     by_alias=True
    ... )
    {'success': True, 'pointsAggregated': 3, 'graphsUsed': 2}
"""

from typing import Any
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Health Endpoint
# =============================================================================


class HealthResponse(BaseModel):
    """Response schema for /health endpoint."""

    status: str = Field(
        default="ok",
        description="Service status",
        examples=["ok", "degraded"],
    )
    storage: str = Field(
        description="Active storage backend",
        examples=["supabase", "memory"],
    )


# =============================================================================
# Shared
# =============================================================================


class PointSchema(BaseModel):
    """A single ``{t_offset, score}`` timeline point."""

    t_offset: float = Field(
        description="Offset in percent of the movie runtime",
        examples=[42.5],
    )
    score: float = Field(
        description="Emotional intensity on the 0-10 scale",
        examples=[7.0],
    )


# =============================================================================
# Aggregate Endpoint
# =============================================================================


class AggregateRequest(CamelModel):
    """Request schema for /aggregate. Omit movieId to aggregate every movie."""

    movie_id: UUID | None = Field(
        default=None,
        description="Movie to aggregate; all movies when omitted",
    )


class AggregateResponse(CamelModel):
    """Single-movie aggregation result."""

    success: bool = True
    points_aggregated: int = Field(
        ge=0,
        description="Number of merged points in the consensus timeline",
        examples=[3],
    )
    graphs_used: int = Field(
        ge=0,
        description="Number of eligible timelines merged",
        examples=[2],
    )


class AggregateEmptyResponse(CamelModel):
    """Returned when a movie has no eligible timelines."""

    message: str = Field(
        default="No graphs to aggregate",
        examples=["No graphs to aggregate"],
    )


class BatchFailureSchema(CamelModel):
    """A movie whose aggregation failed during a batch run."""

    movie_id: str
    error: str


class BatchAggregateResponse(CamelModel):
    """Batch aggregation summary."""

    success_count: int = Field(
        ge=0,
        description="Movies aggregated without error",
        examples=[2],
    )
    total: int = Field(
        ge=0,
        description="Movies attempted",
        examples=[3],
    )
    failures: list[BatchFailureSchema] = Field(
        default_factory=list,
        description="Per-movie failures",
    )


# =============================================================================
# NLP Endpoint
# =============================================================================


class NlpAnalyzeRequest(CamelModel):
    """Request schema for /nlp/analyze."""

    movie_id: UUID = Field(description="Movie the review is about")
    review_text: str = Field(
        min_length=1,
        description="Free-text review",
        examples=["A slow opening, but the climax is breathtaking."],
    )
    runtime_minutes: float = Field(
        gt=0,
        validation_alias=AliasChoices("runtime_minutes", "runtimeMinutes", "runtime"),
        description="Movie runtime in minutes",
        examples=[118],
    )


class GraphCreatedResponse(CamelModel):
    """A timeline was written."""

    success: bool = True
    graph_id: str = Field(description="Id of the stored emotion graph")
    data_points: int = Field(
        ge=0,
        description="Number of points in the stored timeline",
        examples=[21],
    )


# =============================================================================
# Manual Review Endpoints
# =============================================================================


class ManualReviewRequest(CamelModel):
    """Request schema for /reviews."""

    movie_id: UUID = Field(description="Reviewed movie")
    section_ratings: dict[str, float] = Field(
        description="Rating per story section",
        examples=[
            {
                "opening": 5,
                "rising_action": 6,
                "climax": 9,
                "falling_action": 7,
                "resolution": 8,
            }
        ],
    )
    review_text: str | None = Field(
        default=None,
        description="Optional free-text commentary",
    )
    is_public: bool = Field(
        default=True,
        description="Visibility of the review and its timeline",
    )


class ManualReviewResponse(GraphCreatedResponse):
    """A manual review and its timeline were written."""

    review_id: str = Field(description="Id of the stored review")
    overall_rating: float = Field(
        ge=0.0,
        le=10.0,
        description="Mean of the section ratings",
        examples=[7.0],
    )


class ReviewTimelineResponse(CamelModel):
    """Result of regenerating a review timeline."""

    success: bool = True
    review_id: str
    graph_id: str
    data_points: int = Field(
        ge=0,
        description="Points in the new timeline; 0 when one already existed",
    )


# =============================================================================
# Live-Reaction Endpoints
# =============================================================================


class LiveSessionCreateRequest(CamelModel):
    """Request schema for /live-sessions."""

    movie_id: UUID = Field(description="Movie being watched")


class LiveSessionResponse(BaseModel):
    """A ``live_reaction_sessions`` row."""

    id: str
    movie_id: str
    user_id: str
    started_at: str | None = None
    completed_at: str | None = None
    is_completed: bool = False
    session_data: list[PointSchema] = Field(default_factory=list)
    graph_id: str | None = None


class LiveSessionCompleteRequest(CamelModel):
    """Request schema for /live-sessions/{sessionId}/complete."""

    points: list[dict[str, Any]] = Field(
        description="Captured ``{t_offset, score}`` points in capture order",
        examples=[[{"t_offset": 0.5, "score": 6}, {"t_offset": 1.0, "score": 7}]],
    )


class LiveSessionCompleteResponse(GraphCreatedResponse):
    """A live-reaction capture was persisted."""

    session_id: str


# =============================================================================
# Error Response
# =============================================================================


class ErrorDetail(BaseModel):
    """Detailed error information."""

    code: str = Field(
        description="Error code for programmatic handling",
        examples=["INVALID_INPUT", "STORAGE_ERROR"],
    )
    message: str = Field(
        description="Human-readable error message",
        examples=["Live-reaction session captured no points"],
    )
    details: dict[str, Any] | None = Field(
        default=None,
        description="Additional error context",
    )


class ApiErrorResponse(BaseModel):
    """Standard error response wrapper."""

    error: ErrorDetail = Field(
        description="Error details",
    )
