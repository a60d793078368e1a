"""FastAPI application for the Movie Emotion Tracker timeline service.

This module provides the main FastAPI application with endpoints for:
- GET /health: Service health check
- POST /aggregate: Consensus aggregation for one movie or all movies
- POST /nlp/analyze: Review-text analysis into an emotion timeline
- POST /reviews: Section-rated review submission
- POST /reviews/{review_id}/timeline: Review timeline regeneration
- POST /live-sessions: Live-reaction session start
- POST /live-sessions/{session_id}/complete: Live-reaction capture upload

Example:
    Run with uvicorn:

    $ uvicorn src.api.main:app --host 0.0.0.0 --port 8000
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import Annotated, Any
from uuid import UUID

from fastapi import Body, Depends, FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware

from nlp import LanguageModelClient
from storage import AuthGateway, StorageError, TimelineStore, create_store
from timeline import (
    TimelinePoint,
    aggregate_all,
    aggregate_movie,
    analyze_review,
    complete_session,
    regenerate_review_timeline,
    submit_manual_review,
)

from .config import Settings, get_settings
from .deps import (
    aggregation_config_from_settings,
    get_app_settings,
    get_auth,
    get_current_user,
    get_llm_client,
    get_store,
    is_operator,
    llm_client_from_settings,
    require_operator,
    review_moderation_status,
)
from .errors import ForbiddenError, register_exception_handlers
from .logging import add_middleware, setup_logging
from .schemas import (
    AggregateEmptyResponse,
    AggregateRequest,
    AggregateResponse,
    BatchAggregateResponse,
    BatchFailureSchema,
    GraphCreatedResponse,
    HealthResponse,
    LiveSessionCompleteRequest,
    LiveSessionCompleteResponse,
    LiveSessionCreateRequest,
    LiveSessionResponse,
    ManualReviewRequest,
    ManualReviewResponse,
    NlpAnalyzeRequest,
    ReviewTimelineResponse,
)


logger = logging.getLogger(__name__)


# =============================================================================
# Application Lifecycle
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events.

    Startup:
        - Initialize logging
        - Check that the storage backend is reachable

    Shutdown:
        - Log shutdown
    """
    settings: Settings = app.state.settings

    # Setup logging
    setup_logging(settings.log_level)
    logger.info(
        "Starting %s v%s",
        settings.app_name,
        settings.app_version,
    )

    store: TimelineStore = app.state.store
    try:
        store.ping()
        logger.info("Storage ready: backend=%s", store.name)
    except StorageError as exc:
        logger.warning("Storage not reachable at startup: backend=%s error=%s", store.name, exc)

    logger.info("Application startup complete")

    yield

    # Shutdown
    logger.info("Application shutdown")


# =============================================================================
# Application Factory
# =============================================================================


def create_app(
    settings: Settings | None = None,
    store: TimelineStore | None = None,
    auth: AuthGateway | None = None,
    llm_client: LanguageModelClient | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Application settings. If None, loads from environment.
        store: Storage backend. If None, built from settings.
        auth: Auth gateway. If None, the store is used.
        llm_client: Language-model client. If None, built from settings.

    Returns:
        Configured FastAPI application.
    """
    if settings is None:
        settings = get_settings()
    if store is None:
        store = create_store(settings.supabase_url, settings.supabase_service_role_key)
    if auth is None:
        if not isinstance(store, AuthGateway):
            raise TypeError(f"{type(store).__name__} does not implement AuthGateway")
        auth = store
    if llm_client is None:
        llm_client = llm_client_from_settings(settings)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Movie Emotion Tracker - Collect per-viewer emotion timelines and aggregate them into a consensus curve per movie.",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.store = store
    app.state.auth = auth
    app.state.llm_client = llm_client

    # Add CORS middleware (allow all in development)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add custom middleware (request ID, timing)
    add_middleware(app)

    # Register exception handlers
    register_exception_handlers(app)

    # Register routes
    register_routes(app)

    return app


def register_routes(app: FastAPI) -> None:
    """Register all API routes on the application.

    Args:
        app: The FastAPI application.
    """

    # =========================================================================
    # Health Endpoint
    # =========================================================================

    @app.get(
        "/health",
        response_model=HealthResponse,
        tags=["System"],
        summary="Health check",
        description="Check service health and storage reachability.",
    )
    def health(
        store: Annotated[TimelineStore, Depends(get_store)],
    ) -> HealthResponse:
        """Health check endpoint.

        Returns:
            HealthResponse with status and storage backend name.
        """
        try:
            store.ping()
            status = "ok"
        except StorageError as exc:
            logger.warning("Health check failed: backend=%s error=%s", store.name, exc)
            status = "degraded"

        return HealthResponse(status=status, storage=store.name)

    # =========================================================================
    # Aggregation Endpoint
    # =========================================================================

    @app.post(
        "/aggregate",
        response_model=None,
        tags=["Aggregation"],
        summary="Aggregate consensus timelines",
        description=(
            "Merge every eligible timeline of a movie into its consensus "
            "timeline. Without movieId, every movie is aggregated."
        ),
        responses={200: {"description": "Single-movie, empty or batch result"}},
    )
    def aggregate(
        user_id: Annotated[str, Depends(require_operator)],
        store: Annotated[TimelineStore, Depends(get_store)],
        settings: Annotated[Settings, Depends(get_app_settings)],
        payload: Annotated[AggregateRequest | None, Body()] = None,
    ) -> dict[str, Any]:
        """Run aggregation for one movie or for all movies.

        Returns:
            Single-movie, empty or batch summary, camelCase keyed.
        """
        config = aggregation_config_from_settings(settings)
        movie_id = payload.movie_id if payload is not None else None

        start_time = time.perf_counter()

        if movie_id is not None:
            result = aggregate_movie(store, str(movie_id), config)
            logger.info(
                "Aggregation requested: user_id=%s movie_id=%s status=%s aggregate_ms=%.2f",
                user_id,
                movie_id,
                result.status.value,
                (time.perf_counter() - start_time) * 1000,
            )
            if result.is_empty:
                return AggregateEmptyResponse().model_dump(by_alias=True)
            return AggregateResponse(
                points_aggregated=result.points_aggregated,
                graphs_used=result.graphs_used,
            ).model_dump(by_alias=True)

        batch = aggregate_all(store, config, max_workers=settings.batch_max_workers)
        logger.info(
            "Batch aggregation requested: user_id=%s success=%d total=%d aggregate_ms=%.2f",
            user_id,
            batch.success_count,
            batch.total,
            (time.perf_counter() - start_time) * 1000,
        )
        return BatchAggregateResponse(
            success_count=batch.success_count,
            total=batch.total,
            failures=[
                BatchFailureSchema(movie_id=f.movie_id, error=f.error)
                for f in batch.failures
            ],
        ).model_dump(by_alias=True)

    # =========================================================================
    # NLP Endpoint
    # =========================================================================

    @app.post(
        "/nlp/analyze",
        response_model=GraphCreatedResponse,
        tags=["Producers"],
        summary="Analyze review text",
        description="Turn a free-text review into an emotion timeline via the language model.",
    )
    def nlp_analyze(
        payload: NlpAnalyzeRequest,
        user_id: Annotated[str, Depends(require_operator)],
        store: Annotated[TimelineStore, Depends(get_store)],
        llm_client: Annotated[LanguageModelClient, Depends(get_llm_client)],
    ) -> GraphCreatedResponse:
        """Analyze a review and store the resulting timeline."""
        timeline = analyze_review(
            store,
            llm_client,
            str(payload.movie_id),
            payload.review_text,
            payload.runtime_minutes,
        )
        return GraphCreatedResponse(graph_id=timeline.id, data_points=len(timeline.points))

    # =========================================================================
    # Manual Review Endpoints
    # =========================================================================

    @app.post(
        "/reviews",
        response_model=ManualReviewResponse,
        tags=["Producers"],
        summary="Submit a section-rated review",
        description="Store five section ratings and their expanded timeline.",
    )
    def submit_review(
        payload: ManualReviewRequest,
        user_id: Annotated[str, Depends(get_current_user)],
        store: Annotated[TimelineStore, Depends(get_store)],
        settings: Annotated[Settings, Depends(get_app_settings)],
    ) -> ManualReviewResponse:
        """Store a manual review for the authenticated user."""
        review, timeline = submit_manual_review(
            store,
            str(payload.movie_id),
            user_id,
            payload.section_ratings,
            review_text=payload.review_text,
            is_public=payload.is_public,
            moderation_status=review_moderation_status(settings),
            stride=settings.section_stride,
        )
        return ManualReviewResponse(
            review_id=review.id,
            graph_id=timeline.id,
            overall_rating=review.overall_rating,
            data_points=len(timeline.points),
        )

    @app.post(
        "/reviews/{review_id}/timeline",
        response_model=ReviewTimelineResponse,
        tags=["Producers"],
        summary="Regenerate a review timeline",
        description=(
            "Rebuild the timeline of a review stored without one, or link the "
            "already stored timeline named by graphId. Idempotent."
        ),
    )
    def regenerate_review(
        review_id: UUID,
        user_id: Annotated[str, Depends(get_current_user)],
        store: Annotated[TimelineStore, Depends(get_store)],
        auth: Annotated[AuthGateway, Depends(get_auth)],
        settings: Annotated[Settings, Depends(get_app_settings)],
        graph_id: Annotated[UUID | None, Query(alias="graphId")] = None,
    ) -> ReviewTimelineResponse:
        """Regenerate or relink the timeline of a stored review."""
        review = store.get_review(str(review_id))
        if review.user_id != user_id and not is_operator(auth, settings, user_id):
            raise ForbiddenError(
                "Only the review author or an operator may regenerate its timeline",
                details={"review_id": str(review_id)},
            )

        review, timeline = regenerate_review_timeline(
            store,
            str(review_id),
            stride=settings.section_stride,
            graph_id=str(graph_id) if graph_id is not None else None,
        )
        return ReviewTimelineResponse(
            review_id=review.id,
            graph_id=review.graph_id,
            data_points=len(timeline.points) if timeline is not None else 0,
        )

    # =========================================================================
    # Live-Reaction Endpoints
    # =========================================================================

    @app.post(
        "/live-sessions",
        response_model=LiveSessionResponse,
        tags=["Producers"],
        summary="Start a live-reaction session",
    )
    def start_live_session(
        payload: LiveSessionCreateRequest,
        user_id: Annotated[str, Depends(get_current_user)],
        store: Annotated[TimelineStore, Depends(get_store)],
    ) -> LiveSessionResponse:
        """Open a capture session for the authenticated user."""
        session = store.create_session(str(payload.movie_id), user_id)
        logger.info(
            "Live session started: session_id=%s movie_id=%s user_id=%s",
            session.id,
            session.movie_id,
            user_id,
        )
        return LiveSessionResponse(**session.to_dict())

    @app.post(
        "/live-sessions/{session_id}/complete",
        response_model=LiveSessionCompleteResponse,
        tags=["Producers"],
        summary="Upload a live-reaction capture",
        description="Persist captured points as one timeline and close the session.",
    )
    def complete_live_session(
        session_id: UUID,
        payload: LiveSessionCompleteRequest,
        user_id: Annotated[str, Depends(get_current_user)],
        store: Annotated[TimelineStore, Depends(get_store)],
        settings: Annotated[Settings, Depends(get_app_settings)],
    ) -> LiveSessionCompleteResponse:
        """Complete a session owned by the authenticated user."""
        session = store.get_session(str(session_id))
        if session.user_id != user_id:
            raise ForbiddenError(
                "Only the session owner may complete it",
                details={"session_id": str(session_id)},
            )

        points = [TimelinePoint.from_dict(item) for item in payload.points]
        timeline, completed = complete_session(
            store,
            session,
            points,
            precision=settings.offset_precision,
        )
        return LiveSessionCompleteResponse(
            session_id=completed.id,
            graph_id=timeline.id,
            data_points=len(timeline.points),
        )


# =============================================================================
# Application Instance
# =============================================================================


# Create the application instance
app = create_app()
