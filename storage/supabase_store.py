"""Supabase-backed storage.

Talks to the project's Postgres tables through supabase-py with the
service-role key, so row-level policies are bypassed and the API layer
is responsible for authorization. Tables used:

- ``emotion_graphs``: timelines of every source kind
- ``live_reaction_sessions``: live capture sessions
- ``manual_reviews``: section-rated reviews
- ``movies``: movie ids for batch aggregation
- ``user_roles``: operator role membership

Example:
    >>> from storage.supabase_store import SupabaseStore
    >>> store = SupabaseStore.from_credentials(url, service_role_key)
    >>> store.fetch_eligible_timelines("c0ffee00-...")
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Iterable

import httpx
from postgrest.exceptions import APIError
from supabase import AuthApiError, AuthError, Client, create_client

from timeline.errors import TimelineValidationError
from timeline.schema import (
    INPUT_SOURCE_KINDS,
    LiveSession,
    ManualReview,
    ModerationStatus,
    SourceKind,
    Timeline,
    TimelinePoint,
    points_to_json,
)

from .base import AuthGateway, TimelineStore
from .errors import NotFoundError, StorageError


logger = logging.getLogger(__name__)


GRAPHS_TABLE = "emotion_graphs"
SESSIONS_TABLE = "live_reaction_sessions"
REVIEWS_TABLE = "manual_reviews"
MOVIES_TABLE = "movies"
ROLES_TABLE = "user_roles"

# PostgREST caps unpaginated selects; movies are listed page by page.
PAGE_SIZE = 1000


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SupabaseStore(TimelineStore, AuthGateway):
    """Store implementation over a supabase-py ``Client``."""

    name = "supabase"

    def __init__(self, client: Client) -> None:
        self._client = client

    @classmethod
    def from_credentials(cls, url: str, key: str) -> "SupabaseStore":
        """Create a store from a project URL and service-role key."""
        if not url or not key:
            raise StorageError(
                "Supabase URL and service-role key are required",
                code="NOT_CONFIGURED",
            )
        return cls(create_client(url, key))

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _run(self, operation: str, query: Callable[[], Any]) -> list[dict[str, Any]]:
        """Execute a query builder and return its rows.

        Raises:
            StorageError: If PostgREST or the transport fails.
        """
        try:
            response = query()
        except APIError as exc:
            raise StorageError(
                f"{operation} failed: {exc.message}",
                details={"operation": operation, "postgrest_code": exc.code},
            ) from exc
        except httpx.HTTPError as exc:
            raise StorageError(
                f"{operation} failed: {exc}",
                code="UNAVAILABLE",
                details={"operation": operation},
            ) from exc
        return list(response.data or [])

    @staticmethod
    def _first(rows: list[dict[str, Any]]) -> dict[str, Any] | None:
        return rows[0] if rows else None

    @staticmethod
    def _parse(parser: Callable[[dict[str, Any]], Any], row: dict[str, Any]) -> Any:
        try:
            return parser(row)
        except TimelineValidationError as exc:
            raise StorageError(
                f"Stored row failed validation: {exc.message}",
                code="INVALID_ROW",
                details={"id": row.get("id"), **exc.details},
            ) from exc

    # -------------------------------------------------------------------------
    # TimelineStore
    # -------------------------------------------------------------------------

    def ping(self) -> None:
        self._run(
            "ping",
            lambda: self._client.table(MOVIES_TABLE).select("id").limit(1).execute(),
        )

    def list_movie_ids(self) -> list[str]:
        ids: list[str] = []
        start = 0
        while True:
            rows = self._run(
                "list movies",
                lambda: self._client.table(MOVIES_TABLE)
                .select("id")
                .order("id")
                .range(start, start + PAGE_SIZE - 1)
                .execute(),
            )
            ids.extend(str(row["id"]) for row in rows)
            if len(rows) < PAGE_SIZE:
                return ids
            start += PAGE_SIZE

    def fetch_eligible_timelines(
        self,
        movie_id: str,
        kinds: Iterable[SourceKind] = INPUT_SOURCE_KINDS,
    ) -> list[Timeline]:
        rows = self._run(
            "fetch eligible timelines",
            lambda: self._client.table(GRAPHS_TABLE)
            .select("*")
            .eq("movie_id", movie_id)
            .eq("is_public", True)
            .eq("moderation_status", ModerationStatus.APPROVED.value)
            .in_("source_type", [kind.value for kind in kinds])
            .order("created_at")
            .execute(),
        )
        return [self._parse(Timeline.from_row, row) for row in rows]

    def get_consensus(self, movie_id: str) -> Timeline | None:
        row = self._first(self._run(
            "fetch consensus",
            lambda: self._client.table(GRAPHS_TABLE)
            .select("*")
            .eq("movie_id", movie_id)
            .eq("source_type", SourceKind.CONSENSUS.value)
            .limit(1)
            .execute(),
        ))
        return self._parse(Timeline.from_row, row) if row else None

    def insert_timeline(self, timeline: Timeline) -> Timeline:
        row = self._first(self._run(
            "insert timeline",
            lambda: self._client.table(GRAPHS_TABLE).insert(timeline.to_row()).execute(),
        ))
        if row is None:
            raise StorageError("Timeline insert returned no row", code="EMPTY_RESULT")
        return self._parse(Timeline.from_row, row)

    def get_timeline(self, timeline_id: str) -> Timeline:
        row = self._first(self._run(
            "fetch timeline",
            lambda: self._client.table(GRAPHS_TABLE)
            .select("*")
            .eq("id", timeline_id)
            .limit(1)
            .execute(),
        ))
        if row is None:
            raise NotFoundError(
                f"Timeline not found: {timeline_id}",
                code="TIMELINE_NOT_FOUND",
                details={"timeline_id": timeline_id},
            )
        return self._parse(Timeline.from_row, row)

    def update_timeline_points(
        self,
        timeline_id: str,
        points: list[TimelinePoint],
    ) -> Timeline:
        row = self._first(self._run(
            "update timeline",
            lambda: self._client.table(GRAPHS_TABLE)
            .update({"graph_data": points_to_json(points), "updated_at": _now()})
            .eq("id", timeline_id)
            .execute(),
        ))
        if row is None:
            raise NotFoundError(
                f"Timeline not found: {timeline_id}",
                code="TIMELINE_NOT_FOUND",
                details={"timeline_id": timeline_id},
            )
        return self._parse(Timeline.from_row, row)

    def create_session(self, movie_id: str, user_id: str) -> LiveSession:
        row = self._first(self._run(
            "create session",
            lambda: self._client.table(SESSIONS_TABLE)
            .insert({"movie_id": movie_id, "user_id": user_id})
            .execute(),
        ))
        if row is None:
            raise StorageError("Session insert returned no row", code="EMPTY_RESULT")
        return self._parse(LiveSession.from_row, row)

    def get_session(self, session_id: str) -> LiveSession:
        row = self._first(self._run(
            "fetch session",
            lambda: self._client.table(SESSIONS_TABLE)
            .select("*")
            .eq("id", session_id)
            .limit(1)
            .execute(),
        ))
        if row is None:
            raise NotFoundError(
                f"Live-reaction session not found: {session_id}",
                code="SESSION_NOT_FOUND",
                details={"session_id": session_id},
            )
        return self._parse(LiveSession.from_row, row)

    def complete_session(
        self,
        session_id: str,
        points: list[TimelinePoint],
        graph_id: str,
    ) -> LiveSession:
        row = self._first(self._run(
            "complete session",
            lambda: self._client.table(SESSIONS_TABLE)
            .update({
                "session_data": points_to_json(points),
                "completed_at": _now(),
                "is_completed": True,
                "graph_id": graph_id,
            })
            .eq("id", session_id)
            .execute(),
        ))
        if row is None:
            raise NotFoundError(
                f"Live-reaction session not found: {session_id}",
                code="SESSION_NOT_FOUND",
                details={"session_id": session_id},
            )
        return self._parse(LiveSession.from_row, row)

    def insert_review(self, review: ManualReview) -> ManualReview:
        row = self._first(self._run(
            "insert review",
            lambda: self._client.table(REVIEWS_TABLE).insert(review.to_row()).execute(),
        ))
        if row is None:
            raise StorageError("Review insert returned no row", code="EMPTY_RESULT")
        return self._parse(ManualReview.from_row, row)

    def get_review(self, review_id: str) -> ManualReview:
        row = self._first(self._run(
            "fetch review",
            lambda: self._client.table(REVIEWS_TABLE)
            .select("*")
            .eq("id", review_id)
            .limit(1)
            .execute(),
        ))
        if row is None:
            raise NotFoundError(
                f"Manual review not found: {review_id}",
                code="REVIEW_NOT_FOUND",
                details={"review_id": review_id},
            )
        return self._parse(ManualReview.from_row, row)

    def link_review_graph(self, review_id: str, graph_id: str) -> None:
        self._run(
            "link review graph",
            lambda: self._client.table(REVIEWS_TABLE)
            .update({"graph_id": graph_id})
            .eq("id", review_id)
            .execute(),
        )

    # -------------------------------------------------------------------------
    # AuthGateway
    # -------------------------------------------------------------------------

    def get_user_id(self, token: str) -> str | None:
        try:
            response = self._client.auth.get_user(token)
        except AuthApiError as exc:
            logger.info("Token rejected by auth service: %s", exc.message)
            return None
        except AuthError as exc:
            raise StorageError(
                f"Auth service unavailable: {exc.message}",
                code="UNAVAILABLE",
            ) from exc

        if response is None or response.user is None:
            return None
        return str(response.user.id)

    def has_any_role(self, user_id: str, roles: Iterable[str]) -> bool:
        rows = self._run(
            "check roles",
            lambda: self._client.table(ROLES_TABLE)
            .select("role")
            .eq("user_id", user_id)
            .in_("role", list(roles))
            .limit(1)
            .execute(),
        )
        return bool(rows)
