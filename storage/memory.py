"""In-process storage backend.

Used when no Supabase project is configured (local development) and by
the test suite. Rows are kept as domain objects behind a lock, and
copies are handed out so callers cannot mutate stored state.
"""

import threading
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Iterable

from timeline.schema import (
    INPUT_SOURCE_KINDS,
    LiveSession,
    ManualReview,
    ModerationStatus,
    SourceKind,
    Timeline,
    TimelinePoint,
)

from .base import AuthGateway, TimelineStore
from .errors import NotFoundError


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _copy_timeline(timeline: Timeline) -> Timeline:
    return replace(timeline, points=list(timeline.points))


class InMemoryStore(TimelineStore, AuthGateway):
    """Dictionary-backed store implementing both storage interfaces."""

    name = "memory"

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._movies: dict[str, None] = {}
        self._timelines: dict[str, Timeline] = {}
        self._sessions: dict[str, LiveSession] = {}
        self._reviews: dict[str, ManualReview] = {}
        self._tokens: dict[str, str] = {}
        self._roles: dict[str, set[str]] = {}

    # -------------------------------------------------------------------------
    # Seeding helpers
    # -------------------------------------------------------------------------

    def add_movie(self, movie_id: str) -> None:
        with self._lock:
            self._movies.setdefault(movie_id, None)

    def add_user(self, token: str, user_id: str, roles: Iterable[str] = ()) -> None:
        with self._lock:
            self._tokens[token] = user_id
            self._roles.setdefault(user_id, set()).update(roles)

    def set_moderation_status(self, timeline_id: str, status: ModerationStatus) -> None:
        with self._lock:
            timeline = self._get_timeline(timeline_id)
            timeline.moderation_status = status
            timeline.updated_at = _now()

    def all_timelines(self) -> list[Timeline]:
        with self._lock:
            return [_copy_timeline(t) for t in self._timelines.values()]

    # -------------------------------------------------------------------------
    # TimelineStore
    # -------------------------------------------------------------------------

    def ping(self) -> None:
        return None

    def list_movie_ids(self) -> list[str]:
        with self._lock:
            return list(self._movies)

    def fetch_eligible_timelines(
        self,
        movie_id: str,
        kinds: Iterable[SourceKind] = INPUT_SOURCE_KINDS,
    ) -> list[Timeline]:
        wanted = set(kinds)
        with self._lock:
            return [
                _copy_timeline(t)
                for t in self._timelines.values()
                if t.movie_id == movie_id
                and t.source_kind in wanted
                and t.is_public
                and t.moderation_status is ModerationStatus.APPROVED
            ]

    def get_consensus(self, movie_id: str) -> Timeline | None:
        with self._lock:
            for timeline in self._timelines.values():
                if timeline.movie_id == movie_id and timeline.source_kind is SourceKind.CONSENSUS:
                    return _copy_timeline(timeline)
        return None

    def insert_timeline(self, timeline: Timeline) -> Timeline:
        now = _now()
        stored = replace(
            timeline,
            id=timeline.id or str(uuid.uuid4()),
            points=list(timeline.points),
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self._movies.setdefault(stored.movie_id, None)
            self._timelines[stored.id] = stored
            return _copy_timeline(stored)

    def get_timeline(self, timeline_id: str) -> Timeline:
        with self._lock:
            return _copy_timeline(self._get_timeline(timeline_id))

    def update_timeline_points(
        self,
        timeline_id: str,
        points: list[TimelinePoint],
    ) -> Timeline:
        with self._lock:
            timeline = self._get_timeline(timeline_id)
            timeline.points = list(points)
            timeline.updated_at = _now()
            return _copy_timeline(timeline)

    def create_session(self, movie_id: str, user_id: str) -> LiveSession:
        session = LiveSession(
            id=str(uuid.uuid4()),
            movie_id=movie_id,
            user_id=user_id,
            started_at=_now(),
        )
        with self._lock:
            self._sessions[session.id] = session
            return replace(session, session_data=[])

    def get_session(self, session_id: str) -> LiveSession:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise NotFoundError(
                    f"Live-reaction session not found: {session_id}",
                    code="SESSION_NOT_FOUND",
                    details={"session_id": session_id},
                )
            return replace(session, session_data=list(session.session_data))

    def complete_session(
        self,
        session_id: str,
        points: list[TimelinePoint],
        graph_id: str,
    ) -> LiveSession:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise NotFoundError(
                    f"Live-reaction session not found: {session_id}",
                    code="SESSION_NOT_FOUND",
                    details={"session_id": session_id},
                )
            session.session_data = list(points)
            session.completed_at = _now()
            session.is_completed = True
            session.graph_id = graph_id
            return replace(session, session_data=list(session.session_data))

    def insert_review(self, review: ManualReview) -> ManualReview:
        stored = replace(
            review,
            id=review.id or str(uuid.uuid4()),
            section_ratings=dict(review.section_ratings),
            created_at=_now(),
        )
        with self._lock:
            self._movies.setdefault(stored.movie_id, None)
            self._reviews[stored.id] = stored
            return replace(stored, section_ratings=dict(stored.section_ratings))

    def get_review(self, review_id: str) -> ManualReview:
        with self._lock:
            review = self._reviews.get(review_id)
            if review is None:
                raise NotFoundError(
                    f"Manual review not found: {review_id}",
                    code="REVIEW_NOT_FOUND",
                    details={"review_id": review_id},
                )
            return replace(review, section_ratings=dict(review.section_ratings))

    def link_review_graph(self, review_id: str, graph_id: str) -> None:
        with self._lock:
            review = self._reviews.get(review_id)
            if review is None:
                raise NotFoundError(
                    f"Manual review not found: {review_id}",
                    code="REVIEW_NOT_FOUND",
                    details={"review_id": review_id},
                )
            review.graph_id = graph_id

    # -------------------------------------------------------------------------
    # AuthGateway
    # -------------------------------------------------------------------------

    def get_user_id(self, token: str) -> str | None:
        with self._lock:
            return self._tokens.get(token)

    def has_any_role(self, user_id: str, roles: Iterable[str]) -> bool:
        with self._lock:
            return bool(self._roles.get(user_id, set()) & set(roles))

    def _get_timeline(self, timeline_id: str) -> Timeline:
        timeline = self._timelines.get(timeline_id)
        if timeline is None:
            raise NotFoundError(
                f"Timeline not found: {timeline_id}",
                code="TIMELINE_NOT_FOUND",
                details={"timeline_id": timeline_id},
            )
        return timeline
