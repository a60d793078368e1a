"""Abstract storage boundary for timelines, sessions, reviews and roles.

The core never talks to a database directly. Everything it reads or
writes goes through ``TimelineStore``; caller identity and role checks
go through ``AuthGateway``. Implementations parse rows into the domain
types of ``timeline.schema`` before returning them.
"""

from abc import ABC, abstractmethod
from typing import Iterable

from timeline.schema import (
    INPUT_SOURCE_KINDS,
    LiveSession,
    ManualReview,
    SourceKind,
    Timeline,
    TimelinePoint,
)


class TimelineStore(ABC):
    """Persistence operations used by producers and the aggregation engine."""

    name: str = "abstract"

    @abstractmethod
    def ping(self) -> None:
        """Check connectivity.

        Raises:
            StorageError: If the backend is unreachable.
        """

    @abstractmethod
    def list_movie_ids(self) -> list[str]:
        """Return the ids of every movie, in a stable order."""

    @abstractmethod
    def fetch_eligible_timelines(
        self,
        movie_id: str,
        kinds: Iterable[SourceKind] = INPUT_SOURCE_KINDS,
    ) -> list[Timeline]:
        """Return the public, approved timelines of ``kinds`` for a movie."""

    @abstractmethod
    def get_consensus(self, movie_id: str) -> Timeline | None:
        """Return the movie's consensus timeline, or None if absent."""

    @abstractmethod
    def insert_timeline(self, timeline: Timeline) -> Timeline:
        """Insert a timeline as a single row and return it with its id."""

    @abstractmethod
    def get_timeline(self, timeline_id: str) -> Timeline:
        """Return a timeline.

        Raises:
            NotFoundError: If no timeline has that id.
        """

    @abstractmethod
    def update_timeline_points(
        self,
        timeline_id: str,
        points: list[TimelinePoint],
    ) -> Timeline:
        """Overwrite a timeline's points and bump its updated timestamp.

        Raises:
            NotFoundError: If no timeline has that id.
        """

    @abstractmethod
    def create_session(self, movie_id: str, user_id: str) -> LiveSession:
        """Open a new live-reaction session."""

    @abstractmethod
    def get_session(self, session_id: str) -> LiveSession:
        """Return a session.

        Raises:
            NotFoundError: If no session has that id.
        """

    @abstractmethod
    def complete_session(
        self,
        session_id: str,
        points: list[TimelinePoint],
        graph_id: str,
    ) -> LiveSession:
        """Mark a session completed and link it to its produced timeline."""

    @abstractmethod
    def insert_review(self, review: ManualReview) -> ManualReview:
        """Insert a manual review and return it with its id."""

    @abstractmethod
    def get_review(self, review_id: str) -> ManualReview:
        """Return a review.

        Raises:
            NotFoundError: If no review has that id.
        """

    @abstractmethod
    def link_review_graph(self, review_id: str, graph_id: str) -> None:
        """Store the back-reference from a review to its timeline."""


class AuthGateway(ABC):
    """Resolves bearer tokens to users and checks role membership."""

    @abstractmethod
    def get_user_id(self, token: str) -> str | None:
        """Return the user id for a token, or None if it is not valid."""

    @abstractmethod
    def has_any_role(self, user_id: str, roles: Iterable[str]) -> bool:
        """Return True if the user holds at least one of ``roles``."""
