"""Pytest configuration and fixtures for the test suite."""

import sys
from pathlib import Path

import pytest

# Ensure project root is in path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from storage.memory import InMemoryStore
from timeline.schema import ModerationStatus, SourceKind, Timeline, TimelinePoint


MOVIE_ID = "3f0c6a0e-0b7e-4f4e-9a57-6f1f3c1d2b10"
OTHER_MOVIE_ID = "9b2d7c41-5e8a-4c6f-b1d3-2a7e0f4c8d55"

USER_ID = "0d5a1b2c-3e4f-4a5b-8c6d-7e8f9a0b1c2d"
OTHER_USER_ID = "1e6b2c3d-4f5a-4b6c-9d7e-8f9a0b1c2d3e"
ADMIN_ID = "2f7c3d4e-5a6b-4c7d-8e9f-9a0b1c2d3e4f"

USER_TOKEN = "user-token"
OTHER_USER_TOKEN = "other-user-token"
ADMIN_TOKEN = "admin-token"


def make_points(*pairs: tuple[float, float]) -> list[TimelinePoint]:
    """Helper to build points from (offset, score) pairs."""
    return [TimelinePoint(offset=offset, score=score) for offset, score in pairs]


def make_timeline(
    kind: SourceKind,
    points: list[TimelinePoint],
    movie_id: str = MOVIE_ID,
    user_id: str | None = USER_ID,
    is_public: bool = True,
    moderation_status: ModerationStatus = ModerationStatus.APPROVED,
) -> Timeline:
    """Helper to create an unsaved Timeline for testing."""
    return Timeline(
        movie_id=movie_id,
        source_kind=kind,
        points=points,
        user_id=user_id,
        is_public=is_public,
        moderation_status=moderation_status,
    )


@pytest.fixture
def store() -> InMemoryStore:
    """Empty in-memory store with one regular user, a second user and an admin."""
    store = InMemoryStore()
    store.add_movie(MOVIE_ID)
    store.add_user(USER_TOKEN, USER_ID)
    store.add_user(OTHER_USER_TOKEN, OTHER_USER_ID)
    store.add_user(ADMIN_TOKEN, ADMIN_ID, roles=["admin"])
    return store


@pytest.fixture
def scenario_store(store: InMemoryStore) -> InMemoryStore:
    """Store holding the live-reaction plus manual-review scenario for MOVIE_ID."""
    store.insert_timeline(
        make_timeline(
            SourceKind.LIVE_REACTION,
            make_points((0, 4), (50, 8), (100, 6)),
        )
    )
    store.insert_timeline(
        make_timeline(
            SourceKind.MANUAL_REVIEW,
            make_points((0, 6), (50, 6), (100, 6)),
            user_id=OTHER_USER_ID,
        )
    )
    return store


def auth_header(token: str) -> dict[str, str]:
    """Bearer authorization header for a token."""
    return {"Authorization": f"Bearer {token}"}


def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line(
        "markers",
        "slow: marks tests as slow"
    )
