"""Storage module for emotion timelines, sessions, reviews and roles.

This module provides:
- Abstract ``TimelineStore`` and ``AuthGateway`` interfaces
- A Supabase implementation for production
- An in-memory implementation for local development and tests

Example:
    >>> from storage import create_store
    >>> store = create_store(supabase_url="", supabase_key="")
    >>> store.name
    'memory'
"""

import logging

from .base import AuthGateway, TimelineStore
from .errors import NotFoundError, StorageError
from .memory import InMemoryStore


logger = logging.getLogger(__name__)


def create_store(supabase_url: str, supabase_key: str) -> TimelineStore:
    """Create the configured storage backend.

    Args:
        supabase_url: Supabase project URL. Empty selects the in-memory store.
        supabase_key: Supabase service-role key.

    Returns:
        A store that also implements ``AuthGateway``.
    """
    if not supabase_url:
        logger.warning("SUPABASE_URL not set, using in-memory store")
        return InMemoryStore()

    from .supabase_store import SupabaseStore

    logger.info("Using Supabase store: url=%s", supabase_url)
    return SupabaseStore.from_credentials(supabase_url, supabase_key)


__all__ = [
    "AuthGateway",
    "InMemoryStore",
    "NotFoundError",
    "StorageError",
    "TimelineStore",
    "create_store",
]
