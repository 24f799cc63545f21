"""Document store adapters."""

from peerlearn.config import Settings
from peerlearn.store.base import (
    ACTIVITY,
    CHALLENGES,
    COLLECTIONS,
    FEEDBACK_QUEUE,
    PROFILES,
    SERVER_TIMESTAMP,
    TEACHBACKS,
    Batch,
    DocumentStore,
    Filter,
    Query,
    utcnow,
)
from peerlearn.store.memory import MemoryDocumentStore

__all__ = [
    "ACTIVITY",
    "CHALLENGES",
    "COLLECTIONS",
    "FEEDBACK_QUEUE",
    "PROFILES",
    "SERVER_TIMESTAMP",
    "TEACHBACKS",
    "Batch",
    "DocumentStore",
    "Filter",
    "MemoryDocumentStore",
    "Query",
    "create_store",
    "utcnow",
]


async def create_store(settings: Settings) -> DocumentStore:
    """Build the configured store, initializing the database when SQL-backed."""
    if settings.store_backend == "memory":
        return MemoryDocumentStore()
    if settings.store_backend == "sql":
        from peerlearn.database import get_session_factory, init_db
        from peerlearn.store.sql import SqlDocumentStore

        await init_db()
        return SqlDocumentStore(get_session_factory())
    raise ValueError(f"Unknown store backend '{settings.store_backend}'")
