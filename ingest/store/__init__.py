"""
Store package for the message ingest pipeline.

Re-exports the store interfaces and both implementations, plus `build_store`
which picks the backend named by `Settings.store_backend`.
"""

from __future__ import annotations

from typing import Optional

from ingest.config import Settings, get_settings
from ingest.store.abstract import AbstractMessageStore, MessageStore
from ingest.store.memory import InMemoryStore
from ingest.store.postgres import PostgresStore


def build_store(settings: Optional[Settings] = None) -> AbstractMessageStore:
    """Instantiate the configured store backend."""
    settings = settings or get_settings()
    if settings.store_backend == "postgres":
        return PostgresStore()
    return InMemoryStore()


__all__ = [
    # Abstracts
    "AbstractMessageStore",
    "MessageStore",
    # Concrete stores
    "InMemoryStore",
    "PostgresStore",
    "build_store",
]
