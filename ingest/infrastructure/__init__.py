"""
Infrastructure package for the message ingest pipeline.

Centralizes I/O concerns: the Postgres connection pool and the channels that
carry payloads between producers and consumers. Keep this layer decoupled
from record transformation and query logic.
"""

from ingest.infrastructure.channel import Channel, InMemoryChannel, RedisStreamChannel
from ingest.infrastructure.db_factory import (
    build_dsn,
    get_sync_connection,
    get_sync_pool,
)

__all__ = [
    "Channel",
    "InMemoryChannel",
    "RedisStreamChannel",
    "build_dsn",
    "get_sync_connection",
    "get_sync_pool",
]
