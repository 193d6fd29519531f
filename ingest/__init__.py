"""
Message Ingest - text message ingestion and storage pipeline.

Producers publish free-form text onto a channel; consumers turn every
delivered payload into a structured record and store it; a query service
exposes listing, lookup, filtering, search and pagination over the stored
records. Two interchangeable stores are provided:

- an in-memory copy-on-write store (process lifetime)
- a PostgreSQL store (durable, indexed, transactional)
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from ingest.config import Settings, get_settings
from ingest.consumer import MessageConsumer
from ingest.domain.models import MessageStatus, Page, Record
from ingest.errors import (
    ChannelError,
    DuplicateIdError,
    IngestError,
    InvalidPageError,
    PublishError,
    RecordNotFoundError,
    StorageError,
)
from ingest.infrastructure.channel import InMemoryChannel, RedisStreamChannel
from ingest.metrics import InMemoryCounter, NoopCounter
from ingest.producer import MessageProducer
from ingest.query import LookupOutcome, LookupResult, MessageQueryService
from ingest.store import InMemoryStore, MessageStore, PostgresStore, build_store
from ingest.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Domain
    "MessageStatus",
    "Page",
    "Record",
    # Errors
    "IngestError",
    "ChannelError",
    "PublishError",
    "StorageError",
    "DuplicateIdError",
    "RecordNotFoundError",
    "InvalidPageError",
    # Pipeline
    "MessageProducer",
    "MessageConsumer",
    "MessageQueryService",
    "LookupOutcome",
    "LookupResult",
    # Channels
    "InMemoryChannel",
    "RedisStreamChannel",
    # Stores
    "MessageStore",
    "InMemoryStore",
    "PostgresStore",
    "build_store",
    # Metrics
    "InMemoryCounter",
    "NoopCounter",
    # Logging
    "configure_logging",
    "get_logger",
]
