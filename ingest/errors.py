"""
Exception hierarchy for the message ingest pipeline.

Every error raised by the producer, channels and stores derives from
`IngestError` so callers at the boundary (CLI, REST adapters) can map the
whole family to a failure response with a single except clause.
"""

from __future__ import annotations

from typing import Optional


class IngestError(Exception):
    """Base class for all pipeline errors."""


class ChannelError(IngestError):
    """A channel implementation could not hand a payload to the broker."""


class PublishError(IngestError):
    """The channel rejected or failed a publish call."""

    def __init__(self, topic: str, cause: Optional[BaseException] = None) -> None:
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Failed to publish to topic '{topic}'{detail}")
        self.topic = topic
        self.cause = cause


class StorageError(IngestError):
    """The store could not complete an operation."""


class DuplicateIdError(StorageError):
    """A record with the same id is already stored."""

    def __init__(self, record_id: str) -> None:
        super().__init__(f"Record already exists: {record_id}")
        self.record_id = record_id


class RecordNotFoundError(IngestError, LookupError):
    """Update targeted an id that is not stored."""

    def __init__(self, record_id: str) -> None:
        super().__init__(f"Record not found: {record_id}")
        self.record_id = record_id


class InvalidPageError(IngestError, ValueError):
    """Page number or page size out of range."""

    def __init__(self, page_number: int, page_size: int) -> None:
        super().__init__(
            f"Invalid page request (page_number={page_number}, page_size={page_size}); "
            "page_number must be >= 0 and page_size must be > 0"
        )
        self.page_number = page_number
        self.page_size = page_size


__all__ = [
    "IngestError",
    "ChannelError",
    "PublishError",
    "StorageError",
    "DuplicateIdError",
    "RecordNotFoundError",
    "InvalidPageError",
]
