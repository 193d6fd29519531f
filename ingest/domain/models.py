"""
Domain models for the message ingest pipeline.

Defines the stored record schema aligned with the `messages` table created by
`ingest.store.postgres.SCHEMA_SQL`, plus the page container returned by the
paginated store queries.
"""
from __future__ import annotations

import math
import time
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class MessageStatus(str, Enum):
    """Lifecycle tag of a stored record."""

    PENDING = "PENDING"
    PROCESSED = "PROCESSED"
    FAILED = "FAILED"

    @classmethod
    def parse(cls, value: "str | MessageStatus") -> "MessageStatus":
        """Case-insensitive lookup; raises ValueError for unknown names."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            valid = ", ".join(member.value for member in cls)
            raise ValueError(f"Unknown status '{value}'. Valid: {valid}") from None


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def now_millis() -> int:
    return time.time_ns() // 1_000_000


def new_record_id() -> str:
    return str(uuid.uuid4())


class Record(BaseModel):
    """
    Representation of a single row in the `messages` table.
    """

    id: str = Field(..., min_length=1, description="Canonical hyphenated UUID.")
    content: str = Field(..., description="Verbatim message payload.")
    timestamp: int = Field(..., description="Epoch millis when the consumer accepted it.")
    status: MessageStatus = Field(MessageStatus.PROCESSED, description="Lifecycle tag.")
    created_at: Optional[datetime] = Field(None, description="Set once at first insert.")
    updated_at: Optional[datetime] = Field(None, description="Refreshed on every mutation.")

    model_config = {
        "frozen": True,
        "populate_by_name": True,
        "arbitrary_types_allowed": False,
    }

    def stamped_for_insert(self, now: datetime) -> "Record":
        """Copy with both audit fields set to `now`."""
        return self.model_copy(update={"created_at": now, "updated_at": now})

    def stamped_for_update(self, created_at: Optional[datetime], now: datetime) -> "Record":
        """Copy that keeps the stored `created_at` and refreshes `updated_at`."""
        return self.model_copy(update={"created_at": created_at, "updated_at": now})


class Page(BaseModel):
    """
    One slice of a listing ordered by creation time descending.
    """

    items: List[Record] = Field(default_factory=list)
    total: int = Field(..., ge=0, description="Total records across all pages.")
    page_number: int = Field(..., ge=0)
    page_size: int = Field(..., gt=0)

    model_config = {"frozen": True}

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size)

    @property
    def has_next(self) -> bool:
        return self.page_number + 1 < self.total_pages


__all__ = [
    "MessageStatus",
    "Record",
    "Page",
    "new_record_id",
    "now_millis",
    "utc_now",
]
