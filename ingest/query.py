"""
Read/search surface used by outer layers (CLI, REST adapters).

Translates loosely typed external parameters (status names, page numbers,
and search terms) into valid store calls, and reports point lookups
as found / not found / failed so callers can tell a missing record apart from
a broken store.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional, Union

from ingest.domain.models import MessageStatus, Page, Record
from ingest.errors import InvalidPageError, StorageError
from ingest.store.abstract import MessageStore
from ingest.utils.logging import get_logger

log = get_logger(__name__)


class LookupOutcome(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass(frozen=True)
class LookupResult:
    outcome: LookupOutcome
    record: Optional[Record] = None
    error: Optional[StorageError] = None

    @property
    def found(self) -> bool:
        return self.outcome is LookupOutcome.FOUND


def _as_int(value: Union[int, str], name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be an integer, got {value!r}") from None


class MessageQueryService:
    """Thin read-through delegation to a MessageStore."""

    def __init__(self, store: MessageStore) -> None:
        self.store = store

    def list_all(self) -> List[Record]:
        return self.store.get_all()

    def list_page(self, page: Union[int, str] = 0, size: Union[int, str] = 20) -> Page:
        page_number = _as_int(page, "page")
        page_size = _as_int(size, "size")
        if page_number < 0 or page_size <= 0:
            raise InvalidPageError(page_number, page_size)
        return self.store.get_all_paged(page_number, page_size)

    def get(self, record_id: str) -> LookupResult:
        try:
            record = self.store.get_by_id(record_id)
        except StorageError as exc:
            log.error("Lookup of %s failed: %s", record_id, exc)
            return LookupResult(LookupOutcome.ERROR, error=exc)
        if record is None:
            log.debug("Message not found: %s", record_id)
            return LookupResult(LookupOutcome.NOT_FOUND)
        return LookupResult(LookupOutcome.FOUND, record=record)

    def list_by_status(self, status: Union[str, MessageStatus]) -> List[Record]:
        return self.store.get_by_status(MessageStatus.parse(status))

    def list_by_status_page(
        self,
        status: Union[str, MessageStatus],
        page: Union[int, str] = 0,
        size: Union[int, str] = 20,
    ) -> Page:
        page_number = _as_int(page, "page")
        page_size = _as_int(size, "size")
        if page_number < 0 or page_size <= 0:
            raise InvalidPageError(page_number, page_size)
        return self.store.get_by_status_paged(MessageStatus.parse(status), page_number, page_size)

    def list_by_date_range(self, start: datetime, end: datetime) -> List[Record]:
        return self.store.get_by_date_range(start, end)

    def search(self, term: Optional[str]) -> List[Record]:
        if term is None:
            return []
        return self.store.search(term)

    def count(self, status: Union[str, MessageStatus, None] = None) -> int:
        if status is None:
            return self.store.count_all()
        return self.store.count_by_status(MessageStatus.parse(status))

    def most_recent(self) -> Optional[Record]:
        return self.store.get_most_recent()

    def processed(self) -> List[Record]:
        return self.store.get_by_status(MessageStatus.PROCESSED)


__all__ = ["LookupOutcome", "LookupResult", "MessageQueryService"]
