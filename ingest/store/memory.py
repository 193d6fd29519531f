"""
Ephemeral in-process store.

Records live for the lifetime of the process. Writers serialize on a lock and
publish a fresh immutable snapshot; readers grab whatever snapshot is current
without locking, so a listing is always complete and consistent even while
inserts are running on other threads.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from ingest.domain.models import MessageStatus, Page, Record, utc_now
from ingest.errors import DuplicateIdError, RecordNotFoundError
from ingest.store.abstract import AbstractMessageStore, validate_page, validate_range
from ingest.utils.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class _Snapshot:
    """Records in insertion order (oldest first) plus an id index."""

    records: Tuple[Record, ...] = ()
    by_id: Dict[str, Record] = field(default_factory=dict)

    def newest_first(self) -> List[Record]:
        return list(reversed(self.records))


def _paginate(records: List[Record], page_number: int, page_size: int) -> Page:
    start = page_number * page_size
    return Page(
        items=records[start : start + page_size],
        total=len(records),
        page_number=page_number,
        page_size=page_size,
    )


class InMemoryStore(AbstractMessageStore):
    """
    Copy-on-write store keyed by record id.

    Ids are unique: inserting a record whose id is already present raises
    DuplicateIdError, so lookups by id are always unambiguous.
    """

    name: str = "memory"

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._clock = clock or utc_now
        self._write_lock = threading.Lock()
        self._snapshot = _Snapshot()

    def _publish(self, records: Tuple[Record, ...]) -> None:
        # Single reference assignment; readers see either the old or the new snapshot.
        self._snapshot = _Snapshot(records=records, by_id={r.id: r for r in records})

    # --- writes -----------------------------------------------------------

    def insert(self, record: Record) -> Record:
        return self.insert_many([record])[0]

    def insert_many(self, records: Iterable[Record]) -> List[Record]:
        incoming = list(records)
        with self._write_lock:
            current = self._snapshot
            seen = set(current.by_id)
            now = self._clock()
            stamped: List[Record] = []
            for record in incoming:
                if record.id in seen:
                    raise DuplicateIdError(record.id)
                seen.add(record.id)
                stamped.append(record.stamped_for_insert(now))
            self._publish(current.records + tuple(stamped))
        log.debug("Stored %d record(s)", len(stamped), extra={"store": self.name})
        return stamped

    def update(self, record: Record) -> Record:
        with self._write_lock:
            current = self._snapshot
            existing = current.by_id.get(record.id)
            if existing is None:
                raise RecordNotFoundError(record.id)
            updated = record.stamped_for_update(existing.created_at, self._clock())
            self._publish(
                tuple(updated if r.id == record.id else r for r in current.records)
            )
        log.info("Record updated: %s", record.id, extra={"store": self.name})
        return updated

    def delete_by_id(self, record_id: str) -> bool:
        with self._write_lock:
            current = self._snapshot
            if record_id not in current.by_id:
                log.debug("Record not found for deletion: %s", record_id)
                return False
            self._publish(tuple(r for r in current.records if r.id != record_id))
        log.info("Record deleted: %s", record_id, extra={"store": self.name})
        return True

    def delete_by_status(self, status: MessageStatus) -> int:
        status = MessageStatus.parse(status)
        with self._write_lock:
            current = self._snapshot
            kept = tuple(r for r in current.records if r.status != status)
            removed = len(current.records) - len(kept)
            if removed:
                self._publish(kept)
        log.info("Deleted %d record(s) with status %s", removed, status.value)
        return removed

    def clear(self) -> int:
        with self._write_lock:
            removed = len(self._snapshot.records)
            self._snapshot = _Snapshot()
        log.info("All records cleared. Total deleted: %d", removed, extra={"store": self.name})
        return removed

    # --- reads ------------------------------------------------------------

    def get_by_id(self, record_id: str) -> Optional[Record]:
        return self._snapshot.by_id.get(record_id)

    def exists_by_id(self, record_id: str) -> bool:
        return record_id in self._snapshot.by_id

    def get_all(self) -> List[Record]:
        return self._snapshot.newest_first()

    def get_all_paged(self, page_number: int, page_size: int) -> Page:
        validate_page(page_number, page_size)
        return _paginate(self._snapshot.newest_first(), page_number, page_size)

    def get_by_status(self, status: MessageStatus) -> List[Record]:
        status = MessageStatus.parse(status)
        return [r for r in self._snapshot.newest_first() if r.status == status]

    def get_by_status_paged(
        self, status: MessageStatus, page_number: int, page_size: int
    ) -> Page:
        validate_page(page_number, page_size)
        return _paginate(self.get_by_status(status), page_number, page_size)

    def get_by_date_range(self, start: datetime, end: datetime) -> List[Record]:
        start, end = validate_range(start, end)
        return [
            r
            for r in self._snapshot.newest_first()
            if r.created_at is not None and start <= r.created_at <= end
        ]

    def search(self, term: str) -> List[Record]:
        needle = term.lower()
        return [r for r in self._snapshot.newest_first() if needle in r.content.lower()]

    def get_most_recent(self) -> Optional[Record]:
        records = self._snapshot.records
        return records[-1] if records else None

    def count_all(self) -> int:
        return len(self._snapshot.records)

    def count_by_status(self, status: MessageStatus) -> int:
        status = MessageStatus.parse(status)
        return sum(1 for r in self._snapshot.records if r.status == status)


__all__ = ["InMemoryStore"]
