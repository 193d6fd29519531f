"""
Abstract store interface for the message ingest pipeline.

Concrete stores (in-memory, Postgres) implement `AbstractMessageStore` and are
interchangeable behind the `MessageStore` protocol used by the consumer and the
query service. Listings are ordered by creation time descending, newest insert
first on ties.
"""

from __future__ import annotations

import abc
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Protocol, Tuple, runtime_checkable

from ingest.domain.models import MessageStatus, Page, Record
from ingest.errors import InvalidPageError


def validate_page(page_number: int, page_size: int) -> None:
    """Raise InvalidPageError unless page_number >= 0 and page_size > 0."""
    if page_size <= 0 or page_number < 0:
        raise InvalidPageError(page_number, page_size)


def as_utc(value: datetime) -> datetime:
    """Interpret a naive datetime as UTC, the zone of the audit stamps."""
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def validate_range(start: datetime, end: datetime) -> Tuple[datetime, datetime]:
    """Return the bounds as aware UTC datetimes; raise ValueError if start > end."""
    start, end = as_utc(start), as_utc(end)
    if start > end:
        raise ValueError(f"start ({start.isoformat()}) must not be after end ({end.isoformat()})")
    return start, end


@runtime_checkable
class MessageStore(Protocol):
    """
    Common interface every store must implement.

    Mutations are visible to all callers as soon as they return.
    """

    name: str

    def insert(self, record: Record) -> Record:
        """
        Store a new record, stamping `created_at` and `updated_at`.

        Raises
        ------
        DuplicateIdError
            If a record with the same id is already stored.
        StorageError
            If the underlying engine fails.
        """
        ...

    def insert_many(self, records: Iterable[Record]) -> List[Record]:
        ...

    def get_by_id(self, record_id: str) -> Optional[Record]:
        ...

    def get_all(self) -> List[Record]:
        ...

    def get_all_paged(self, page_number: int, page_size: int) -> Page:
        ...

    def get_by_status(self, status: MessageStatus) -> List[Record]:
        ...

    def get_by_status_paged(
        self, status: MessageStatus, page_number: int, page_size: int
    ) -> Page:
        ...

    def get_by_date_range(self, start: datetime, end: datetime) -> List[Record]:
        ...

    def search(self, term: str) -> List[Record]:
        ...

    def get_most_recent(self) -> Optional[Record]:
        ...

    def count_all(self) -> int:
        ...

    def count_by_status(self, status: MessageStatus) -> int:
        ...

    def exists_by_id(self, record_id: str) -> bool:
        ...

    def update(self, record: Record) -> Record:
        ...

    def delete_by_id(self, record_id: str) -> bool:
        ...

    def delete_by_status(self, status: MessageStatus) -> int:
        ...

    def clear(self) -> int:
        ...

    def close(self) -> None:
        ...


class AbstractMessageStore(abc.ABC):
    """
    ABC helper for class-based stores.

    Subclasses implement the primitive operations; the derived queries below
    (`get_most_recent`, `exists_by_id`, `count_by_status`) are expressed in
    terms of them and may be overridden with cheaper engine-specific versions.
    """

    name: str

    @abc.abstractmethod
    def insert(self, record: Record) -> Record:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    def insert_many(self, records: Iterable[Record]) -> List[Record]:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    def get_by_id(self, record_id: str) -> Optional[Record]:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    def get_all(self) -> List[Record]:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    def get_all_paged(self, page_number: int, page_size: int) -> Page:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    def get_by_status(self, status: MessageStatus) -> List[Record]:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    def get_by_status_paged(
        self, status: MessageStatus, page_number: int, page_size: int
    ) -> Page:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    def get_by_date_range(
        self, start: datetime, end: datetime
    ) -> List[Record]:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    def search(self, term: str) -> List[Record]:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    def count_all(self) -> int:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    def update(self, record: Record) -> Record:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    def delete_by_id(self, record_id: str) -> bool:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    def delete_by_status(self, status: MessageStatus) -> int:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    def clear(self) -> int:  # pragma: no cover
        raise NotImplementedError

    def get_most_recent(self) -> Optional[Record]:
        page = self.get_all_paged(0, 1)
        return page.items[0] if page.items else None

    def exists_by_id(self, record_id: str) -> bool:
        return self.get_by_id(record_id) is not None

    def count_by_status(self, status: MessageStatus) -> int:
        return len(self.get_by_status(status))

    def close(self) -> None:
        """Release engine resources. No-op by default."""

    def __enter__(self) -> "AbstractMessageStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = [
    "MessageStore",
    "AbstractMessageStore",
    "validate_page",
    "as_utc",
    "validate_range",
]
