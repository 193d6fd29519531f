"""
Durable store backed by PostgreSQL.

Each public operation runs on a pooled psycopg connection inside its own
transaction: the pool's connection context commits on success and rolls back
when an exception escapes. Engine failures are re-raised as StorageError
(DuplicateIdError for primary key conflicts) so callers never see driver types.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Dict, Generator, Iterable, List, Optional

import psycopg
from psycopg import errors as pg_errors
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from ingest.config import get_settings
from ingest.domain.models import MessageStatus, Page, Record, utc_now
from ingest.errors import DuplicateIdError, RecordNotFoundError, StorageError
from ingest.infrastructure.db_factory import apply_statement_timeout, get_sync_pool
from ingest.store.abstract import AbstractMessageStore, validate_page, validate_range
from ingest.utils.logging import get_logger

log = get_logger(__name__)

TABLE = "public.messages"

SCHEMA_SQL = f"""
CREATE TABLE IF NOT EXISTS {TABLE} (
    seq         BIGSERIAL,
    id          VARCHAR(36) PRIMARY KEY,
    content     TEXT NOT NULL,
    "timestamp" BIGINT NOT NULL,
    status      VARCHAR(50) NOT NULL,
    created_at  TIMESTAMPTZ NOT NULL,
    updated_at  TIMESTAMPTZ NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_message_status ON {TABLE} (status);
CREATE INDEX IF NOT EXISTS idx_message_timestamp ON {TABLE} ("timestamp");
CREATE INDEX IF NOT EXISTS idx_message_created_at ON {TABLE} (created_at DESC, seq DESC);
"""

_COLUMNS = 'id, content, "timestamp", status, created_at, updated_at'
_ORDER = "ORDER BY created_at DESC, seq DESC"


def _escape_like(term: str) -> str:
    """Escape LIKE wildcards so the term matches literally."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _to_record(row: Dict[str, Any]) -> Record:
    return Record.model_validate(row)


class PostgresStore(AbstractMessageStore):
    """
    Transactional store over a single `messages` table keyed by id.

    Parameters
    ----------
    pool : ConnectionPool | None
        Pool to borrow connections from. Defaults to the process-wide pool
        managed by `PoolManager`.
    dsn_override : str | None
        Build a private pool for this DSN instead (tests, ad-hoc tools).
        The private pool is closed by `close()`.
    """

    name: str = "postgres"

    def __init__(
        self,
        pool: Optional[ConnectionPool] = None,
        dsn_override: Optional[str] = None,
        statement_timeout_ms: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        settings = get_settings()
        self._pool_instance: Optional[ConnectionPool] = pool
        self._dsn_override = dsn_override
        self._owns_pool = False
        self._clock = clock or utc_now
        self.statement_timeout_ms = (
            statement_timeout_ms
            if statement_timeout_ms is not None
            else settings.db_statement_timeout_ms
        )

    def _get_pool(self) -> ConnectionPool:
        if self._pool_instance is not None:
            return self._pool_instance
        if self._dsn_override:
            settings = get_settings()
            self._pool_instance = ConnectionPool(
                conninfo=self._dsn_override,
                min_size=settings.db_pool_min_size,
                max_size=settings.db_pool_max_size,
                open=True,
            )
            self._owns_pool = True
        else:
            self._pool_instance = get_sync_pool()
        return self._pool_instance

    @contextmanager
    def _transaction(self, operation: str) -> Generator[psycopg.Cursor, None, None]:
        """Yield a dict-row cursor inside one transaction, translating driver errors."""
        try:
            with self._get_pool().connection() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    apply_statement_timeout(cur, self.statement_timeout_ms)
                    yield cur
        except psycopg.Error as exc:
            log.error("Storage operation '%s' failed: %s", operation, exc, exc_info=True)
            raise StorageError(f"Failed to {operation}") from exc

    def ensure_schema(self) -> None:
        """Create the messages table and its indexes if missing."""
        with self._transaction("create schema") as cur:
            cur.execute(SCHEMA_SQL)
        log.info("Schema ensured", extra={"table": TABLE})

    # --- writes -----------------------------------------------------------

    def insert(self, record: Record) -> Record:
        return self.insert_many([record])[0]

    def insert_many(self, records: Iterable[Record]) -> List[Record]:
        incoming = list(records)
        if not incoming:
            return []
        now = self._clock()
        stored: List[Record] = []
        sql = (
            f"INSERT INTO {TABLE} ({_COLUMNS}) VALUES (%s, %s, %s, %s, %s, %s) "
            f"RETURNING {_COLUMNS}"
        )
        current_id = incoming[0].id
        try:
            with self._transaction("insert records") as cur:
                for record in incoming:
                    current_id = record.id
                    stamped = record.stamped_for_insert(now)
                    cur.execute(
                        sql,
                        (
                            stamped.id,
                            stamped.content,
                            stamped.timestamp,
                            stamped.status.value,
                            stamped.created_at,
                            stamped.updated_at,
                        ),
                    )
                    stored.append(_to_record(cur.fetchone()))
        except StorageError as exc:
            if isinstance(exc.__cause__, pg_errors.UniqueViolation):
                raise DuplicateIdError(current_id) from exc.__cause__
            raise
        log.debug("Stored %d record(s)", len(stored), extra={"store": self.name})
        return stored

    def update(self, record: Record) -> Record:
        with self._transaction("update record") as cur:
            cur.execute(
                f"UPDATE {TABLE} SET content = %s, \"timestamp\" = %s, status = %s, "
                f"updated_at = %s WHERE id = %s RETURNING {_COLUMNS}",
                (
                    record.content,
                    record.timestamp,
                    MessageStatus.parse(record.status).value,
                    self._clock(),
                    record.id,
                ),
            )
            row = cur.fetchone()
        if row is None:
            raise RecordNotFoundError(record.id)
        log.info("Record updated: %s", record.id, extra={"store": self.name})
        return _to_record(row)

    def delete_by_id(self, record_id: str) -> bool:
        with self._transaction("delete record") as cur:
            cur.execute(f"DELETE FROM {TABLE} WHERE id = %s", (record_id,))
            deleted = cur.rowcount > 0
        if deleted:
            log.info("Record deleted: %s", record_id, extra={"store": self.name})
        else:
            log.debug("Record not found for deletion: %s", record_id)
        return deleted

    def delete_by_status(self, status: MessageStatus) -> int:
        status = MessageStatus.parse(status)
        with self._transaction("delete records by status") as cur:
            cur.execute(f"DELETE FROM {TABLE} WHERE status = %s", (status.value,))
            removed = cur.rowcount
        log.info("Deleted %d record(s) with status %s", removed, status.value)
        return removed

    def clear(self) -> int:
        with self._transaction("clear records") as cur:
            cur.execute(f"DELETE FROM {TABLE}")
            removed = cur.rowcount
        log.info("All records cleared. Total deleted: %d", removed, extra={"store": self.name})
        return removed

    # --- reads ------------------------------------------------------------

    def _select(self, operation: str, where: str = "", params: tuple = ()) -> List[Record]:
        with self._transaction(operation) as cur:
            cur.execute(f"SELECT {_COLUMNS} FROM {TABLE} {where} {_ORDER}", params)
            rows = cur.fetchall()
        return [_to_record(row) for row in rows]

    def _page(
        self, operation: str, page_number: int, page_size: int, where: str = "", params: tuple = ()
    ) -> Page:
        validate_page(page_number, page_size)
        with self._transaction(operation) as cur:
            cur.execute(f"SELECT COUNT(*) AS total FROM {TABLE} {where}", params)
            total = cur.fetchone()["total"]
            cur.execute(
                f"SELECT {_COLUMNS} FROM {TABLE} {where} {_ORDER} LIMIT %s OFFSET %s",
                params + (page_size, page_number * page_size),
            )
            rows = cur.fetchall()
        return Page(
            items=[_to_record(row) for row in rows],
            total=total,
            page_number=page_number,
            page_size=page_size,
        )

    def _count(self, operation: str, where: str = "", params: tuple = ()) -> int:
        with self._transaction(operation) as cur:
            cur.execute(f"SELECT COUNT(*) AS total FROM {TABLE} {where}", params)
            return int(cur.fetchone()["total"])

    def get_by_id(self, record_id: str) -> Optional[Record]:
        with self._transaction("fetch record") as cur:
            cur.execute(f"SELECT {_COLUMNS} FROM {TABLE} WHERE id = %s", (record_id,))
            row = cur.fetchone()
        return _to_record(row) if row is not None else None

    def exists_by_id(self, record_id: str) -> bool:
        with self._transaction("check record existence") as cur:
            cur.execute(f"SELECT EXISTS (SELECT 1 FROM {TABLE} WHERE id = %s) AS found", (record_id,))
            return bool(cur.fetchone()["found"])

    def get_all(self) -> List[Record]:
        return self._select("fetch records")

    def get_all_paged(self, page_number: int, page_size: int) -> Page:
        return self._page("fetch page", page_number, page_size)

    def get_by_status(self, status: MessageStatus) -> List[Record]:
        status = MessageStatus.parse(status)
        return self._select("fetch records by status", "WHERE status = %s", (status.value,))

    def get_by_status_paged(
        self, status: MessageStatus, page_number: int, page_size: int
    ) -> Page:
        status = MessageStatus.parse(status)
        return self._page(
            "fetch page by status", page_number, page_size, "WHERE status = %s", (status.value,)
        )

    def get_by_date_range(self, start: datetime, end: datetime) -> List[Record]:
        start, end = validate_range(start, end)
        return self._select(
            "fetch records by date range", "WHERE created_at BETWEEN %s AND %s", (start, end)
        )

    def search(self, term: str) -> List[Record]:
        return self._select(
            "search records",
            "WHERE content ILIKE %s ESCAPE '\\'",
            (f"%{_escape_like(term)}%",),
        )

    def get_most_recent(self) -> Optional[Record]:
        with self._transaction("fetch most recent record") as cur:
            cur.execute(f"SELECT {_COLUMNS} FROM {TABLE} {_ORDER} LIMIT 1")
            row = cur.fetchone()
        return _to_record(row) if row is not None else None

    def count_all(self) -> int:
        return self._count("count records")

    def count_by_status(self, status: MessageStatus) -> int:
        status = MessageStatus.parse(status)
        return self._count("count records by status", "WHERE status = %s", (status.value,))

    def close(self) -> None:
        """Close the private pool, if this store created one."""
        if self._owns_pool and self._pool_instance is not None:
            self._pool_instance.close()
        if self._owns_pool:
            self._pool_instance = None
            self._owns_pool = False


__all__ = ["PostgresStore", "SCHEMA_SQL"]
