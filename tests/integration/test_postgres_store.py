"""
Integration tests for the durable store.

These tests run against a real PostgreSQL instance and verify that the
durable store honours the same contract as the in-memory store.

Run with: RUN_INTEGRATION_TESTS=1 pytest tests/integration/
"""

from __future__ import annotations

import math
import os
import threading
from datetime import timedelta

import pytest

from ingest.consumer import MessageConsumer
from ingest.domain.models import MessageStatus
from ingest.errors import DuplicateIdError, InvalidPageError, RecordNotFoundError
from ingest.query import LookupOutcome, MessageQueryService

RECORD_COUNT = 10
PAGE_SIZE = 3
THREAD_COUNT = 4
INSERTS_PER_THREAD = 25
LARGE_PAYLOAD_CHARS = 50_000

pytestmark = pytest.mark.skipif(
    os.getenv("RUN_INTEGRATION_TESTS", "0") != "1",
    reason="Integration tests require RUN_INTEGRATION_TESTS=1 and reachable Postgres",
)


class TestCrud:
    """Insert, lookup, update and delete."""

    def test_round_trip(self, pg_store, make_record):
        stored = pg_store.insert(make_record("round trip"))

        assert pg_store.get_by_id(stored.id) == stored
        assert pg_store.exists_by_id(stored.id) is True

    def test_duplicate_id_is_rejected(self, pg_store, make_record):
        stored = pg_store.insert(make_record("first"))

        with pytest.raises(DuplicateIdError):
            pg_store.insert(make_record("second", id=stored.id))

        assert pg_store.count_all() == 1

    def test_update_preserves_created_at(self, pg_store, make_record):
        stored = pg_store.insert(make_record("before"))

        updated = pg_store.update(
            stored.model_copy(update={"content": "after", "status": MessageStatus.FAILED})
        )

        assert updated.content == "after"
        assert updated.created_at == stored.created_at
        assert updated.updated_at >= stored.updated_at
        assert pg_store.count_by_status(MessageStatus.FAILED) == 1

    def test_update_missing_raises(self, pg_store, make_record):
        with pytest.raises(RecordNotFoundError):
            pg_store.update(make_record("ghost"))

    def test_delete_missing_returns_false(self, pg_store, make_record):
        pg_store.insert(make_record("keep"))

        assert pg_store.delete_by_id("00000000-0000-0000-0000-000000000000") is False
        assert pg_store.count_all() == 1

    def test_delete_by_status_and_clear(self, pg_store, make_record):
        pg_store.insert(make_record("a", status=MessageStatus.FAILED))
        pg_store.insert(make_record("b"))

        assert pg_store.delete_by_status(MessageStatus.FAILED) == 1
        assert pg_store.clear() == 1
        assert pg_store.clear() == 0
        assert pg_store.count_all() == 0


class TestQueries:
    """Ordering, pagination, filtering and search."""

    def test_get_all_is_reverse_insertion_order(self, pg_store, make_record):
        inserted = [pg_store.insert(make_record(f"Message {i}")) for i in range(RECORD_COUNT)]

        assert [r.id for r in pg_store.get_all()] == [r.id for r in reversed(inserted)]
        assert pg_store.get_most_recent().id == inserted[-1].id

    def test_pages_concatenate_to_get_all(self, pg_store, make_record):
        for i in range(RECORD_COUNT):
            pg_store.insert(make_record(f"Message {i}"))

        collected = []
        for number in range(math.ceil(RECORD_COUNT / PAGE_SIZE)):
            page = pg_store.get_all_paged(number, PAGE_SIZE)
            assert page.total == RECORD_COUNT
            collected.extend(page.items)

        assert [r.id for r in collected] == [r.id for r in pg_store.get_all()]

    def test_invalid_page(self, pg_store):
        with pytest.raises(InvalidPageError):
            pg_store.get_all_paged(0, 0)

    def test_search_is_case_insensitive(self, pg_store, make_record):
        for content in ("Important data", "Other data", "Important event", "100% done"):
            pg_store.insert(make_record(content))

        assert sorted(r.content for r in pg_store.search("important")) == [
            "Important data",
            "Important event",
        ]
        assert [r.content for r in pg_store.search("0%")] == ["100% done"]

    def test_date_range(self, pg_store, make_record):
        stored = pg_store.insert(make_record("dated"))
        moment = stored.created_at

        assert pg_store.get_by_date_range(moment, moment) == [stored]
        assert pg_store.get_by_date_range(moment + timedelta(seconds=1), moment + timedelta(seconds=2)) == []

    def test_status_paging(self, pg_store, make_record):
        for i in range(4):
            pg_store.insert(make_record(f"p{i}"))
        pg_store.insert(make_record("f", status=MessageStatus.PENDING))

        page = pg_store.get_by_status_paged(MessageStatus.PROCESSED, 0, 3)

        assert page.total == 4
        assert [r.content for r in page.items] == ["p3", "p2", "p1"]


class TestConsumerOnDurableStore:
    """Consumer writing through the durable store."""

    @pytest.mark.parametrize("payload", ["", "x" * LARGE_PAYLOAD_CHARS, "zażółć 🙂 日本"])
    def test_content_preserved(self, pg_store, payload):
        MessageConsumer(pg_store).on_deliver(payload)

        [record] = pg_store.get_all()
        assert record.content == payload
        assert record.status == "PROCESSED"

    def test_concurrent_consumers(self, pg_store):
        consumer = MessageConsumer(pg_store)

        def worker(n: int) -> None:
            for i in range(INSERTS_PER_THREAD):
                consumer.on_deliver(f"thread {n} message {i}")

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(THREAD_COUNT)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        expected = THREAD_COUNT * INSERTS_PER_THREAD
        assert consumer.processed_count == expected
        assert pg_store.count_all() == expected

    def test_query_service_lookup(self, pg_store, make_record):
        stored = pg_store.insert(make_record("lookup"))
        query = MessageQueryService(pg_store)

        assert query.get(stored.id).outcome is LookupOutcome.FOUND
        assert query.get("missing").outcome is LookupOutcome.NOT_FOUND
