from __future__ import annotations

import math
import threading
from datetime import datetime, timedelta, timezone

import pytest

from ingest.domain.models import MessageStatus
from ingest.errors import DuplicateIdError, InvalidPageError, RecordNotFoundError
from ingest.store import InMemoryStore, MessageStore

RECORD_COUNT = 10
THREAD_COUNT = 8
INSERTS_PER_THREAD = 50


def test_in_memory_store_satisfies_protocol(store: InMemoryStore) -> None:
    assert isinstance(store, MessageStore)


def test_insert_then_get_by_id_round_trips(store, make_record) -> None:
    stored = store.insert(make_record("round trip"))

    assert store.get_by_id(stored.id) == stored
    assert stored.created_at is not None
    assert stored.updated_at == stored.created_at


def test_get_by_id_missing_returns_none(store) -> None:
    assert store.get_by_id("does-not-exist") is None
    assert store.exists_by_id("does-not-exist") is False


def test_insert_rejects_duplicate_id(store, make_record) -> None:
    first = store.insert(make_record("first"))

    with pytest.raises(DuplicateIdError) as excinfo:
        store.insert(make_record("second", id=first.id))

    assert excinfo.value.record_id == first.id
    assert store.count_all() == 1
    assert store.get_by_id(first.id).content == "first"


def test_insert_many_is_all_or_nothing(store, make_record) -> None:
    existing = store.insert(make_record("existing"))
    batch = [make_record("a"), make_record("b", id=existing.id)]

    with pytest.raises(DuplicateIdError):
        store.insert_many(batch)

    assert store.count_all() == 1


def test_get_all_returns_reverse_insertion_order(store, make_record) -> None:
    inserted = [store.insert(make_record(f"Message {i}")) for i in range(RECORD_COUNT)]

    assert store.get_all() == list(reversed(inserted))


def test_get_all_orders_ties_newest_insert_first(make_record) -> None:
    fixed = datetime(2024, 1, 1, tzinfo=timezone.utc)
    store = InMemoryStore(clock=lambda: fixed)
    inserted = [store.insert(make_record(f"tie {i}")) for i in range(3)]

    assert [r.content for r in store.get_all()] == ["tie 2", "tie 1", "tie 0"]
    assert store.get_most_recent() == inserted[-1]


@pytest.mark.parametrize("page_size", [1, 3, 4, 10, 25])
def test_pages_concatenate_to_get_all(store, make_record, page_size: int) -> None:
    for i in range(RECORD_COUNT):
        store.insert(make_record(f"Message {i}"))

    pages = math.ceil(RECORD_COUNT / page_size)
    collected = []
    for number in range(pages):
        page = store.get_all_paged(number, page_size)
        assert page.total == RECORD_COUNT
        collected.extend(page.items)

    assert collected == store.get_all()
    assert len({r.id for r in collected}) == RECORD_COUNT


def test_page_past_the_end_is_empty(store, make_record) -> None:
    store.insert(make_record())

    page = store.get_all_paged(5, 10)

    assert page.items == []
    assert page.total == 1
    assert page.has_next is False


@pytest.mark.parametrize("page_number,page_size", [(0, 0), (0, -1), (-1, 10)])
def test_invalid_page_parameters_raise(store, page_number: int, page_size: int) -> None:
    with pytest.raises(InvalidPageError):
        store.get_all_paged(page_number, page_size)


def test_status_queries(store, make_record) -> None:
    store.insert(make_record("ok 1"))
    store.insert(make_record("bad", status=MessageStatus.FAILED))
    store.insert(make_record("ok 2"))

    processed = store.get_by_status(MessageStatus.PROCESSED)

    assert [r.content for r in processed] == ["ok 2", "ok 1"]
    assert store.count_by_status(MessageStatus.FAILED) == 1
    assert store.count_by_status(MessageStatus.PENDING) == 0
    assert store.get_by_status_paged(MessageStatus.PROCESSED, 1, 1).items[0].content == "ok 1"


def test_search_is_case_insensitive_substring(store, make_record) -> None:
    for content in ("Important data", "Other data", "Important event"):
        store.insert(make_record(content))

    matches = store.search("important")

    assert sorted(r.content for r in matches) == ["Important data", "Important event"]
    assert store.search("Important") == matches
    assert store.search("nothing here") == []


def test_get_by_date_range_uses_created_at(store, make_record, clock) -> None:
    start = clock.current
    records = [store.insert(make_record(f"m{i}")) for i in range(5)]

    window = store.get_by_date_range(records[1].created_at, records[3].created_at)

    assert [r.content for r in window] == ["m3", "m2", "m1"]
    assert store.get_by_date_range(start - timedelta(days=2), start - timedelta(days=1)) == []


def test_get_by_date_range_accepts_naive_bounds_as_utc(store, make_record) -> None:
    record = store.insert(make_record("dated"))
    naive = record.created_at.replace(tzinfo=None)

    assert store.get_by_date_range(naive - timedelta(days=1), naive + timedelta(days=1)) == [record]
    assert store.get_by_date_range(datetime(2023, 12, 30), datetime(2023, 12, 31)) == []


def test_get_by_date_range_rejects_inverted_bounds(store) -> None:
    now = datetime.now(timezone.utc)
    with pytest.raises(ValueError):
        store.get_by_date_range(now, now - timedelta(seconds=1))


def test_update_replaces_content_and_refreshes_updated_at(store, make_record) -> None:
    original = store.insert(make_record("before"))

    changed = original.model_copy(update={"content": "after", "status": MessageStatus.FAILED})
    updated = store.update(changed)

    assert updated.content == "after"
    assert updated.status == MessageStatus.FAILED
    assert updated.created_at == original.created_at
    assert updated.updated_at > original.updated_at
    assert store.get_by_id(original.id) == updated
    # position in the listing is unchanged
    assert store.get_all() == [updated]


def test_update_missing_record_raises(store, make_record) -> None:
    with pytest.raises(RecordNotFoundError):
        store.update(make_record("ghost"))


def test_delete_by_id_missing_returns_false_and_keeps_contents(store, make_record) -> None:
    store.insert(make_record("keep me"))
    before = store.get_all()

    assert store.delete_by_id("missing") is False
    assert store.get_all() == before


def test_delete_by_id_removes_record(store, make_record) -> None:
    record = store.insert(make_record())

    assert store.delete_by_id(record.id) is True
    assert store.get_by_id(record.id) is None
    assert store.count_all() == 0


def test_delete_by_status(store, make_record) -> None:
    store.insert(make_record("a", status=MessageStatus.FAILED))
    store.insert(make_record("b"))
    store.insert(make_record("c", status=MessageStatus.FAILED))

    assert store.delete_by_status(MessageStatus.FAILED) == 2
    assert [r.content for r in store.get_all()] == ["b"]


def test_clear_is_idempotent(store, make_record) -> None:
    for i in range(3):
        store.insert(make_record(str(i)))

    assert store.clear() == 3
    assert store.clear() == 0
    assert store.count_all() == 0


def test_concurrent_inserts_are_not_lost(make_record) -> None:
    store = InMemoryStore()
    barrier = threading.Barrier(THREAD_COUNT)
    snapshots: list[tuple[int, int]] = []
    errors: list[BaseException] = []

    def worker() -> None:
        try:
            barrier.wait()
            for i in range(INSERTS_PER_THREAD):
                store.insert(make_record(f"payload {i}"))
                listing = store.get_all()
                snapshots.append((len(listing), len({r.id for r in listing})))
        except BaseException as exc:  # noqa: BLE001
            errors.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(THREAD_COUNT)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    if errors:
        raise errors[0]
    expected = THREAD_COUNT * INSERTS_PER_THREAD
    assert len(snapshots) == expected
    # No listing ever held a duplicated or half-published record
    assert all(size == unique for size, unique in snapshots)
    assert store.count_all() == expected
    assert len({r.id for r in store.get_all()}) == expected
    assert max(size for size, _ in snapshots) == expected
