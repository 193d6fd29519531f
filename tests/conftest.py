"""
Pytest configuration for the message ingest pipeline.

Provides fixtures for:
- In-memory store, channel and counters for unit tests
- Settings override for integration tests
- Postgres and Redis connections (integration tests skip when unavailable)
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Callable, Generator

import psycopg
import pytest
import redis

from ingest.config import Settings
from ingest.consumer import MessageConsumer
from ingest.domain.models import MessageStatus, Record, new_record_id
from ingest.infrastructure.channel import InMemoryChannel
from ingest.metrics import InMemoryCounter
from ingest.producer import MessageProducer
from ingest.store.memory import InMemoryStore
from ingest.store.postgres import PostgresStore

TOPIC = "messages"


class SteppingClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        value = self.current
        self.current = value + timedelta(seconds=1)
        return value


@pytest.fixture
def clock() -> SteppingClock:
    return SteppingClock()


@pytest.fixture
def store(clock: SteppingClock) -> InMemoryStore:
    return InMemoryStore(clock=clock)


@pytest.fixture
def counter() -> InMemoryCounter:
    return InMemoryCounter()


@pytest.fixture
def channel() -> InMemoryChannel:
    return InMemoryChannel()


@pytest.fixture
def pipeline(
    channel: InMemoryChannel, store: InMemoryStore, counter: InMemoryCounter
) -> tuple[MessageProducer, MessageConsumer]:
    """Producer and consumer wired through an in-memory channel on one topic."""
    consumer = MessageConsumer(store, counter=counter)
    consumer.subscribe(channel, TOPIC)
    producer = MessageProducer(channel, topic=TOPIC, counter=counter)
    return producer, consumer


@pytest.fixture
def make_record() -> Callable[..., Record]:
    def _make(content: str = "hello", status: MessageStatus = MessageStatus.PROCESSED, **kw):
        return Record(
            id=kw.pop("id", None) or new_record_id(),
            content=content,
            timestamp=kw.pop("timestamp", 1_700_000_000_000),
            status=status,
            **kw,
        )

    return _make


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "message_ingest"),
        redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/15"),
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    """
    Database connection string for tests.
    """
    return (
        f"postgresql://{test_settings.db_user}:{test_settings.db_password}"
        f"@{test_settings.db_host}:{test_settings.db_port}/{test_settings.db_name}"
    )


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except psycopg.Error:
        return False


@pytest.fixture
def pg_store(test_dsn: str, db_connection_available: bool) -> Generator[PostgresStore, None, None]:
    """
    Durable store on a private pool with an empty messages table.

    Skips tests if database is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    store = PostgresStore(dsn_override=test_dsn)
    store.ensure_schema()
    store.clear()
    try:
        yield store
    finally:
        store.clear()
        store.close()


@pytest.fixture
def redis_client(test_settings: Settings) -> Generator[redis.Redis, None, None]:
    """
    Redis client on a scratch database, flushed before and after each test.
    """
    client = redis.Redis.from_url(test_settings.redis_url, decode_responses=True)
    try:
        client.ping()
    except redis.RedisError:
        pytest.skip("Redis not available for integration tests")
    client.flushdb()
    try:
        yield client
    finally:
        client.flushdb()
        client.close()
