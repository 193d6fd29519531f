from __future__ import annotations

import signal
import sys
from typing import List, Optional

import psycopg
import redis
import typer

from ingest.config import get_settings
from ingest.consumer import MessageConsumer
from ingest.errors import IngestError
from ingest.infrastructure.channel import InMemoryChannel, RedisStreamChannel
from ingest.infrastructure.db_factory import get_sync_connection
from ingest.metrics import InMemoryCounter
from ingest.producer import MessageProducer
from ingest.query import MessageQueryService
from ingest.reporter import print_page, print_records
from ingest.store import AbstractMessageStore, PostgresStore, build_store
from ingest.utils.logging import configure_logging

app = typer.Typer(help="Message ingest pipeline CLI.")


def _setup() -> None:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)


def _fail(exc: Exception) -> None:
    typer.echo(f"Error: {exc}", err=True)
    raise typer.Exit(code=1)


def _redis_channel() -> RedisStreamChannel:
    settings = get_settings()
    return RedisStreamChannel.from_url(
        settings.redis_url,
        consumer_group=settings.consumer_group,
        consumer_name=settings.consumer_name,
        block_ms=settings.consumer_block_ms,
        batch_size=settings.consumer_batch_size,
    )


def _open_store() -> AbstractMessageStore:
    settings = get_settings()
    if settings.store_backend == "memory":
        typer.echo(
            "Warning: STORE_BACKEND=memory; records live only for this process. "
            "Set STORE_BACKEND=postgres to use the durable store.",
            err=True,
        )
    return build_store(settings)


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} | "
        f"store={settings.store_backend} redis={settings.redis_url} "
        f"topic={settings.message_topic} group={settings.consumer_group}"
    )


@app.command("init-db")
def init_db() -> None:
    """
    Create the messages table and indexes.
    """
    _setup()
    try:
        with PostgresStore() as store:
            store.ensure_schema()
    except IngestError as exc:
        _fail(exc)
    typer.echo("Schema ready.")


@app.command()
def health() -> None:
    """
    Check that Postgres and Redis are reachable.
    """
    _setup()
    settings = get_settings()
    statuses = {}
    try:
        with get_sync_connection() as conn:
            conn.execute("SELECT 1")
        statuses["postgres"] = "UP"
    except psycopg.Error as exc:
        statuses["postgres"] = f"DOWN ({exc})"
    try:
        redis.Redis.from_url(settings.redis_url).ping()
        statuses["redis"] = "UP"
    except redis.RedisError as exc:
        statuses["redis"] = f"DOWN ({exc})"

    for name, status in statuses.items():
        typer.echo(f"{name}: {status}")
    if any(status != "UP" for status in statuses.values()):
        raise typer.Exit(code=1)


@app.command()
def publish(
    messages: List[str] = typer.Argument(..., help="One or more payloads to publish."),
) -> None:
    """
    Publish payloads to the configured Redis stream.
    """
    _setup()
    settings = get_settings()
    producer = MessageProducer(_redis_channel(), topic=settings.message_topic)
    try:
        for message in messages:
            producer.publish(message)
    except IngestError as exc:
        _fail(exc)
    typer.echo(f"Published {len(messages)} message(s) to '{settings.message_topic}'.")


@app.command()
def consume(
    max_idle_polls: Optional[int] = typer.Option(
        None,
        "--max-idle-polls",
        help="Exit after this many consecutive empty reads (default: run until interrupted).",
    ),
) -> None:
    """
    Consume the configured Redis stream into the configured store.
    """
    _setup()
    settings = get_settings()
    channel = _redis_channel()
    counter = InMemoryCounter()
    with _open_store() as store:
        consumer = MessageConsumer(store, counter=counter)
        consumer.subscribe(channel, settings.message_topic)
        signal.signal(signal.SIGTERM, lambda *_: channel.stop())
        try:
            total = channel.listen(settings.message_topic, max_idle_polls=max_idle_polls)
        except IngestError as exc:
            _fail(exc)
    typer.echo(
        f"Delivered {total} payload(s): stored={consumer.processed_count} "
        f"failed={consumer.failed_count}."
    )


@app.command("list")
def list_messages(
    page: Optional[int] = typer.Option(None, "--page", "-p", help="Page number (0-based)."),
    size: int = typer.Option(20, "--size", "-n", help="Page size when --page is given."),
    status: Optional[str] = typer.Option(None, "--status", "-s", help="Filter by status."),
) -> None:
    """
    List stored messages, newest first.
    """
    _setup()
    with _open_store() as store:
        query = MessageQueryService(store)
        try:
            if page is not None and status:
                print_page(query.list_by_status_page(status, page, size))
            elif page is not None:
                print_page(query.list_page(page, size))
            elif status:
                print_records(query.list_by_status(status), title=f"Messages ({status.upper()})")
            else:
                print_records(query.list_all())
        except (IngestError, ValueError) as exc:
            _fail(exc)


@app.command()
def get(record_id: str = typer.Argument(..., help="Record id.")) -> None:
    """
    Show a single message.
    """
    _setup()
    with _open_store() as store:
        result = MessageQueryService(store).get(record_id)
    if result.error is not None:
        _fail(result.error)
    if not result.found:
        typer.echo(f"Message not found: {record_id}", err=True)
        raise typer.Exit(code=2)
    typer.echo(result.record.model_dump_json(indent=2))


@app.command()
def search(term: str = typer.Argument(..., help="Case-insensitive substring.")) -> None:
    """
    Search message content.
    """
    _setup()
    with _open_store() as store:
        try:
            print_records(MessageQueryService(store).search(term), title=f"Matches for '{term}'")
        except IngestError as exc:
            _fail(exc)


@app.command()
def count(status: Optional[str] = typer.Option(None, "--status", "-s")) -> None:
    """
    Count stored messages.
    """
    _setup()
    with _open_store() as store:
        try:
            typer.echo(str(MessageQueryService(store).count(status)))
        except (IngestError, ValueError) as exc:
            _fail(exc)


@app.command()
def clear(yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation.")) -> None:
    """
    Delete every stored message.
    """
    _setup()
    if not yes:
        typer.confirm("Delete all stored messages?", abort=True)
    with _open_store() as store:
        try:
            removed = store.clear()
        except IngestError as exc:
            _fail(exc)
    typer.echo(f"Deleted {removed} message(s).")


@app.command()
def demo(
    messages: int = typer.Option(10, "--messages", "-m", help="Number of payloads to publish."),
) -> None:
    """
    Run producer, consumer and store in-process and print the result.
    """
    _setup()
    settings = get_settings()
    channel = InMemoryChannel()
    counter = InMemoryCounter()
    store = build_store(settings.model_copy(update={"store_backend": "memory"}))
    consumer = MessageConsumer(store, counter=counter)
    consumer.subscribe(channel, settings.message_topic)
    producer = MessageProducer(channel, topic=settings.message_topic, counter=counter)
    for i in range(messages):
        producer.publish(f"Message {i}")
    print_records(MessageQueryService(store).list_all())
    typer.echo(f"Counters: {counter.snapshot()}")


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
