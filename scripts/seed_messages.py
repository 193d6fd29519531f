"""
Synthetic message seeding for the durable store.

Generates records whose content and status are seeded (same seed, same
sequence) and batch-loads them through `PostgresStore.insert_many`, bypassing
the channel. Ids are fresh UUIDs and timestamps start at the load time, so a
second run with the same seed appends new rows instead of colliding. Useful
for exercising pagination, search and status queries against a realistic
table size.
"""

from __future__ import annotations

import random
import sys
import time
from typing import Iterator, List

import typer

from ingest.domain.models import MessageStatus, Record, new_record_id, now_millis
from ingest.store.postgres import PostgresStore

app = typer.Typer(help="Generate synthetic messages and load them into Postgres.")

_SUBJECTS = ["Order", "Invoice", "Shipment", "Alert", "Reminder", "Report"]
_ADJECTIVES = ["Important", "Routine", "Delayed", "Urgent", "Archived"]
_STATUS_WEIGHTS = {
    MessageStatus.PROCESSED: 0.9,
    MessageStatus.PENDING: 0.07,
    MessageStatus.FAILED: 0.03,
}


def _generate_records(rows: int, seed: int) -> Iterator[Record]:
    rng = random.Random(seed)
    statuses = list(_STATUS_WEIGHTS)
    weights = list(_STATUS_WEIGHTS.values())
    base_ms = now_millis()
    for i in range(rows):
        content = (
            f"{rng.choice(_ADJECTIVES)} {rng.choice(_SUBJECTS).lower()} "
            f"#{rng.randint(1, 1_000_000)}"
        )
        yield Record(
            id=new_record_id(),
            content=content,
            timestamp=base_ms + i,
            status=rng.choices(statuses, weights=weights)[0],
        )


def _batches(records: Iterator[Record], batch_size: int) -> Iterator[List[Record]]:
    batch: List[Record] = []
    for record in records:
        batch.append(record)
        if len(batch) >= batch_size:
            yield batch
            batch = []
    if batch:
        yield batch


@app.command()
def main(
    rows: int = typer.Option(
        10_000,
        "--rows",
        "-r",
        help="Number of messages to generate.",
    ),
    batch_size: int = typer.Option(
        1_000,
        "--batch-size",
        "-b",
        help="Records inserted per transaction.",
    ),
    seed: int = typer.Option(
        42,
        "--seed",
        help="Deterministic RNG seed.",
    ),
    dsn: str | None = typer.Option(
        None,
        "--dsn",
        help="Optional DSN override for Postgres.",
    ),
) -> None:
    """
    Generate synthetic messages and insert them in batches.
    """
    start = time.perf_counter()
    typer.echo(f"Seeding {rows:,} messages (batch={batch_size}, seed={seed})")
    loaded = 0
    with PostgresStore(dsn_override=dsn) as store:
        store.ensure_schema()
        for batch in _batches(_generate_records(rows, seed), batch_size):
            loaded += len(store.insert_many(batch))
    duration = time.perf_counter() - start
    typer.echo(
        f"Loaded {loaded:,} messages in {duration:.2f}s "
        f"({loaded / duration if duration else 0:,.0f} rows/s)."
    )


if __name__ == "__main__":
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)
