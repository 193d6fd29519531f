"""
Consumer side of the pipeline: turn delivered payloads into stored records.

The channel invokes `on_deliver` once per payload. Storage failures are
logged and counted but never raised back into the channel, so a failed
insert acknowledges the delivery and the payload is dropped instead of
being redelivered in a loop.
"""

from __future__ import annotations

import threading
from typing import Callable, Optional

from ingest.domain.models import MessageStatus, Record, new_record_id, now_millis
from ingest.infrastructure.channel import Channel
from ingest.metrics import MESSAGES_CONSUME_FAILED, MESSAGES_CONSUMED, Counter, NoopCounter
from ingest.store.abstract import MessageStore
from ingest.utils.logging import get_logger

log = get_logger(__name__)


class MessageConsumer:
    """
    Transforms each payload into a PROCESSED record and inserts it.

    Parameters
    ----------
    store : MessageStore
        Destination store.
    counter : Counter | None
        Receives `messages.consumed` / `messages.consume_failed` increments.
    clock : callable | None
        Returns epoch milliseconds for the record timestamp.
    id_factory : callable | None
        Returns a fresh record id; defaults to a random UUID4 string.
    """

    def __init__(
        self,
        store: MessageStore,
        counter: Optional[Counter] = None,
        clock: Optional[Callable[[], int]] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        self.store = store
        self.counter = counter or NoopCounter()
        self._clock = clock or now_millis
        self._id_factory = id_factory or new_record_id
        self._lock = threading.Lock()
        self._processed = 0
        self._failed = 0
        self._last_timestamp = 0

    @property
    def processed_count(self) -> int:
        with self._lock:
            return self._processed

    @property
    def failed_count(self) -> int:
        with self._lock:
            return self._failed

    def _next_timestamp(self) -> int:
        # Never step backwards, even if the wall clock does
        now = self._clock()
        with self._lock:
            self._last_timestamp = max(self._last_timestamp, now)
            return self._last_timestamp

    def to_record(self, payload: str) -> Record:
        return Record(
            id=self._id_factory(),
            content=payload,
            timestamp=self._next_timestamp(),
            status=MessageStatus.PROCESSED,
        )

    def on_deliver(self, payload: str) -> None:
        try:
            record = self.to_record(payload)
            stored = self.store.insert(record)
        except Exception:  # noqa: BLE001
            with self._lock:
                self._failed += 1
            self.counter.increment(MESSAGES_CONSUME_FAILED)
            log.exception("Error consuming message", extra={"length": len(payload or "")})
            return

        with self._lock:
            self._processed += 1
            processed = self._processed
        self.counter.increment(MESSAGES_CONSUMED)
        log.info(
            "Message consumed and stored",
            extra={"record_id": stored.id, "processed": processed},
        )

    def subscribe(self, channel: Channel, topic: str = "messages") -> None:
        """Bind `on_deliver` to `topic` on `channel`."""
        channel.subscribe(topic, self.on_deliver)
        log.info("Consumer subscribed", extra={"topic": topic})


__all__ = ["MessageConsumer"]
