"""
Message channels connecting producers to consumers.

A channel carries raw text payloads on named topics. Two implementations:

- `InMemoryChannel` delivers synchronously on the publishing thread. Payloads
  published before anyone subscribes are held and handed to the first
  subscriber of that topic. Used by tests and the `demo` CLI command.
- `RedisStreamChannel` appends to a Redis Stream (XADD) and runs a consumer
  group listener (XREADGROUP/XACK) that pushes every payload into a handler.
  Delivery is at-least-once: entries left pending by a crashed listener are
  replayed on the next start.
"""

from __future__ import annotations

import threading
import time
from collections import defaultdict
from typing import Callable, DefaultDict, Dict, List, Optional, Protocol, runtime_checkable

import redis

from ingest.errors import ChannelError
from ingest.utils.logging import get_logger

log = get_logger(__name__)

PAYLOAD_FIELD = "payload"

Handler = Callable[[str], None]


@runtime_checkable
class Channel(Protocol):
    def publish(self, topic: str, payload: str) -> None:
        """Hand the payload to the broker; raise ChannelError on rejection."""
        ...

    def subscribe(self, topic: str, handler: Handler) -> None:
        """Register a handler invoked once per delivered payload."""
        ...


class InMemoryChannel:
    """Synchronous, in-process channel."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._handlers: DefaultDict[str, List[Handler]] = defaultdict(list)
        self._backlog: DefaultDict[str, List[str]] = defaultdict(list)
        self.published: Dict[str, int] = defaultdict(int)

    def publish(self, topic: str, payload: str) -> None:
        if not isinstance(payload, str):
            raise ChannelError(f"Cannot serialize payload of type {type(payload).__name__}")
        with self._lock:
            self.published[topic] += 1
            handlers = list(self._handlers.get(topic, ()))
            if not handlers:
                self._backlog[topic].append(payload)
                return
        for handler in handlers:
            self._deliver(topic, handler, payload)

    def subscribe(self, topic: str, handler: Handler) -> None:
        with self._lock:
            self._handlers[topic].append(handler)
            pending = self._backlog.pop(topic, [])
        for payload in pending:
            self._deliver(topic, handler, payload)

    def _deliver(self, topic: str, handler: Handler, payload: str) -> None:
        try:
            handler(payload)
        except Exception:  # noqa: BLE001
            log.exception("Handler failed for payload on topic '%s'", topic)


class RedisStreamChannel:
    """
    Redis Streams channel using a consumer group.

    Parameters
    ----------
    client : redis.Redis
        Client created with `decode_responses=True`.
    consumer_group : str
        Consumer group name shared by all listeners of a topic.
    consumer_name : str
        Unique name of this listener within the group.
    block_ms : int
        Maximum time a single XREADGROUP call blocks waiting for entries.
    batch_size : int
        Maximum entries fetched per XREADGROUP call.
    """

    def __init__(
        self,
        client: redis.Redis,
        consumer_group: str = "ingest-group",
        consumer_name: str = "ingest-consumer-1",
        block_ms: int = 1000,
        batch_size: int = 10,
        maxlen: Optional[int] = None,
    ) -> None:
        self.client = client
        self.consumer_group = consumer_group
        self.consumer_name = consumer_name
        self.block_ms = block_ms
        self.batch_size = batch_size
        self.maxlen = maxlen
        self._handlers: Dict[str, Handler] = {}
        self._stop = threading.Event()

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisStreamChannel":
        return cls(redis.Redis.from_url(url, decode_responses=True), **kwargs)

    def publish(self, topic: str, payload: str) -> None:
        try:
            entry_id = self.client.xadd(
                topic,
                {PAYLOAD_FIELD: payload},
                maxlen=self.maxlen,
                approximate=self.maxlen is not None,
            )
        except (redis.RedisError, TypeError) as exc:
            raise ChannelError(f"XADD to stream '{topic}' failed: {exc}") from exc
        log.debug("Appended entry %s to stream %s", entry_id, topic)

    def subscribe(self, topic: str, handler: Handler) -> None:
        self._handlers[topic] = handler

    def ensure_group(self, topic: str) -> None:
        """Ensure the consumer group exists, creating the stream if needed."""
        try:
            self.client.xgroup_create(topic, self.consumer_group, id="0", mkstream=True)
            log.info("Created consumer group %s on %s", self.consumer_group, topic)
        except redis.ResponseError as exc:
            if "BUSYGROUP" not in str(exc):
                raise ChannelError(f"Cannot create consumer group: {exc}") from exc
            log.debug("Consumer group %s already exists", self.consumer_group)

    def poll_once(self, topic: str, start_id: str = ">") -> int:
        """
        Read one batch and deliver it to the topic's handler.

        `start_id=">"` reads new entries; `"0"` replays entries already
        delivered to this consumer but never acknowledged. Each entry is
        acknowledged after its handler returns.

        Returns the number of entries delivered.
        """
        handler = self._handlers.get(topic)
        if handler is None:
            raise ChannelError(f"No handler subscribed to topic '{topic}'")

        response = self.client.xreadgroup(
            self.consumer_group,
            self.consumer_name,
            {topic: start_id},
            count=self.batch_size,
            block=None if start_id != ">" else self.block_ms,
        )
        delivered = 0
        for _stream, entries in response or []:
            for entry_id, fields in entries:
                if fields is None:
                    # Entry trimmed from the stream while pending
                    self.client.xack(topic, self.consumer_group, entry_id)
                    continue
                payload = fields.get(PAYLOAD_FIELD, "")
                try:
                    handler(payload)
                except Exception:  # noqa: BLE001
                    log.exception("Handler failed for entry %s on %s", entry_id, topic)
                self.client.xack(topic, self.consumer_group, entry_id)
                delivered += 1
        return delivered

    def listen(self, topic: str, max_idle_polls: Optional[int] = None) -> int:
        """
        Deliver entries until `stop()` is called.

        Pending entries are replayed first. With `max_idle_polls` set, the loop
        also returns after that many consecutive empty reads.

        Returns the total number of entries delivered.
        """
        self.ensure_group(topic)
        self._stop.clear()
        total = 0
        while True:
            replayed = self.poll_once(topic, start_id="0")
            total += replayed
            if replayed == 0:
                break
        log.info(
            "Listening on stream %s as %s/%s",
            topic,
            self.consumer_group,
            self.consumer_name,
        )
        idle = 0
        while not self._stop.is_set():
            try:
                delivered = self.poll_once(topic)
            except redis.ConnectionError as exc:
                log.error("Redis connection error: %s", exc)
                time.sleep(1)
                continue
            total += delivered
            idle = 0 if delivered else idle + 1
            if max_idle_polls is not None and idle >= max_idle_polls:
                break
        return total

    def stop(self) -> None:
        self._stop.set()


__all__ = ["Channel", "Handler", "InMemoryChannel", "RedisStreamChannel", "PAYLOAD_FIELD"]
