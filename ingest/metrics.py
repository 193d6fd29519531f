"""
Injected counters for the producer and consumer.

Producers and consumers receive a `Counter` at construction time instead of
reaching for a global registry, so tests can pass a recording counter and
production wiring can pass whatever exporter it likes.
"""

from __future__ import annotations

import threading
from collections import Counter as _Tally
from typing import Dict, Protocol, runtime_checkable

MESSAGES_SENT = "messages.sent"
MESSAGES_FAILED = "messages.failed"
MESSAGES_CONSUMED = "messages.consumed"
MESSAGES_CONSUME_FAILED = "messages.consume_failed"


@runtime_checkable
class Counter(Protocol):
    def increment(self, name: str) -> None:
        ...


class NoopCounter:
    """Counter that discards every increment."""

    def increment(self, name: str) -> None:
        del name


class InMemoryCounter:
    """Thread-safe counter keeping totals per metric name."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counts: _Tally[str] = _Tally()

    def increment(self, name: str) -> None:
        with self._lock:
            self._counts[name] += 1

    def get(self, name: str) -> int:
        with self._lock:
            return self._counts[name]

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._counts)


__all__ = [
    "Counter",
    "NoopCounter",
    "InMemoryCounter",
    "MESSAGES_SENT",
    "MESSAGES_FAILED",
    "MESSAGES_CONSUMED",
    "MESSAGES_CONSUME_FAILED",
]
