"""
Producer side of the pipeline: hand raw text payloads to the channel.
"""

from __future__ import annotations

from typing import Optional

from ingest.errors import PublishError
from ingest.infrastructure.channel import Channel
from ingest.metrics import MESSAGES_FAILED, MESSAGES_SENT, Counter, NoopCounter
from ingest.utils.logging import get_logger

log = get_logger(__name__)


class MessageProducer:
    """
    Publishes payloads to a single configured topic.

    Publishing is fire-and-forget: the call returns once the channel accepted
    the payload, not when a consumer stored it. Failures are raised as
    PublishError and are never retried here.
    """

    def __init__(
        self,
        channel: Channel,
        topic: str = "messages",
        counter: Optional[Counter] = None,
    ) -> None:
        self.channel = channel
        self.topic = topic
        self.counter = counter or NoopCounter()

    def publish(self, payload: str) -> None:
        """
        Publish `payload` verbatim (empty strings included).

        Raises
        ------
        PublishError
            If the channel rejects the payload; `cause` holds the original error.
        """
        log.info("Producing message", extra={"topic": self.topic, "length": len(payload)})
        try:
            self.channel.publish(self.topic, payload)
        except Exception as exc:  # noqa: BLE001
            self.counter.increment(MESSAGES_FAILED)
            log.error("Publish to topic '%s' failed: %s", self.topic, exc)
            raise PublishError(self.topic, exc) from exc
        self.counter.increment(MESSAGES_SENT)
        log.debug("Message sent successfully", extra={"topic": self.topic})


__all__ = ["MessageProducer"]
