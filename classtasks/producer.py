"""Publishing domain events as JSON messages to a broker topic."""

from __future__ import annotations

import json
import logging
from typing import Protocol, Sequence

from classtasks.domain import Event


class ProducerError(Exception):
    """Raised when the broker cannot be reached or an event cannot be encoded."""


class BrokerClient(Protocol):
    """The operations the producer needs from a message broker."""

    def describe_topics(self, topics: Sequence[str]) -> object: ...

    def send(self, topic: str, key: bytes, value: bytes) -> None: ...

    def close(self) -> None: ...


def encode_event(event: Event) -> bytes:
    """Serialise an event body as compact UTF-8 JSON."""
    try:
        return json.dumps(event.to_dict(), separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    except (TypeError, ValueError) as err:
        raise ProducerError(f"cannot encode event: {err}") from err


class EventProducer:
    """Sends events to one topic, keyed by event type.

    The topic is checked when the producer is created; delivery failures are logged.
    """

    def __init__(self, client: BrokerClient, topic: str, logger: logging.Logger | None = None) -> None:
        try:
            client.describe_topics([topic])
        except Exception as err:
            raise ProducerError(f"failed to ping broker: {err}") from err
        self._client = client
        self._topic = topic
        self._logger = logger or logging.getLogger(__name__)

    def produce(self, event: Event) -> None:
        value = encode_event(event)
        try:
            self._client.send(self._topic, event.event_type.encode("utf-8"), value)
        except Exception as err:  # noqa: BLE001 - delivery failures are reported through the log
            self._logger.error("producer error: %s", err)

    def close(self) -> None:
        try:
            self._client.close()
        except Exception as err:  # noqa: BLE001 - closing is best effort
            self._logger.error("broker close failed: %s", err)