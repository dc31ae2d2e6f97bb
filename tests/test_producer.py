import json
import logging
import uuid
from dataclasses import dataclass

import pytest

from classtasks.domain import (
    STUDENTS_GOT_MARK_EVENT_TYPE,
    Event,
    StudentsGotMarkEvent,
    TaskAssignedToClassEvent,
    UsersMark,
)
from classtasks.producer import EventProducer, ProducerError, encode_event


class FakeClient:
    def __init__(self, ping_error=None, send_error=None, close_error=None):
        self.ping_error = ping_error
        self.send_error = send_error
        self.close_error = close_error
        self.described = []
        self.sent = []
        self.closed = False

    def describe_topics(self, topics):
        self.described.append(list(topics))
        if self.ping_error:
            raise self.ping_error
        return {}

    def send(self, topic, key, value):
        if self.send_error:
            raise self.send_error
        self.sent.append((topic, key, value))

    def close(self):
        self.closed = True
        if self.close_error:
            raise self.close_error


@dataclass
class BrokenEvent(Event):
    @property
    def event_type(self):
        return "Broken"

    def to_dict(self):
        return {"value": object()}


def test_encode_event_is_compact_json():
    event = TaskAssignedToClassEvent("7A", "lesson", "task")
    assert encode_event(event) == b'{"class":"7A","lesson_id":"lesson","task_id":"task"}'


def test_encode_event_keeps_unicode():
    event = TaskAssignedToClassEvent("7Б", "l", "t")
    assert json.loads(encode_event(event).decode("utf-8"))["class"] == "7Б"


def test_encode_event_rejects_unserialisable():
    with pytest.raises(ProducerError):
        encode_event(BrokenEvent())


def test_producer_pings_topic():
    client = FakeClient()
    EventProducer(client, "tasks")
    assert client.described == [["tasks"]]


def test_producer_ping_failure():
    with pytest.raises(ProducerError, match="failed to ping broker: unreachable"):
        EventProducer(FakeClient(ping_error=RuntimeError("unreachable")), "tasks")


def test_produce_sends_keyed_message():
    client = FakeClient()
    user = str(uuid.uuid4())
    event = StudentsGotMarkEvent([UsersMark(user, 5)], "t", "l")
    EventProducer(client, "tasks").produce(event)
    (topic, key, value), = client.sent
    assert topic == "tasks"
    assert key == STUDENTS_GOT_MARK_EVENT_TYPE.encode()
    assert json.loads(value) == event.to_dict()


def test_produce_logs_delivery_failure(caplog):
    client = FakeClient(send_error=RuntimeError("queue full"))
    producer = EventProducer(client, "tasks", logging.getLogger("producer-test"))
    with caplog.at_level(logging.ERROR):
        producer.produce(TaskAssignedToClassEvent("7A", "l", "t"))
    assert "queue full" in caplog.text
    assert client.sent == []


def test_produce_encoding_failure_raises():
    client = FakeClient()
    with pytest.raises(ProducerError):
        EventProducer(client, "tasks").produce(BrokenEvent())
    assert client.sent == []


def test_close_closes_client():
    client = FakeClient()
    EventProducer(client, "tasks").close()
    assert client.closed is True


def test_close_failure_is_logged(caplog):
    client = FakeClient(close_error=RuntimeError("already closed"))
    with caplog.at_level(logging.ERROR):
        EventProducer(client, "tasks").close()
    assert "already closed" in caplog.text