import json
import logging
import threading
import urllib.request
import uuid
from datetime import timedelta

import pytest

from classtasks.config import Config, KafkaConfig, PostgresConfig, ServerConfig
from classtasks.domain import Task
from classtasks.producer import ProducerError
from classtasks.repository import RepositoryError, create_schema
from classtasks.responses import tasks_response
from classtasks.server import Application, Server, init_app, init_logger, main


class FakeService:
    def __init__(self, tasks):
        self.tasks = tasks

    def get_tasks(self):
        return self.tasks


class FakeBroker:
    def __init__(self, fail=False):
        self.fail = fail
        self.described = []
        self.sent = []

    def describe_topics(self, topics):
        if self.fail:
            raise ConnectionError("no brokers")
        self.described.append(list(topics))
        return {}

    def send(self, topic, key, value):
        self.sent.append((topic, key, value))

    def close(self):
        pass


def _config(url, port="0"):
    return Config(
        postgres=PostgresConfig(url),
        kafka=KafkaConfig(["localhost:9092"], "tasks"),
        server=ServerConfig(port=port, shutdown_timeout=timedelta(seconds=2)),
    )


def _start(server):
    stop = threading.Event()
    thread = threading.Thread(target=server.run, args=(stop,), daemon=True)
    thread.start()
    assert server.started.wait(5)
    return stop, thread


def test_init_logger_writes_json_lines(capsys):
    logger = init_logger()
    logger.error("bad configuration", extra={"error": "boom"})
    line = capsys.readouterr().out.strip().splitlines()[-1]
    record = json.loads(line)
    assert record["msg"] == "bad configuration"
    assert record["level"] == "ERROR"
    assert record["error"] == "boom"
    assert logger.level == logging.DEBUG


def test_server_serves_until_stopped():
    task = Task(uuid.uuid4(), "read chapter one")
    server = Server(ServerConfig(port="0"), logging.getLogger("test"), FakeService([task]), host="127.0.0.1")
    stop, thread = _start(server)
    try:
        url = f"http://127.0.0.1:{server.port}/api/v1/task/all"
        with urllib.request.urlopen(url, timeout=5) as reply:
            status = reply.status
            body = json.loads(reply.read())
    finally:
        stop.set()
        thread.join(5)
        server.stop()
    assert status == 200
    assert body == tasks_response([task])
    assert not thread.is_alive()
    assert server.port is None


def test_server_rejects_unknown_port():
    server = Server(ServerConfig(port="notaport"), logging.getLogger("test"), FakeService([]))
    with pytest.raises(OSError):
        server.run(threading.Event())
    assert server.port is None


def test_server_address_uses_port():
    server = Server(ServerConfig(port="8090"), logging.getLogger("test"), FakeService([]))
    assert server.address == ":8090"


def test_init_app_checks_topic():
    broker = FakeBroker()
    application = init_app(_config("sqlite://"), logging.getLogger("test"), broker)
    try:
        assert isinstance(application, Application)
        assert broker.described == [["tasks"]]
        assert application.server.address == ":0"
    finally:
        application.shutdown()
    assert application.server.port is None


def test_init_app_broker_failure():
    with pytest.raises(ProducerError):
        init_app(_config("sqlite://"), logging.getLogger("test"), FakeBroker(fail=True))


def test_init_app_database_failure(tmp_path):
    url = f"sqlite:///{tmp_path}/missing/db.sqlite"
    with pytest.raises(RepositoryError):
        init_app(_config(url), logging.getLogger("test"), FakeBroker())


def test_application_round_trip(tmp_path):
    application = init_app(_config(f"sqlite:///{tmp_path}/tasks.db"), logging.getLogger("test"), FakeBroker())
    create_schema(application.engine)
    server = application.server
    server._host = "127.0.0.1"
    stop, thread = _start(server)
    try:
        base = f"http://127.0.0.1:{server.port}/api/v1/task"
        request = urllib.request.Request(
            base,
            data=json.dumps({"payload": "solve problem 3"}).encode(),
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        with urllib.request.urlopen(request, timeout=5) as reply:
            created_status = reply.status
            task_id = json.loads(reply.read())["id"]
        with urllib.request.urlopen(f"{base}/{task_id}", timeout=5) as reply:
            fetched = json.loads(reply.read())
    finally:
        stop.set()
        thread.join(5)
        application.shutdown()
    assert created_status == 201
    assert fetched == {"id": task_id, "payload": "solve problem 3"}


def test_main_without_env_path(monkeypatch, capsys):
    monkeypatch.delenv("ENV_PATH", raising=False)
    monkeypatch.delenv("CONFIG_PATH", raising=False)
    assert main([]) == 1
    assert "'.env' file path is empty" in capsys.readouterr().err


def test_main_bad_database(tmp_path, monkeypatch, capsys):
    env_file = tmp_path / ".env"
    env_file.write_text("# nothing here\n", encoding="utf-8")
    config_file = tmp_path / "config.yaml"
    config_file.write_text("kafka:\n  brokers: [localhost:9092]\n  topic: tasks\n", encoding="utf-8")
    monkeypatch.setenv("POSTGRES_URL", f"sqlite:///{tmp_path}/missing/db.sqlite")
    status = main(["-env", str(env_file), "-config", str(config_file)])
    assert status == 1
    records = [json.loads(line) for line in capsys.readouterr().out.strip().splitlines()]
    assert records[-1]["msg"] == "bad configuration"