"""HTTP server lifecycle, application wiring and the command entry point."""

from __future__ import annotations

import json
import logging
import signal
import sys
import threading
from datetime import datetime
from socketserver import ThreadingMixIn
from typing import Any, Sequence
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

from sqlalchemy.engine import Engine

from classtasks.config import Config, ConfigError, ServerConfig, load_config
from classtasks.handlers import create_app
from classtasks.producer import BrokerClient, EventProducer, ProducerError
from classtasks.repository import RepositoryError, SQLRepository, open_database
from classtasks.service import TaskService

_RECORD_ATTRIBUTES = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime"}


class _JsonFormatter(logging.Formatter):
    """One JSON object per record: time, level, msg and any extra fields."""

    def format(self, record: logging.LogRecord) -> str:
        body: dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created).astimezone().isoformat(),
            "level": record.levelname,
            "msg": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRIBUTES and not key.startswith("_"):
                body[key] = value if isinstance(value, (str, int, float, bool, type(None))) else str(value)
        if record.exc_info:
            body["exception"] = self.formatException(record.exc_info)
        return json.dumps(body, ensure_ascii=False)


def init_logger() -> logging.Logger:
    """A debug-level logger writing JSON lines to standard output."""
    logger = logging.getLogger("classtasks")
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_JsonFormatter())
    logger.addHandler(handler)
    return logger


class _ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    daemon_threads = True


class Server:
    """Serves the task API over HTTP until told to stop."""

    def __init__(
        self,
        config: ServerConfig,
        logger: logging.Logger,
        service: TaskService,
        host: str = "",
    ) -> None:
        self._logger = logger
        self._app = create_app(service, logger)
        self._host = host
        self._port = config.port
        self._read_timeout = config.read_timeout.total_seconds()
        self._shutdown_timeout = config.shutdown_timeout.total_seconds()
        self.address = f"{host}:{config.port}"
        self.started = threading.Event()
        self._httpd: WSGIServer | None = None
        self._thread: threading.Thread | None = None
        self._failure: BaseException | None = None

    @property
    def app(self) -> Any:
        """The web application being served."""
        return self._app

    @property
    def port(self) -> int | None:
        """The port actually listened on, or None when not listening."""
        return self._httpd.server_port if self._httpd is not None else None

    def _listen(self) -> WSGIServer:
        try:
            port = int(self._port)
        except ValueError:
            raise OSError(f"listen tcp {self.address}: unknown port") from None
        if not 0 <= port <= 65535:
            raise OSError(f"listen tcp {self.address}: invalid port")

        logger = self._logger
        timeout = self._read_timeout or None

        class _Handler(WSGIRequestHandler):
            def setup(self) -> None:
                self.timeout = timeout
                super().setup()

            def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
                logger.debug(format % args)

        return make_server(
            self._host, port, self._app, server_class=_ThreadingWSGIServer, handler_class=_Handler
        )

    def _serve(self, httpd: WSGIServer) -> None:
        try:
            httpd.serve_forever(poll_interval=0.2)
        except BaseException as err:  # noqa: BLE001 - reported back to run()
            self._failure = err

    def run(self, stop_event: threading.Event) -> None:
        """Listen and serve; return once ``stop_event`` is set, raise if serving fails."""
        self._logger.info("starting listening: %s", self.address)
        httpd = self._listen()
        self._httpd = httpd
        self._thread = threading.Thread(target=self._serve, args=(httpd,), name="http-server", daemon=True)
        self._thread.start()
        self.started.set()
        while not stop_event.wait(0.1):
            if not self._thread.is_alive():
                if self._failure is not None:
                    raise self._failure
                return

    def stop(self) -> None:
        """Shut the server down, waiting at most the configured shutdown timeout."""
        httpd, thread = self._httpd, self._thread
        if httpd is None:
            return
        if thread is not None and thread.is_alive():
            closer = threading.Thread(target=httpd.shutdown, daemon=True)
            closer.start()
            closer.join(self._shutdown_timeout or None)
            if closer.is_alive():
                self._logger.error("failed to shutdown HTTP Server", extra={"error": "shutdown timed out"})
        httpd.server_close()
        self._httpd = None
        self.started.clear()


class Application:
    """The running pieces of the service."""

    def __init__(self, server: Server, engine: Engine, producer: EventProducer) -> None:
        self.server = server
        self.engine = engine
        self.producer = producer

    def shutdown(self) -> None:
        self.server.stop()
        self.engine.dispose()


def init_app(config: Config, logger: logging.Logger, broker_client: BrokerClient) -> Application:
    """Connect to the database and the broker and build the HTTP server."""
    engine = open_database(config.postgres.postgres_url)
    producer = EventProducer(broker_client, config.kafka.topic, logger)
    service = TaskService(logger, SQLRepository(engine), producer)
    server = Server(config.server, logger, service)
    return Application(server, engine, producer)


class _LoggingBroker:
    """Broker client that records every message in the log."""

    def __init__(self, logger: logging.Logger, brokers: Sequence[str]) -> None:
        self._logger = logger
        self._brokers = list(brokers)

    def describe_topics(self, topics: Sequence[str]) -> object:
        return {topic: self._brokers for topic in topics}

    def send(self, topic: str, key: bytes, value: bytes) -> None:
        self._logger.info(
            "event", extra={"topic": topic, "key": key.decode("utf-8"), "value": value.decode("utf-8")}
        )

    def close(self) -> None:
        self._logger.debug("broker closed")


def main(argv: Sequence[str] | None = None) -> int:
    """Run the service until SIGINT or SIGTERM; return the exit status."""
    try:
        config = load_config(argv)
    except ConfigError as err:
        print(err, file=sys.stderr)
        return 1

    logger = init_logger()
    try:
        application = init_app(config, logger, _LoggingBroker(logger, config.kafka.brokers))
    except (RepositoryError, ProducerError) as err:
        logger.error("bad configuration", extra={"error": str(err)})
        return 1

    stop = threading.Event()
    reason: list[str] = []

    def on_signal(signum: int, _frame: Any) -> None:
        name = signal.Signals(signum).name
        logger.info("Captured signal", extra={"signal": name})
        reason.append(f"captured signal: {name}")
        stop.set()

    previous: dict[int, Any] = {}
    if threading.current_thread() is threading.main_thread():
        for signum in (signal.SIGINT, signal.SIGTERM):
            previous[signum] = signal.signal(signum, on_signal)

    try:
        application.server.run(stop)
    except Exception as err:  # noqa: BLE001 - reported in the shutdown message
        reason.append(str(err))
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)
        application.shutdown()

    logger.info("Gracefully shutting down the servers", extra={"error": reason[0] if reason else ""})
    return 0