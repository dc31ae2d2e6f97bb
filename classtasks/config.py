"""Configuration read from a .env file, a YAML file and the environment."""

from __future__ import annotations

import argparse
import os
import re
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Callable, Mapping, Sequence

import yaml
from dotenv import load_dotenv


class ConfigError(Exception):
    """Raised when the configuration cannot be found or parsed."""


@dataclass
class ServerConfig:
    port: str = "8090"
    read_timeout: timedelta = timedelta(seconds=30)
    write_timeout: timedelta = timedelta(seconds=30)
    shutdown_timeout: timedelta = timedelta(seconds=10)


@dataclass
class PostgresConfig:
    postgres_url: str


@dataclass
class KafkaConfig:
    brokers: list[str]
    topic: str


@dataclass
class Config:
    postgres: PostgresConfig
    kafka: KafkaConfig
    server: ServerConfig = field(default_factory=ServerConfig)
    env: str = "local"


_UNIT_MICROSECONDS = {
    "ns": 0.001,
    "us": 1.0,
    "µs": 1.0,
    "μs": 1.0,
    "ms": 1_000.0,
    "s": 1_000_000.0,
    "m": 60_000_000.0,
    "h": 3_600_000_000.0,
}
_NUMBER = r"(?:\d+\.?\d*|\.\d+)"
_UNIT = r"(?:ns|us|µs|μs|ms|h|m|s)"
_DURATION = re.compile(rf"[+-]?(?:{_NUMBER}{_UNIT})+")
_PART = re.compile(rf"({_NUMBER})({_UNIT})")


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as "30s", "1m30s" or "500ms"."""
    if text in ("0", "+0", "-0"):
        return timedelta(0)
    if not _DURATION.fullmatch(text):
        raise ConfigError(f'invalid duration "{text}"')
    total = sum(float(num) * _UNIT_MICROSECONDS[unit] for num, unit in _PART.findall(text))
    return timedelta(microseconds=-total if text.startswith("-") else total)


def _to_str(value: Any, label: str) -> str:
    if isinstance(value, (dict, list)):
        raise ConfigError(f'field "{label}" must be a scalar')
    return str(value)


def _to_duration(value: Any, label: str) -> timedelta:
    if isinstance(value, timedelta):
        return value
    try:
        return parse_duration(_to_str(value, label))
    except ConfigError as err:
        raise ConfigError(f'field "{label}": {err}') from err


def _to_list(value: Any, label: str) -> list[str]:
    if not isinstance(value, list):
        raise ConfigError(f'field "{label}" must be a list')
    return [_to_str(item, label) for item in value]


def _setting(
    section: Mapping[str, Any],
    key: str,
    convert: Callable[[Any, str], Any],
    *,
    environ: Mapping[str, str],
    label: str,
    env_name: str | None = None,
    default: Any = None,
    required: bool = False,
) -> Any:
    raw = section.get(key)
    value = convert(raw, label) if raw is not None else None
    if env_name is not None and env_name in environ:
        value = convert(environ[env_name], label)
    elif not value and default is not None:
        value = convert(default, label)
    if required and not value:
        raise ConfigError(f'field "{label}" is required but the value is not provided')
    return value


def _section(raw: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = raw.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigError(f'section "{name}" must be a mapping')
    return section


def _read_config(path: Path, environ: Mapping[str, str]) -> Config:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as err:
        raise ConfigError(str(err)) from err
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError("config file must hold a mapping")

    server = _section(raw, "server")
    postgres = _section(raw, "postgres")
    kafka = _section(raw, "kafka")

    return Config(
        env=_setting(raw, "env", _to_str, environ=environ, label="env", env_name="ENV", default="local"),
        postgres=PostgresConfig(
            postgres_url=_setting(
                postgres, "postgresurl", _to_str, environ=environ,
                label="postgres.postgres_url", env_name="POSTGRES_URL", required=True,
            ),
        ),
        server=ServerConfig(
            port=_setting(server, "port", _to_str, environ=environ, label="server.port",
                          env_name="PORT", default="8090"),
            read_timeout=_setting(server, "read_timeout", _to_duration, environ=environ,
                                  label="server.read_timeout", env_name="READ_TIMEOUT", default="30s"),
            write_timeout=_setting(server, "wtite_timeout", _to_duration, environ=environ,
                                   label="server.write_timeout", env_name="WRITE_TIMEOUT", default="30s"),
            shutdown_timeout=_setting(server, "shutdown_timeout", _to_duration, environ=environ,
                                      label="server.shutdown_timeout", env_name="SHUTDOWN_TIMEOUT",
                                      default="10s"),
        ),
        kafka=KafkaConfig(
            brokers=_setting(kafka, "brokers", _to_list, environ=environ, label="kafka.brokers", required=True),
            topic=_setting(kafka, "topic", _to_str, environ=environ, label="kafka.topic", required=True),
        ),
    )


def _fetch_config_paths(argv: Sequence[str] | None) -> tuple[str, str]:
    parser = argparse.ArgumentParser(add_help=True)
    parser.add_argument("-env", "--env", dest="env_path", default="", help="application configuration file")
    parser.add_argument("-config", "--config", dest="config_path", default="", help="path to config file")
    args = parser.parse_args(argv)
    env_path = args.env_path or os.environ.get("ENV_PATH", "")
    config_path = args.config_path or os.environ.get("CONFIG_PATH", "")
    return env_path, config_path


def load_config(argv: Sequence[str] | None = None) -> Config:
    """Locate, load and parse the configuration; command-line flags win over environment paths."""
    env_path, config_path = _fetch_config_paths(argv)
    if not env_path:
        raise ConfigError("'.env' file path is empty")
    if not config_path:
        raise ConfigError("config path is empty")
    if not Path(env_path).is_file():
        raise ConfigError("no .env file found")
    load_dotenv(env_path, override=False)
    if not Path(config_path).exists():
        raise ConfigError("config file does not exists: " + config_path)
    try:
        return _read_config(Path(config_path), os.environ)
    except ConfigError as err:
        raise ConfigError(f"can not read config and parse it: {err}") from err