from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.config_models import (
    DEFAULT_EXTENSIONS,
    AppConfig,
    ConnectionConfig,
    RetryPolicy,
    RouteConfig,
    WatchConfig,
)

"""Config loader.

Responsibilities:
- Load YAML config/import.yml
- Validate against config_schema.json (unknown keys rejected)
- Apply defaults and build the frozen AppConfig passed to every component
- Relative paths are resolved against the config file's parent's parent
  (config/import.yml -> project root), matching how the CLI is started
"""

SCHEMA_PATH = Path(__file__).with_name("config_schema.json")


class ConfigurationError(Exception):
    """Missing/invalid configuration. Fatal for the affected file or run, never retried."""


def _validate_config_schema(data: dict[str, Any], schema_path: Path = SCHEMA_PATH) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigurationError: schema file missing/invalid or validation failure
    """
    if not schema_path.exists():
        raise ConfigurationError(f"config schema not found: {schema_path}")
    try:
        schema = json.loads(schema_path.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigurationError(f"config validation failed: {e.message}") from e


def _resolve(base: Path, value: str) -> Path:
    p = Path(value)
    return p if p.is_absolute() else base / p


def _build_watch(raw: dict[str, Any], base: Path) -> WatchConfig:
    exts = tuple(e.lower() for e in raw.get("extensions", DEFAULT_EXTENSIONS))
    return WatchConfig(
        directory=_resolve(base, raw["directory"]),
        processed_directory=_resolve(base, raw["processed_directory"]),
        failed_directory=_resolve(base, raw["failed_directory"]),
        enabled=raw.get("enabled", True),
        extensions=exts,
        stability_seconds=float(raw.get("stability_seconds", 3.0)),
        poll_interval_seconds=float(raw.get("poll_interval_seconds", 0.5)),
        lock_wait_max_seconds=float(raw.get("lock_wait_max_seconds", 10.0)),
        lock_poll_seconds=float(raw.get("lock_poll_seconds", 0.5)),
        settle_seconds=float(raw.get("settle_seconds", 1.0)),
    )


def _build_connection(raw: dict[str, Any]) -> ConnectionConfig:
    port_raw = raw.get("port") or 5432
    try:
        port = int(port_raw)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"connection '{raw['name']}': invalid port {port_raw!r}") from e
    return ConnectionConfig(
        name=raw["name"],
        server=raw["server"],
        database=raw["database"],
        username=raw.get("username"),
        password=raw.get("password"),
        port=port,
        enabled=raw.get("enabled", True),
        password_env=raw.get("password_env"),
    )


def load_config(path: Path) -> AppConfig:
    if not path.exists():
        raise ConfigurationError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError("config root must be a mapping")

    _validate_config_schema(data)

    base = path.resolve().parent.parent
    connections = tuple(_build_connection(c) for c in data["connections"])
    names = [c.name for c in connections]
    if len(set(names)) != len(names):
        raise ConfigurationError(f"duplicate connection names: {names}")

    routes = tuple(
        RouteConfig(
            table=r["table"],
            connection=r["connection"],
            filename_hints=tuple(h.lower() for h in r.get("filename_hints", [])),
            header_hints=tuple(r.get("header_hints", [])),
        )
        for r in data["routes"]
    )
    tables = [r.table for r in routes]
    if len(set(tables)) != len(tables):
        # テーブル -> 接続は 1 対 1 で静的に束縛する
        raise ConfigurationError(f"table routed more than once: {tables}")
    if data["default_table"] not in tables:
        raise ConfigurationError(f"default_table '{data['default_table']}' has no route")

    retry_raw = data.get("retry", {})
    return AppConfig(
        watch=_build_watch(data["watch"], base),
        schema_registry=_resolve(base, data["schema_registry"]),
        connections=connections,
        routes=routes,
        default_table=data["default_table"],
        retry=RetryPolicy(
            max_attempts=int(retry_raw.get("max_attempts", 3)),
            delay_seconds=float(retry_raw.get("delay_seconds", 5.0)),
        ),
        log_directory=_resolve(base, data.get("log_directory", "./logs")),
        max_reported_errors=int(data.get("max_reported_errors", 10)),
    )
