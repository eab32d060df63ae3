from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from psycopg2.extensions import make_dsn

"""Config dataclasses for the drop-folder loader.

The loader (salesdrop.config.loader) builds one AppConfig at startup; it is
passed explicitly to every component instead of being read from module state.
"""

DEFAULT_EXTENSIONS = (".csv", ".xlsx")


@dataclass(frozen=True)
class ConnectionConfig:
    """A named downstream PostgreSQL connection."""
    name: str
    server: str
    database: str
    username: str | None = None
    password: str | None = None
    port: int = 5432
    enabled: bool = True
    password_env: str | None = None  # 環境変数名。設定されていれば password より優先

    def resolved_password(self) -> str | None:
        if self.password_env:
            env_value = os.getenv(self.password_env)
            if env_value:
                return env_value
        return self.password

    def dsn(self) -> str:
        # make_dsn が空白や引用符を含む値をクォートする。None のキーは省略される
        return make_dsn(
            host=self.server,
            port=self.port,
            dbname=self.database,
            user=self.username or None,
            password=self.resolved_password() or None,
        )


@dataclass(frozen=True)
class RouteConfig:
    """Binds a destination table to exactly one connection plus its detection hints."""
    table: str
    connection: str
    filename_hints: tuple[str, ...] = ()
    header_hints: tuple[str, ...] = ()


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry for connection establishment only."""
    max_attempts: int = 3
    delay_seconds: float = 5.0

    def backoff(self, attempt: int) -> float:
        # 固定間隔 (attempt 番号は将来の指数バックオフ用)
        return self.delay_seconds


@dataclass(frozen=True)
class WatchConfig:
    directory: Path
    processed_directory: Path
    failed_directory: Path
    enabled: bool = True
    extensions: tuple[str, ...] = DEFAULT_EXTENSIONS
    stability_seconds: float = 3.0
    poll_interval_seconds: float = 0.5
    lock_wait_max_seconds: float = 10.0
    lock_poll_seconds: float = 0.5
    settle_seconds: float = 1.0


@dataclass(frozen=True)
class AppConfig:
    """Root configuration object."""
    watch: WatchConfig
    schema_registry: Path
    connections: tuple[ConnectionConfig, ...]
    routes: tuple[RouteConfig, ...]
    default_table: str
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    log_directory: Path = Path("./logs")
    max_reported_errors: int = 10

    def route_for(self, table: str) -> RouteConfig | None:
        for route in self.routes:
            if route.table == table:
                return route
        return None

    def connection_named(self, name: str) -> ConnectionConfig | None:
        for conn in self.connections:
            if conn.name == name:
                return conn
        return None
