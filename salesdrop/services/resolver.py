from __future__ import annotations

import logging
from collections.abc import Sequence

from ..config.loader import ConfigurationError
from ..models.config_models import AppConfig, ConnectionConfig, RouteConfig
from ..models.record import Record

"""Destination Resolver: dropped file -> destination table -> its single connection.

Decision order (first match wins):
1. filename hints, routes in configured order (case-insensitive substring)
2. header hints of the first record, routes in configured order
3. AppConfig.default_table
"""

logger = logging.getLogger(__name__)


def _match_filename(file_name: str, routes: Sequence[RouteConfig]) -> str | None:
    lower = file_name.lower()
    for route in routes:
        if any(hint in lower for hint in route.filename_hints):
            return route.table
    return None


def _match_headers(records: Sequence[Record], routes: Sequence[RouteConfig]) -> str | None:
    if not records:
        return None
    columns = set(records[0].columns)
    for route in routes:
        if any(hint in columns for hint in route.header_hints):
            return route.table
    return None


def resolve_table(file_name: str, records: Sequence[Record], config: AppConfig) -> str:
    table = _match_filename(file_name, config.routes)
    if table is not None:
        logger.debug("table resolved by filename file=%s table=%s", file_name, table)
        return table
    table = _match_headers(records, config.routes)
    if table is not None:
        logger.debug("table resolved by headers file=%s table=%s", file_name, table)
        return table
    logger.debug("table defaulted file=%s table=%s", file_name, config.default_table)
    return config.default_table


def resolve_connection(table: str, config: AppConfig) -> ConnectionConfig:
    """Return the one enabled connection statically bound to table.

    Raises:
        ConfigurationError: no route, unknown connection name or disabled connection
    """
    route = config.route_for(table)
    if route is None:
        raise ConfigurationError(f"No route configured for table {table}")
    conn = config.connection_named(route.connection)
    if conn is None:
        raise ConfigurationError(f"Connection '{route.connection}' for {table} is not defined")
    if not conn.enabled:
        raise ConfigurationError(f"{route.connection} is not enabled for {table}")
    return conn
