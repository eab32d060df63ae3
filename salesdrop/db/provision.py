from __future__ import annotations

import logging
from typing import Any

from ..models.table_schema import TableSchema
from .statements import (
    COLUMN_TYPES_SQL,
    TABLE_EXISTS_SQL,
    build_create_index,
    build_create_table,
    index_name,
)

"""Table Provisioner: create the destination table from its registry schema when absent."""

logger = logging.getLogger(__name__)


def table_exists(cursor: Any, table: str) -> bool:
    cursor.execute(TABLE_EXISTS_SQL, (table,))
    row = cursor.fetchone()
    return bool(row and row[0] > 0)


def create_table(cursor: Any, schema: TableSchema) -> None:
    logger.info("Creating table: %s", schema.name)
    cursor.execute(build_create_table(schema.name, schema.columns, schema.primary_key))
    logger.info("Table %s created successfully", schema.name)

    for col in schema.indexes:
        name = index_name(col)
        try:
            cursor.execute(build_create_index(schema.name, col))
            logger.info("Index %s created on %s", name, col)
        except Exception as e:
            # インデックス作成失敗はロード継続 (テーブル作成は成功扱い)
            logger.warning("Could not create index %s: %s", name, e)


def ensure_table(cursor: Any, schema: TableSchema) -> bool:
    """Create the table if missing. Returns True when it was newly created."""
    if table_exists(cursor, schema.name):
        return False
    create_table(cursor, schema)
    return True


def fetch_column_types(cursor: Any, table: str) -> dict[str, str]:
    """Live destination metadata: column name -> data_type (lower-cased)."""
    cursor.execute(COLUMN_TYPES_SQL, (table,))
    return {name: str(data_type).lower() for name, data_type in cursor.fetchall()}
