from __future__ import annotations

from collections.abc import Sequence

"""SQL text builders (PostgreSQL, psycopg2 %s paramstyle).

Identifiers are always double-quoted so mixed-case and spaced column names
("No. Faktur") survive; values are always passed as parameters.
"""

TABLE_EXISTS_SQL = (
    "SELECT COUNT(*) FROM information_schema.tables "
    "WHERE table_schema = current_schema() AND table_name = %s"
)
COLUMN_TYPES_SQL = (
    "SELECT column_name, data_type FROM information_schema.columns "
    "WHERE table_schema = current_schema() AND table_name = %s ORDER BY ordinal_position"
)
ROW_SAVEPOINT = "salesdrop_row"


def quote_ident(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def index_name(column: str) -> str:
    return f"idx_{column.lower()}"


def build_create_table(table: str, columns: dict[str, str], primary_key: Sequence[str] = ()) -> str:
    defs = [f"{quote_ident(name)} {sql_type}" for name, sql_type in columns.items()]
    if primary_key:
        pk_cols = ", ".join(quote_ident(c) for c in primary_key)
        defs.append(f"PRIMARY KEY ({pk_cols})")
    body = ",\n  ".join(defs)
    return f"CREATE TABLE {quote_ident(table)} (\n  {body}\n)"


def build_create_index(table: str, column: str) -> str:
    return f"CREATE INDEX {quote_ident(index_name(column))} ON {quote_ident(table)} ({quote_ident(column)})"


def build_window_delete(table: str, date_column: str, store_column: str | None, with_stores: bool) -> str:
    sql = f"DELETE FROM {quote_ident(table)} WHERE {quote_ident(date_column)} BETWEEN %s AND %s"
    if with_stores and store_column:
        # psycopg2 は tuple を IN (...) に展開する
        sql += f" AND {quote_ident(store_column)} IN %s"
    return sql


def build_insert(table: str, columns: Sequence[str]) -> str:
    cols_sql = ", ".join(quote_ident(c) for c in columns)
    placeholders = ", ".join(["%s"] * len(columns))
    return f"INSERT INTO {quote_ident(table)} ({cols_sql}) VALUES ({placeholders})"
