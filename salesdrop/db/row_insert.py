from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from ..models.record import TypedRow
from .statements import ROW_SAVEPOINT, build_insert

"""Single-row INSERT with per-row failure isolation.

PostgreSQL aborts the whole transaction on the first failing statement, so
every row runs under a SAVEPOINT: a failing row is rolled back to the
savepoint and the surrounding load transaction stays usable.
"""

logger = logging.getLogger(__name__)


class RowInsertError(Exception):
    """A single row was rejected (constraint violation, type mismatch, ...)."""

    def __init__(self, row: int, message: str) -> None:
        super().__init__(message)
        self.row = row
        self.message = message


def insert_row(cursor: Any, table: str, row_number: int, row: TypedRow) -> None:
    """Insert one coerced row inside the caller's transaction.

    Raises:
        RowInsertError: the row was rejected; the transaction is still usable
    """
    columns: Sequence[str] = list(row.keys())
    params = [bv.param for bv in row.values()]
    sql = build_insert(table, columns)
    cursor.execute(f"SAVEPOINT {ROW_SAVEPOINT}")
    try:
        cursor.execute(sql, params)
    except Exception as e:
        # ここで ROLLBACK TO SAVEPOINT が失敗した場合はトランザクション自体が壊れているので呼び出し元へ伝播
        cursor.execute(f"ROLLBACK TO SAVEPOINT {ROW_SAVEPOINT}")
        cursor.execute(f"RELEASE SAVEPOINT {ROW_SAVEPOINT}")
        raise RowInsertError(row_number, str(e).strip()) from e
    cursor.execute(f"RELEASE SAVEPOINT {ROW_SAVEPOINT}")
