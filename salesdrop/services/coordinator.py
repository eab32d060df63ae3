from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from enum import Enum
from typing import Any

import psycopg2

from ..coercion.values import coerce_date, coerce_numeric, is_blank, is_iso_date, render_text
from ..config.registry import get_table_schema
from ..db.connection import open_connection
from ..db.provision import ensure_table, fetch_column_types
from ..db.row_insert import RowInsertError, insert_row
from ..db.statements import build_window_delete
from ..logging.error_log import ErrorLogBuffer
from ..models.config_models import AppConfig
from ..models.error_record import ErrorRecord
from ..models.load_outcome import LoadOutcome, LoadWindow
from ..models.record import BoundValue, Record, TypedRow, ValueKind
from ..models.table_schema import LoadWindowSpec, TableSchema
from .resolver import resolve_connection

"""Load Coordinator: idempotent replace-by-window load of one record batch.

States:
    Resolving -> Provisioning -> ComputingWindow -> Deleting (optional)
    -> Inserting -> Committed, with RolledBack reachable from any state.

The delete of the overlapping window and every insert share one transaction.
Row failures are isolated (savepoint per row) and counted; a failure of the
delete, of the savepoint machinery or of COMMIT rolls everything back and
fails the whole file.
"""

logger = logging.getLogger(__name__)

# information_schema.columns.data_type の数値系
NUMERIC_TYPES = frozenset(
    {"smallint", "integer", "bigint", "numeric", "decimal", "real", "double precision", "money"}
)
_NUMERIC_PREFIXES = ("int", "numeric", "decimal", "float")


class LoadPhase(Enum):
    RESOLVING = "resolving"
    PROVISIONING = "provisioning"
    COMPUTING_WINDOW = "computing_window"
    DELETING = "deleting"
    INSERTING = "inserting"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class TransactionError(Exception):
    """Delete/commit failure: the load transaction was rolled back as a whole."""

    def __init__(self, message: str, outcome: LoadOutcome | None = None, phase: LoadPhase | None = None) -> None:
        super().__init__(message)
        self.outcome = outcome
        self.phase = phase


def is_numeric_type(data_type: str | None) -> bool:
    if not data_type:
        return False
    t = data_type.lower()
    return t in NUMERIC_TYPES or t.startswith(_NUMERIC_PREFIXES)


def _first_present(record: Record, candidates: Sequence[str]) -> Any:
    for col in candidates:
        val = record.values.get(col)
        if not is_blank(val):
            return val
    return None


def compute_window(records: Sequence[Record], spec: LoadWindowSpec | None) -> LoadWindow | None:
    """Scan the batch for its date range and distinct store values.

    Only values that normalize to an ISO date take part in the range; the
    window is None when no record has one (insert-only load).
    """
    if spec is None:
        return None
    min_date: str | None = None
    max_date: str | None = None
    stores: dict[str, None] = {}  # 挿入順を保持した重複排除
    unresolved = 0

    for rec in records:
        raw_date = _first_present(rec, spec.date_sources)
        if raw_date is not None:
            normalized = coerce_date(raw_date)
            if is_iso_date(normalized):
                if min_date is None or normalized < min_date:
                    min_date = normalized
                if max_date is None or normalized > max_date:
                    max_date = normalized
            else:
                unresolved += 1
        raw_store = _first_present(rec, spec.store_sources)
        if raw_store is not None:
            # 挿入時と同じ表現で保持 (前後の空白も含めて一致させる)
            stores.setdefault(render_text(raw_store), None)

    if unresolved:
        logger.warning(
            "%d row(s) have date values that could not be normalized; they do not widen the delete window",
            unresolved,
        )
    if min_date is None or max_date is None:
        return None
    return LoadWindow(min_date=min_date, max_date=max_date, stores=tuple(stores))


def bind_value(column: str, raw: Any, schema: TableSchema, column_types: dict[str, str]) -> BoundValue:
    """Three-tier classification: schema numeric -> schema date -> live numeric type -> text."""
    if is_blank(raw):
        return BoundValue.null()
    kind = schema.column_kind(column)
    if kind == "numeric":
        return BoundValue(ValueKind.NUMERIC, coerce_numeric(raw))
    if kind == "date":
        return BoundValue(ValueKind.DATE, coerce_date(raw))
    if is_numeric_type(column_types.get(column)):
        return BoundValue(ValueKind.NUMERIC, coerce_numeric(raw))
    return BoundValue(ValueKind.TEXT, render_text(raw))


def bind_row(record: Record, schema: TableSchema, column_types: dict[str, str]) -> TypedRow:
    """Keep only destination columns, in record order, with coerced values."""
    return {
        col: bind_value(col, val, schema, column_types)
        for col, val in record.values.items()
        if col in column_types
    }


class LoadCoordinator:
    """Runs one (file, destination) load.

    Parameters
    ----------
    config: application config (routes, connections, registry path, retry policy)
    connect: DB-API connect callable (psycopg2.connect by default)
    sleep: retry sleep override (tests)
    error_log: row/file error sink (JSON Lines)
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        connect: Callable[..., Any] | None = None,
        sleep: Callable[[float], None] | None = None,
        error_log: ErrorLogBuffer | None = None,
    ) -> None:
        self.config = config
        self._connect = connect or psycopg2.connect
        self._sleep = sleep
        self.error_log = error_log

    def load(self, file_name: str, records: Sequence[Record], table: str) -> LoadOutcome:
        """Delete the batch's window and insert every record in one transaction.

        Raises:
            ConfigurationError: no schema / no enabled connection for table
            TransientConnectionError: connection retries exhausted
            TransactionError: delete or commit failed; nothing was persisted
        """
        phase = LoadPhase.RESOLVING
        conn_cfg = resolve_connection(table, self.config)
        schema = get_table_schema(self.config.schema_registry, table)
        outcome = LoadOutcome(
            table=table,
            connection=conn_cfg.name,
            max_errors=self.config.max_reported_errors,
        )
        logger.info("Uploading %s to %s (table %s)...", file_name, conn_cfg.name, table)

        with open_connection(conn_cfg, self.config.retry, connect=self._connect, sleep=self._sleep) as conn:
            cursor = conn.cursor()
            try:
                phase = LoadPhase.PROVISIONING
                outcome.table_created = ensure_table(cursor, schema)
                if outcome.table_created:
                    logger.info("Table %s was created", table)
                column_types = fetch_column_types(cursor, table)
                if not column_types:
                    column_types = {c: t.lower() for c, t in schema.columns.items()}

                phase = LoadPhase.COMPUTING_WINDOW
                mapped = [rec.renamed(schema.column_mapping) for rec in records]
                outcome.window = compute_window(mapped, schema.window)
                self._log_window(outcome)
                self._log_unknown_columns(mapped, column_types, table)

                try:
                    cursor.execute("BEGIN")
                    if outcome.window is not None and schema.window is not None:
                        phase = LoadPhase.DELETING
                        outcome.deleted_rows = self._delete_window(cursor, table, schema.window, outcome.window)
                    else:
                        logger.info("No date window found; insert-only append to %s", table)

                    phase = LoadPhase.INSERTING
                    for rec in mapped:
                        self._insert_one(cursor, file_name, table, rec, schema, column_types, outcome)

                    cursor.execute("COMMIT")
                    phase = LoadPhase.COMMITTED
                except Exception as e:
                    failed_phase = phase
                    phase = LoadPhase.ROLLED_BACK
                    try:
                        cursor.execute("ROLLBACK")
                    except Exception as rollback_e:
                        logger.error("rollback failed table=%s: %s", table, rollback_e)
                    logger.error(
                        "Transaction rolled back during %s (%d row(s) discarded): %s",
                        failed_phase.value,
                        outcome.success_count,
                        e,
                    )
                    raise TransactionError(
                        f"Load into {table} rolled back during {failed_phase.value}: {e}",
                        outcome=outcome,
                        phase=failed_phase,
                    ) from e
            finally:
                try:
                    cursor.close()
                except Exception:  # pragma: no cover
                    logger.debug("cursor close failed", exc_info=True)

        outcome.success = True
        logger.info(
            "Upload to %s completed: %d success, %d errors",
            conn_cfg.name,
            outcome.success_count,
            outcome.error_count,
        )
        return outcome

    def _log_window(self, outcome: LoadOutcome) -> None:
        window = outcome.window
        if window is None:
            logger.info("Date range: N/A to N/A")
            logger.info("Stores/Branches: N/A")
            return
        logger.info("Date range: %s", window.date_range)
        logger.info("Stores/Branches: %s", ", ".join(window.stores) if window.stores else "N/A")

    def _log_unknown_columns(self, records: Sequence[Record], column_types: dict[str, str], table: str) -> None:
        unknown: dict[str, None] = {}
        for rec in records:
            for col in rec.values:
                if col not in column_types:
                    unknown.setdefault(col, None)
        if unknown:
            logger.warning("Dropping columns not declared by %s: %s", table, ", ".join(unknown))

    def _delete_window(self, cursor: Any, table: str, spec: LoadWindowSpec, window: LoadWindow) -> int:
        with_stores = bool(window.stores) and spec.store_column is not None
        sql = build_window_delete(table, spec.date_column, spec.store_column, with_stores)
        params: tuple[Any, ...] = (window.min_date, window.max_date)
        if with_stores:
            params += (tuple(window.stores),)
            logger.info("Deleting data for stores: %s", ", ".join(window.stores))
        else:
            # 店舗で絞れない広範囲削除なので必ず WARN で残す
            logger.warning(
                "Deleting %s by date only (no store filter): %s",
                table,
                window.date_range,
            )
        cursor.execute(sql, params)
        deleted = cursor.rowcount if cursor.rowcount is not None and cursor.rowcount >= 0 else 0
        logger.info("Deleted %d existing rows", deleted)
        return deleted

    def _insert_one(
        self,
        cursor: Any,
        file_name: str,
        table: str,
        rec: Record,
        schema: TableSchema,
        column_types: dict[str, str],
        outcome: LoadOutcome,
    ) -> None:
        row = bind_row(rec, schema, column_types)
        if not row:
            self._row_failed(file_name, table, rec.row_number, f"no columns declared by {table}", outcome)
            return
        try:
            insert_row(cursor, table, rec.row_number, row)
        except RowInsertError as e:
            self._row_failed(file_name, table, e.row, e.message, outcome)
            return
        outcome.record_success()

    def _row_failed(self, file_name: str, table: str, row: int, message: str, outcome: LoadOutcome) -> None:
        outcome.record_error(row, message)
        logger.error("Row %d error: %s", row, message)
        if self.error_log is not None:
            self.error_log.append(ErrorRecord.create(file_name, table, row, "ROW_INSERT_ERROR", message))
