from __future__ import annotations

from ..models.ingest_file import IngestFile
from ..models.processing_result import RunResult

"""SUMMARY line rendering.

Per file:
    SUMMARY file=<name> status=<success|failed> table=<T> connection=<C>
    success=<n> errors=<n> deleted=<n> range=<min to max|N/A> stores=<a,b|N/A>
Per one-shot run:
    SUMMARY files=<n>/<n> success=<n> failed=<n> rows=<n> row_errors=<n>
    elapsed_sec=<s> throughput_rps=<r>
"""


def _format_number(value: float) -> str:
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        # Format very small numbers to avoid scientific notation
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return f"{value:.3f}".rstrip("0").rstrip(".")


def render_file_line(result: IngestFile) -> str:
    outcome = result.outcome
    parts = [
        f"SUMMARY file={result.name}",
        f"status={result.status.value}",
        f"table={result.table or 'N/A'}",
    ]
    if outcome is not None:
        parts += [
            f"connection={outcome.connection}",
            f"success={outcome.success_count}",
            f"errors={outcome.error_count}",
            f"deleted={outcome.deleted_rows}",
            f"range={outcome.date_range or 'N/A'}",
            f"stores={','.join(outcome.stores) if outcome.stores else 'N/A'}",
        ]
    if result.error:
        parts.append(f"reason={result.error}")
    return " ".join(parts)


def render_summary_line(result: RunResult) -> str:
    """Render the run-level SUMMARY line.

    >>> from datetime import datetime, timezone
    >>> start = datetime(2025, 1, 1, 10, 0, 0, tzinfo=timezone.utc)
    >>> end = datetime(2025, 1, 1, 10, 0, 2, tzinfo=timezone.utc)
    >>> r = RunResult(success_files=1, failed_files=0, total_inserted_rows=1000,
    ...               total_failed_rows=0, start_time=start, end_time=end,
    ...               elapsed_seconds=2.0, throughput_rows_per_sec=500.0)
    >>> render_summary_line(r)
    'SUMMARY files=1/1 success=1 failed=0 rows=1000 row_errors=0 elapsed_sec=2 throughput_rps=500'
    """
    total = result.total_files
    return (
        f"SUMMARY files={total}/{total} "
        f"success={result.success_files} "
        f"failed={result.failed_files} "
        f"rows={result.total_inserted_rows} "
        f"row_errors={result.total_failed_rows} "
        f"elapsed_sec={_format_number(result.elapsed_seconds)} "
        f"throughput_rps={_format_number(result.throughput_rows_per_sec)}"
    )
