from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

"""Run-level result models (one-shot mode).

Aggregates per-file results for the SUMMARY line printed when the CLI is
started with --once.
"""


@dataclass(frozen=True)
class FileStat:
    file_name: str
    status: str  # success/failed
    table: str | None
    inserted_rows: int
    failed_rows: int
    elapsed_seconds: float


@dataclass(frozen=True)
class RunResult:
    success_files: int
    failed_files: int
    total_inserted_rows: int
    total_failed_rows: int
    start_time: datetime
    end_time: datetime
    elapsed_seconds: float
    throughput_rows_per_sec: float
    file_stats: list[FileStat] | None = None

    @property
    def total_files(self) -> int:
        return self.success_files + self.failed_files
