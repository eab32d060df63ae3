from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

from .load_outcome import LoadOutcome

"""IngestFile domain model and FileStatus enum.

IngestFile tracks one dropped file through the pipeline, from detection until
it is relocated to the processed or failed directory.
"""


class FileStatus(Enum):
    """pending → processing → (success | failed)"""
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class IngestFile:
    path: Path  # original location in the watch directory
    name: str
    status: FileStatus = FileStatus.PENDING
    table: str | None = None
    outcome: LoadOutcome | None = None
    moved_to: Path | None = None
    start_time: datetime | None = None  # UTC
    end_time: datetime | None = None  # UTC
    error: str | None = None

    @property
    def elapsed_seconds(self) -> float:
        if self.start_time is None or self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    @property
    def inserted_rows(self) -> int:
        return self.outcome.success_count if self.outcome else 0
