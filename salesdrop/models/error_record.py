from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for the JSON Lines error log.

row=-1 marks a file-level error where no specific data row is involved
(parse failure, connection failure, rolled-back transaction).
"""

__all__ = [
    "ErrorRecord",
]


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        file: dropped file name
        table: destination table ("" when not yet resolved)
        row: 1-based data row, or -1 for file-level errors
        error_type: UPPER_SNAKE_CASE classification
        message: driver or pipeline error message
    """
    timestamp: str
    file: str
    table: str
    row: int
    error_type: str
    message: str

    @staticmethod
    def create(file: str, table: str | None, row: int, error_type: str, message: str) -> ErrorRecord:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            file=file,
            table=table or "",
            row=row,
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        # 追加キー阻止: dataclass -> dict して json.dumps
        return json.dumps(asdict(self), ensure_ascii=False)
