from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

"""LoadWindow / LoadOutcome models.

LoadOutcome is the per (file, destination connection) result returned by the
Load Coordinator. It is transient: logged and handed back to the caller, never
stored.
"""

__all__ = [
    "LoadWindow",
    "RowError",
    "LoadOutcome",
]


@dataclass(frozen=True)
class LoadWindow:
    """Inclusive ISO date range plus distinct store/branch values of a batch."""
    min_date: str
    max_date: str
    stores: tuple[str, ...] = ()

    @property
    def date_range(self) -> str:
        return f"{self.min_date} to {self.max_date}"


@dataclass(frozen=True)
class RowError:
    row: int  # 1-based data row index
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"row": self.row, "message": self.message}


@dataclass
class LoadOutcome:
    table: str
    connection: str
    success: bool = False
    success_count: int = 0
    error_count: int = 0
    window: LoadWindow | None = None
    deleted_rows: int = 0
    table_created: bool = False
    errors: list[RowError] = field(default_factory=list)
    max_errors: int = 10  # 保持するエラー件数上限 (件数自体は error_count に全件反映)

    @property
    def date_range(self) -> str | None:
        return self.window.date_range if self.window else None

    @property
    def stores(self) -> list[str]:
        return list(self.window.stores) if self.window else []

    @property
    def total_rows(self) -> int:
        return self.success_count + self.error_count

    def record_success(self) -> None:
        self.success_count += 1

    def record_error(self, row: int, message: str) -> None:
        self.error_count += 1
        if len(self.errors) < self.max_errors:
            self.errors.append(RowError(row=row, message=message))

    def to_dict(self) -> dict[str, Any]:
        """Render the outcome contract consumed by the watcher and upload callers."""
        return {
            "success": self.success,
            "successCount": self.success_count,
            "errorCount": self.error_count,
            "dateRange": self.date_range,
            "stores": self.stores,
            "errors": [e.to_dict() for e in self.errors],
        }
