from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

"""Record / BoundValue models for the drop-folder loader.

Record は Format Detector が生成する 1 データ行 (列名 -> 生値)。
BoundValue は型変換後の値で、INSERT パラメータの束縛方法をタグで表す。
"""

__all__ = [
    "Record",
    "ValueKind",
    "BoundValue",
    "TypedRow",
]


@dataclass(frozen=True)
class Record:
    """A single data row as produced by the Format Detector.

    row_number is the 1-based position of the row among data rows (header
    excluded). Row-level error messages reference it, so records keep their
    file order.
    """
    row_number: int  # 1..N
    values: dict[str, Any]  # source column name -> raw scalar (str / number / "")

    @property
    def columns(self) -> list[str]:
        return list(self.values.keys())

    def renamed(self, mapping: dict[str, str] | None) -> Record:
        """Return a copy with source columns renamed per mapping.

        Unmapped columns pass through unchanged; a renamed column wins over a
        pass-through column of the same destination name.
        """
        if not mapping:
            return self
        out: dict[str, Any] = {}
        for col, val in self.values.items():
            if col in mapping:
                continue
            out[col] = val
        for src, dest in mapping.items():
            if src in self.values:
                out[dest] = self.values[src]
        return Record(row_number=self.row_number, values=out)


class ValueKind(Enum):
    TEXT = "text"
    NUMERIC = "numeric"
    DATE = "date"
    NULL = "null"


@dataclass(frozen=True)
class BoundValue:
    """Coerced cell value tagged with how it is bound as a query parameter."""
    kind: ValueKind
    value: Any = None

    @classmethod
    def null(cls) -> BoundValue:
        return cls(ValueKind.NULL, None)

    @property
    def param(self) -> Any:
        # NULL は型に関わらず None (テキスト NULL) として束縛
        if self.kind is ValueKind.NULL:
            return None
        return self.value


# destination column -> bound value (insertion order == column order)
TypedRow = dict[str, BoundValue]
