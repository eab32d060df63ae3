from __future__ import annotations

from dataclasses import dataclass, field

"""TableSchema domain model (Schema Registry entries).

One TableSchema per destination table. Loaded from the registry file for each
load and treated as read-only for the duration of that load.
"""

__all__ = [
    "LoadWindowSpec",
    "TableSchema",
]


@dataclass(frozen=True)
class LoadWindowSpec:
    """Which destination columns scope the pre-insert delete for a table.

    date_column / store_column are the columns used in the DELETE predicate.
    The candidate tuples are tried in order per record after column renaming;
    the first present non-empty value wins.
    """
    date_column: str
    store_column: str | None = None
    date_candidates: tuple[str, ...] = ()
    store_candidates: tuple[str, ...] = ()

    @property
    def date_sources(self) -> tuple[str, ...]:
        return self.date_candidates or (self.date_column,)

    @property
    def store_sources(self) -> tuple[str, ...]:
        if self.store_candidates:
            return self.store_candidates
        return (self.store_column,) if self.store_column else ()


@dataclass(frozen=True)
class TableSchema:
    name: str
    columns: dict[str, str]  # column name -> declared SQL type (declared order)
    primary_key: tuple[str, ...] = ()
    indexes: tuple[str, ...] = ()
    numeric_columns: frozenset[str] = field(default_factory=frozenset)
    date_columns: frozenset[str] = field(default_factory=frozenset)
    column_mapping: dict[str, str] = field(default_factory=dict)  # source -> destination
    window: LoadWindowSpec | None = None

    def column_kind(self, column: str) -> str | None:
        """Schema-level classification: 'numeric', 'date' or None."""
        if column in self.numeric_columns:
            return "numeric"
        if column in self.date_columns:
            return "date"
        return None
