"""Domain models for the drop-folder CSV/XLSX -> PostgreSQL loader."""

from .config_models import AppConfig, ConnectionConfig, RetryPolicy, RouteConfig, WatchConfig
from .ingest_file import FileStatus, IngestFile
from .load_outcome import LoadOutcome, LoadWindow, RowError
from .record import BoundValue, Record, TypedRow, ValueKind
from .table_schema import LoadWindowSpec, TableSchema

__all__ = [
    # Configuration models
    "AppConfig",
    "ConnectionConfig",
    "RetryPolicy",
    "RouteConfig",
    "WatchConfig",
    "TableSchema",
    "LoadWindowSpec",
    # Processing models
    "Record",
    "BoundValue",
    "TypedRow",
    "ValueKind",
    "LoadWindow",
    "LoadOutcome",
    "RowError",
    "FileStatus",
    "IngestFile",
]
