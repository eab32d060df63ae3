from .coordinator import LoadCoordinator, LoadPhase, TransactionError
from .driver import IngestionDriver
from .resolver import resolve_connection, resolve_table

__all__ = [
    "IngestionDriver",
    "LoadCoordinator",
    "LoadPhase",
    "TransactionError",
    "resolve_connection",
    "resolve_table",
]
