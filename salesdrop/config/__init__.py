from .loader import ConfigurationError, load_config
from .registry import get_table_schema, load_schema_registry

__all__ = [
    "ConfigurationError",
    "load_config",
    "get_table_schema",
    "load_schema_registry",
]
