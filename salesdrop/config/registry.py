from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import jsonschema
from jsonschema.exceptions import ValidationError

from ..models.table_schema import LoadWindowSpec, TableSchema
from .loader import ConfigurationError

"""Schema Registry: declarative per-table schemas from a JSON resource.

The registry file is re-read for every load (no cache); one load sees one
consistent snapshot because the parsed TableSchema objects are immutable.
"""

REGISTRY_SCHEMA_PATH = Path(__file__).with_name("registry_schema.json")


def _build_window(raw: dict[str, Any] | None, table: str, columns: dict[str, str]) -> LoadWindowSpec | None:
    if not raw:
        return None
    spec = LoadWindowSpec(
        date_column=raw["dateColumn"],
        store_column=raw.get("storeColumn"),
        date_candidates=tuple(raw.get("dateCandidates", [])),
        store_candidates=tuple(raw.get("storeCandidates", [])),
    )
    for col in (spec.date_column, spec.store_column):
        if col is not None and col not in columns:
            raise ConfigurationError(f"table '{table}': window column '{col}' is not a declared column")
    return spec


def _build_schema(name: str, raw: dict[str, Any]) -> TableSchema:
    columns = dict(raw["columns"])
    return TableSchema(
        name=name,
        columns=columns,
        primary_key=tuple(raw.get("primaryKey", [])),
        indexes=tuple(raw.get("indexes", [])),
        numeric_columns=frozenset(raw.get("numericColumns", [])),
        date_columns=frozenset(raw.get("dateColumns", [])),
        column_mapping=dict(raw.get("columnMapping", {})),
        window=_build_window(raw.get("window"), name, columns),
    )


def load_schema_registry(path: Path) -> dict[str, TableSchema]:
    """Load and validate every table schema in the registry file."""
    if not path.exists():
        raise ConfigurationError(f"schema registry not found: {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        schema = json.loads(REGISTRY_SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"invalid schema registry json: {e}") from e
    except ValidationError as e:
        raise ConfigurationError(f"schema registry validation failed: {e.message}") from e
    return {name: _build_schema(name, raw) for name, raw in data.items()}


def get_table_schema(path: Path, table: str) -> TableSchema:
    schemas = load_schema_registry(path)
    schema = schemas.get(table)
    if schema is None:
        raise ConfigurationError(f"No schema defined for table: {table}")
    return schema
