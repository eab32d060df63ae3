"""Drop-folder CSV/XLSX loader for PostgreSQL sales tables."""

__version__ = "0.1.0"
