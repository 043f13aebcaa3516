"""Database layer for the index."""

from codemap.index._internal.db.database import Database, IndexWriter
from codemap.index._internal.db.indexes import create_additional_indexes
from codemap.index._internal.db.schema import ensure_schema, read_schema_version

__all__ = [
    "Database",
    "IndexWriter",
    "create_additional_indexes",
    "ensure_schema",
    "read_schema_version",
]
