"""Versioned schema creation.

A store carries a single-row ``schema_version`` table. Opening a store whose
version differs from SCHEMA_VERSION (or which holds index tables but no
version row) drops every index table and recreates the schema empty; the
next build repopulates it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from sqlalchemy import text

from codemap.index._internal.db.indexes import (
    create_additional_indexes,
    drop_additional_indexes,
)
from codemap.index.models import SCHEMA_VERSION

if TYPE_CHECKING:
    from codemap.index._internal.db.database import Database

logger = structlog.get_logger()

INDEX_TABLES: frozenset[str] = frozenset({"files", "symbols", "imports", "exports"})


def read_schema_version(db: Database) -> int | None:
    """Stored schema version, or None when the marker table is absent or empty."""
    if "schema_version" not in db.table_names():
        return None
    with db.engine.connect() as conn:
        row = conn.execute(text("SELECT version FROM schema_version WHERE id = 1")).first()
    return int(row[0]) if row is not None else None


def ensure_schema(db: Database) -> bool:
    """Create the schema if needed. Idempotent.

    Returns:
        True when existing tables were dropped and recreated.
    """
    existing = db.table_names()
    stored = read_schema_version(db)
    recreated = False

    if stored != SCHEMA_VERSION and (existing & (INDEX_TABLES | {"schema_version"})):
        logger.warning(
            "schema_version_mismatch",
            stored=stored,
            expected=SCHEMA_VERSION,
            db_path=str(db.db_path),
        )
        drop_additional_indexes(db.engine)
        db.drop_all()
        recreated = True

    db.create_all()
    create_additional_indexes(db.engine)

    if stored != SCHEMA_VERSION:
        with db.engine.connect() as conn:
            conn.execute(text("DELETE FROM schema_version"))
            conn.execute(
                text("INSERT INTO schema_version (id, version) VALUES (1, :version)"),
                {"version": SCHEMA_VERSION},
            )
            conn.commit()
        logger.debug("schema_version_written", version=SCHEMA_VERSION)

    return recreated
