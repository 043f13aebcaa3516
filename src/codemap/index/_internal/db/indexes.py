"""Secondary indexes that SQLModel ``Field(index=True)`` cannot declare.

They back the NOCASE name lookup, ordered per-file listings, member and
export joins, and the external package aggregation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import text

if TYPE_CHECKING:
    from sqlalchemy import Engine


# index name -> "table(columns)"
ADDITIONAL_INDEXES: dict[str, str] = {
    "idx_symbols_name_nocase": "symbols(name COLLATE NOCASE)",
    "idx_symbols_file_line": "symbols(file_path, line_start)",
    "idx_symbols_parent": "symbols(parent_symbol_id)",
    "idx_exports_symbol": "exports(symbol_id)",
    "idx_imports_package": "imports(package_name)",
}


def create_additional_indexes(engine: Engine) -> None:
    """Create the secondary indexes. Safe to call on every open."""
    with engine.begin() as conn:
        for name, target in ADDITIONAL_INDEXES.items():
            conn.execute(text(f"CREATE INDEX IF NOT EXISTS {name} ON {target}"))


def drop_additional_indexes(engine: Engine) -> None:
    with engine.begin() as conn:
        for name in ADDITIONAL_INDEXES:
            conn.execute(text(f"DROP INDEX IF EXISTS {name}"))
