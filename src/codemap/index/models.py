"""SQLModel definitions for the symbol/import/export index.

Single source of truth for all table schemas.

Referential integrity:
- symbols, imports and exports reference files by path, cascading on delete
- methods and properties reference their class symbol, cascading on delete
- exports reference symbols with SET NULL, so an export row outlives the
  symbol it once pointed to

Rows are never updated in place: a re-indexed file has all of its rows
deleted (via the cascade from its file row) and inserted again.
"""

from enum import Enum

from sqlalchemy import CheckConstraint, Column, ForeignKey, Integer, String
from sqlmodel import Field, SQLModel

SCHEMA_VERSION = 1


# ============================================================================
# ENUMS
# ============================================================================


class SymbolKind(str, Enum):
    """Category of a named declaration."""

    FUNCTION = "function"
    CLASS = "class"
    VARIABLE = "variable"
    TYPE = "type"
    INTERFACE = "interface"
    ENUM = "enum"
    METHOD = "method"
    PROPERTY = "property"

    @property
    def is_member(self) -> bool:
        """Members are the only kinds that carry a parent symbol."""
        return self in (SymbolKind.METHOD, SymbolKind.PROPERTY)


# ============================================================================
# TABLES
# ============================================================================


class SchemaVersion(SQLModel, table=True):
    """Schema version marker (singleton row, id=1)."""

    __tablename__ = "schema_version"

    id: int = Field(default=1, primary_key=True)
    version: int


class File(SQLModel, table=True):
    """Indexed source file, keyed by project-relative POSIX path."""

    __tablename__ = "files"

    path: str = Field(primary_key=True)
    language: str = Field(index=True)
    modified_at: float
    loc: int | None = None
    has_default_export: bool = Field(default=False)


class Symbol(SQLModel, table=True):
    """Named declaration with location and export status."""

    __tablename__ = "symbols"
    __table_args__ = (
        CheckConstraint("is_default = 0 OR exported = 1", name="ck_symbols_default_exported"),
    )

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    file_path: str = Field(
        sa_column=Column(
            String, ForeignKey("files.path", ondelete="CASCADE"), index=True, nullable=False
        )
    )
    line_start: int
    line_end: int
    kind: str = Field(index=True)
    signature: str | None = None
    exported: bool = Field(default=False, index=True)
    is_default: bool = Field(default=False)
    parent_symbol_id: int | None = Field(
        default=None,
        sa_column=Column(Integer, ForeignKey("symbols.id", ondelete="CASCADE"), nullable=True),
    )


class Import(SQLModel, table=True):
    """One imported binding (or side-effect import) of a file."""

    __tablename__ = "imports"
    __table_args__ = (
        CheckConstraint(
            "is_external = 0 OR imported_path IS NULL", name="ck_imports_external_no_target"
        ),
    )

    id: int | None = Field(default=None, primary_key=True)
    importer_path: str = Field(
        sa_column=Column(
            String, ForeignKey("files.path", ondelete="CASCADE"), index=True, nullable=False
        )
    )
    imported_path: str | None = Field(default=None, index=True)
    imported_name: str
    local_alias: str | None = None
    is_external: bool = Field(default=False)
    package_name: str | None = None
    line: int


class Export(SQLModel, table=True):
    """One exported name of a file."""

    __tablename__ = "exports"
    __table_args__ = (
        CheckConstraint(
            "is_reexport = 0 OR source_path IS NOT NULL", name="ck_exports_reexport_source"
        ),
    )

    id: int | None = Field(default=None, primary_key=True)
    file_path: str = Field(
        sa_column=Column(
            String, ForeignKey("files.path", ondelete="CASCADE"), index=True, nullable=False
        )
    )
    exported_name: str = Field(index=True)
    local_name: str | None = None
    symbol_id: int | None = Field(
        default=None,
        sa_column=Column(Integer, ForeignKey("symbols.id", ondelete="SET NULL"), nullable=True),
    )
    is_reexport: bool = Field(default=False)
    source_path: str | None = None
    line: int
