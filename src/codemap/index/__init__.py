"""Index module - symbol/import/export index of a TypeScript/JavaScript project.

This module provides:
- Parsing: Tree-sitter grammars for TypeScript, TSX and JavaScript
- Extraction: Per-file symbols, imports and exports
- Storage: SQLite schema in ``<project>/.codemap/index.db``
- Indexing: Full builds and mtime-gated incremental updates

Public API:
- IndexStore: Handle on one project's index
- Indexer: build() / update() / remove(), with optional progress callbacks
- IndexQueries: Read-side lookups (via ``IndexStore.queries()``)

Internal implementations are in `codemap.index._internal/`.
"""

from codemap.index._internal.db import Database, IndexWriter, create_additional_indexes
from codemap.index._internal.discovery import FileScanner, GlobScanner
from codemap.index._internal.extraction import ExtractionResult, extract
from codemap.index._internal.resolution import ImportResolver, resolve_import_path
from codemap.index.indexer import FileError, Indexer, IndexPhase, IndexProgress, IndexResult
from codemap.index.models import (
    SCHEMA_VERSION,
    Export,
    File,
    Import,
    SchemaVersion,
    Symbol,
    SymbolKind,
)
from codemap.index.queries import (
    ExportWithSymbol,
    FileDiff,
    FileStats,
    IndexQueries,
    IndexStats,
    Lookup,
    LookupMatch,
    SymbolLookup,
)
from codemap.index.store import IndexStore

__all__ = [
    # Public API
    "IndexStore",
    "Indexer",
    "IndexResult",
    "FileError",
    "IndexPhase",
    "IndexProgress",
    "IndexQueries",
    # Query results
    "ExportWithSymbol",
    "FileDiff",
    "FileStats",
    "IndexStats",
    "Lookup",
    "LookupMatch",
    "SymbolLookup",
    # Database
    "Database",
    "IndexWriter",
    "create_additional_indexes",
    # Discovery, extraction, resolution
    "FileScanner",
    "GlobScanner",
    "ExtractionResult",
    "extract",
    "ImportResolver",
    "resolve_import_path",
    # Models
    "SCHEMA_VERSION",
    "SchemaVersion",
    "SymbolKind",
    "File",
    "Symbol",
    "Import",
    "Export",
]
