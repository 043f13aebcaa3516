"""Query layer over the symbol/import/export index.

Every consumer reads the index through ``IndexQueries``. Name lookups cascade
exact -> case-insensitive -> prefix -> fuzzy suggestions; the outcome comes
back as a ``SymbolLookup`` value rather than an exception, and file lookups
as ``Lookup[File]``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from sqlalchemy import func
from sqlmodel import col, select

from codemap.core.errors import NotFoundError
from codemap.index.models import Export, File, Import, Symbol

if TYPE_CHECKING:
    from collections.abc import Mapping

    from sqlmodel import Session

PREFIX_LIMIT = 20
SUGGESTION_LIMIT = 5
SUGGESTION_STEM_LENGTH = 3

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Result models
# ---------------------------------------------------------------------------


class LookupMatch(str, Enum):
    """Which stage of the name lookup cascade produced the result."""

    EXACT = "exact"
    CASE_INSENSITIVE = "case_insensitive"
    PREFIX = "prefix"
    NOT_FOUND = "not_found"


@dataclass
class SymbolLookup:
    """Outcome of a symbol name lookup."""

    query: str
    match: LookupMatch
    symbols: list[Symbol] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.match is not LookupMatch.NOT_FOUND

    @property
    def error(self) -> NotFoundError | None:
        if self.found:
            return None
        return NotFoundError.symbol(self.query, self.suggestions)

    def unwrap(self) -> list[Symbol]:
        """Symbols found, raising the not-found error otherwise."""
        if (error := self.error) is not None:
            raise error
        return self.symbols


@dataclass
class Lookup(Generic[T]):
    """A value or the not-found condition explaining its absence."""

    value: T | None = None
    error: NotFoundError | None = None

    @property
    def found(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


@dataclass
class ExportWithSymbol:
    """Export row with the symbol it points at, if any."""

    export: Export
    symbol: Symbol | None


@dataclass
class IndexStats:
    """Project-wide totals for summary reporting."""

    files: int
    symbols: int
    imports: int
    exports: int
    loc: int
    files_by_language: dict[str, int]
    symbols_by_kind: dict[str, int]
    external_packages: dict[str, int]

    def to_dict(self) -> dict[str, Any]:
        return {
            "files": self.files,
            "symbols": self.symbols,
            "imports": self.imports,
            "exports": self.exports,
            "loc": self.loc,
            "files_by_language": dict(self.files_by_language),
            "symbols_by_kind": dict(self.symbols_by_kind),
            "external_packages": dict(self.external_packages),
        }


@dataclass
class FileStats:
    path: str
    symbols: int
    imports: int
    exports: int


@dataclass
class FileDiff:
    """Indexed state compared to a current path -> mtime listing."""

    stale: list[str] = field(default_factory=list)
    new: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return not (self.stale or self.new or self.deleted)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


# ---------------------------------------------------------------------------
# IndexQueries
# ---------------------------------------------------------------------------


class IndexQueries:
    """Read-only queries bound to one session."""

    def __init__(self, session: Session) -> None:
        self._session = session

    # -- symbol lookup -------------------------------------------------------

    def find_symbols_exact(self, name: str) -> list[Symbol]:
        """Symbols named exactly ``name``, exported first, then by file path."""
        stmt = (
            select(Symbol)
            .where(Symbol.name == name)
            .order_by(
                col(Symbol.exported).desc(),
                col(Symbol.file_path),
                col(Symbol.line_start),
            )
        )
        return list(self._session.exec(stmt).all())

    def find_symbols_case_insensitive(self, name: str) -> list[Symbol]:
        stmt = (
            select(Symbol)
            .where(col(Symbol.name).collate("NOCASE") == name)
            .order_by(
                col(Symbol.exported).desc(),
                col(Symbol.file_path),
                col(Symbol.line_start),
            )
        )
        return list(self._session.exec(stmt).all())

    def find_symbols_by_prefix(self, prefix: str, limit: int = PREFIX_LIMIT) -> list[Symbol]:
        """Names starting with ``prefix``; shorter (closer) names first."""
        stmt = (
            select(Symbol)
            .where(col(Symbol.name).like(f"{_escape_like(prefix)}%", escape="\\"))
            .order_by(
                col(Symbol.exported).desc(),
                func.length(Symbol.name),
                col(Symbol.file_path),
            )
            .limit(limit)
        )
        return list(self._session.exec(stmt).all())

    def suggest_symbol_names(self, query: str, limit: int = SUGGESTION_LIMIT) -> list[str]:
        """Heuristic near-miss names: shared three-letter stem, or containing the query."""
        if not query:
            return []
        stem_pattern = f"{_escape_like(query[:SUGGESTION_STEM_LENGTH])}%"
        stem_stmt = (
            select(Symbol.name)
            .distinct()
            .where(col(Symbol.name).like(stem_pattern, escape="\\"))
            .order_by(func.length(Symbol.name), col(Symbol.name))
            .limit(limit)
        )
        contains_stmt = (
            select(Symbol.name)
            .distinct()
            .where(col(Symbol.name).like(f"%{_escape_like(query)}%", escape="\\"))
            .where(col(Symbol.name).not_like(stem_pattern, escape="\\"))
            .order_by(func.length(Symbol.name), col(Symbol.name))
            .limit(limit)
        )
        names = set(self._session.exec(stem_stmt).all())
        names.update(self._session.exec(contains_stmt).all())
        return sorted(names, key=lambda n: (len(n), n))[:limit]

    def lookup_symbol(self, query: str) -> SymbolLookup:
        """Exact, then case-insensitive, then prefix; suggestions when all miss."""
        if symbols := self.find_symbols_exact(query):
            return SymbolLookup(query, LookupMatch.EXACT, symbols)
        if symbols := self.find_symbols_case_insensitive(query):
            return SymbolLookup(query, LookupMatch.CASE_INSENSITIVE, symbols)
        if symbols := self.find_symbols_by_prefix(query):
            return SymbolLookup(query, LookupMatch.PREFIX, symbols)
        return SymbolLookup(
            query,
            LookupMatch.NOT_FOUND,
            suggestions=self.suggest_symbol_names(query),
        )

    def get_all_symbol_names(self) -> list[str]:
        stmt = select(Symbol.name).distinct().order_by(col(Symbol.name))
        return list(self._session.exec(stmt).all())

    # -- per file ------------------------------------------------------------

    def get_file(self, path: str) -> File | None:
        return self._session.get(File, path)

    def lookup_file(self, path: str) -> Lookup[File]:
        file = self.get_file(path)
        if file is None:
            return Lookup(error=NotFoundError.file_not_indexed(path))
        return Lookup(value=file)

    def get_all_files(self) -> list[File]:
        return list(self._session.exec(select(File).order_by(col(File.path))).all())

    def get_symbols_by_file(self, path: str) -> list[Symbol]:
        stmt = (
            select(Symbol)
            .where(Symbol.file_path == path)
            .order_by(col(Symbol.line_start), col(Symbol.id))
        )
        return list(self._session.exec(stmt).all())

    def get_exported_symbols_by_file(self, path: str) -> list[Symbol]:
        stmt = (
            select(Symbol)
            .where(Symbol.file_path == path, col(Symbol.exported).is_(True))
            .order_by(col(Symbol.line_start), col(Symbol.id))
        )
        return list(self._session.exec(stmt).all())

    def get_imports_by_file(self, path: str) -> list[Import]:
        """Internal imports before external, then by target path, then line."""
        stmt = (
            select(Import)
            .where(Import.importer_path == path)
            .order_by(
                col(Import.is_external),
                col(Import.imported_path),
                col(Import.line),
                col(Import.id),
            )
        )
        return list(self._session.exec(stmt).all())

    def get_importers_of_file(self, path: str) -> list[Import]:
        """Import rows whose resolved target is ``path``."""
        stmt = (
            select(Import)
            .where(Import.imported_path == path)
            .order_by(col(Import.importer_path), col(Import.line), col(Import.id))
        )
        return list(self._session.exec(stmt).all())

    def get_exports_by_file(self, path: str) -> list[Export]:
        stmt = (
            select(Export).where(Export.file_path == path).order_by(col(Export.line), col(Export.id))
        )
        return list(self._session.exec(stmt).all())

    def get_reexports_by_file(self, path: str) -> list[Export]:
        stmt = (
            select(Export)
            .where(Export.file_path == path, col(Export.is_reexport).is_(True))
            .order_by(col(Export.line), col(Export.id))
        )
        return list(self._session.exec(stmt).all())

    def get_exports_with_symbols(self, path: str) -> list[ExportWithSymbol]:
        stmt = (
            select(Export, Symbol)
            .join(Symbol, col(Export.symbol_id) == col(Symbol.id), isouter=True)
            .where(Export.file_path == path)
            .order_by(col(Export.line), col(Export.id))
        )
        return [ExportWithSymbol(export=e, symbol=s) for e, s in self._session.exec(stmt).all()]

    def get_file_stats(self, path: str) -> Lookup[FileStats]:
        if self.get_file(path) is None:
            return Lookup(error=NotFoundError.file_not_indexed(path))
        return Lookup(
            value=FileStats(
                path=path,
                symbols=self._count(Symbol, Symbol.file_path == path),
                imports=self._count(Import, Import.importer_path == path),
                exports=self._count(Export, Export.file_path == path),
            )
        )

    # -- global --------------------------------------------------------------

    def _count(self, model: Any, condition: Any = None) -> int:
        stmt = select(func.count()).select_from(model)
        if condition is not None:
            stmt = stmt.where(condition)
        return int(self._session.exec(stmt).one())

    def get_index_stats(self) -> IndexStats:
        loc = self._session.exec(select(func.coalesce(func.sum(File.loc), 0))).one()

        count = func.count().label("count")
        by_language = self._session.exec(
            select(File.language, count).group_by(File.language).order_by(count.desc())
        ).all()
        by_kind = self._session.exec(
            select(Symbol.kind, count).group_by(Symbol.kind).order_by(count.desc())
        ).all()
        packages = self._session.exec(
            select(Import.package_name, count)
            .where(col(Import.is_external).is_(True), col(Import.package_name).is_not(None))
            .group_by(Import.package_name)
            .order_by(count.desc(), col(Import.package_name))
        ).all()

        return IndexStats(
            files=self._count(File),
            symbols=self._count(Symbol),
            imports=self._count(Import),
            exports=self._count(Export),
            loc=int(loc),
            files_by_language={lang: n for lang, n in by_language},
            symbols_by_kind={kind: n for kind, n in by_kind},
            external_packages={pkg: n for pkg, n in packages if pkg is not None},
        )

    # -- diff helpers --------------------------------------------------------

    def _indexed_mtimes(self) -> dict[str, float]:
        rows = self._session.exec(select(File.path, File.modified_at)).all()
        return {path: mtime for path, mtime in rows}

    def get_stale_files(self, current: Mapping[str, float]) -> list[str]:
        """Indexed files whose current mtime is newer than the recorded one."""
        indexed = self._indexed_mtimes()
        return sorted(p for p, mtime in indexed.items() if p in current and current[p] > mtime)

    def get_new_files(self, current: Mapping[str, float]) -> list[str]:
        indexed = self._indexed_mtimes()
        return sorted(p for p in current if p not in indexed)

    def get_deleted_files(self, current: Mapping[str, float]) -> list[str]:
        indexed = self._indexed_mtimes()
        return sorted(p for p in indexed if p not in current)

    def diff_files(self, current: Mapping[str, float]) -> FileDiff:
        """All three diff sets from a single read of the files table."""
        indexed = self._indexed_mtimes()
        return FileDiff(
            stale=sorted(p for p, m in indexed.items() if p in current and current[p] > m),
            new=sorted(p for p in current if p not in indexed),
            deleted=sorted(p for p in indexed if p not in current),
        )
