"""Full and incremental indexing of a project into its IndexStore.

Extraction (read, parse, walk) runs on a thread pool; all writes happen on
the calling thread, one transaction per file, in scan order. A file whose
extraction or write fails keeps whatever rows it had before, and the batch
carries on with the next file.
"""

from __future__ import annotations

import time
from collections import deque
from collections.abc import Callable, Iterable, Iterator
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import col

from codemap.config.models import CodemapConfig
from codemap.core.errors import CodemapError, NotFoundError, ParseError, StoreError
from codemap.core.logging import clear_run_id, set_run_id
from codemap.core.paths import to_absolute
from codemap.index._internal.discovery import GlobScanner
from codemap.index._internal.extraction import ExtractionResult, extract
from codemap.index._internal.resolution import ImportResolver
from codemap.index.models import Export, File, Import, Symbol

if TYPE_CHECKING:
    from codemap.index._internal.db import IndexWriter
    from codemap.index._internal.discovery import FileScanner
    from codemap.index.store import IndexStore

logger = structlog.get_logger()

ExtractFn = Callable[[str, str, str], ExtractionResult]
"""(content, path, language) -> ExtractionResult"""


@dataclass
class FileError:
    """A file that could not be indexed in this run."""

    path: str
    error: str
    code: str | None = None

    @classmethod
    def from_exception(cls, path: str, exc: Exception) -> FileError:
        if isinstance(exc, CodemapError):
            return cls(path=path, error=exc.message, code=exc.error_name)
        return cls(path=path, error=str(exc) or type(exc).__name__)


@dataclass
class IndexResult:
    """Summary of one build or update."""

    files_indexed: int = 0
    symbols_extracted: int = 0
    imports_extracted: int = 0
    exports_extracted: int = 0
    files_deleted: int = 0
    errors: list[FileError] = field(default_factory=list)
    duration: float = 0.0

    @property
    def changed(self) -> bool:
        return bool(self.files_indexed or self.files_deleted)

    def to_dict(self) -> dict[str, Any]:
        return {
            "files_indexed": self.files_indexed,
            "symbols_extracted": self.symbols_extracted,
            "imports_extracted": self.imports_extracted,
            "exports_extracted": self.exports_extracted,
            "files_deleted": self.files_deleted,
            "errors": [
                {"path": e.path, "error": e.error, "code": e.code} for e in self.errors
            ],
            "duration": self.duration,
        }


class IndexPhase(str, Enum):
    SCANNING = "scanning"
    PARSING = "parsing"
    STORING = "storing"
    COMPLETE = "complete"


@dataclass(frozen=True)
class IndexProgress:
    """One progress report from build() or update().

    ``current`` and ``total`` count files to index in this run (deleted files
    excluded). ``current_file`` is set for the parsing and storing phases.
    """

    phase: IndexPhase
    current: int
    total: int
    current_file: str | None = None


ProgressFn = Callable[[IndexProgress], None]


@dataclass
class _PreparedFile:
    path: str
    language: str
    modified_at: float
    loc: int
    extraction: ExtractionResult


def count_lines(content: str) -> int:
    return content.count("\n") + 1


def _report(
    on_progress: ProgressFn | None,
    phase: IndexPhase,
    current: int,
    total: int,
    current_file: str | None = None,
) -> None:
    if on_progress is not None:
        on_progress(IndexProgress(phase, current, total, current_file))


class Indexer:
    """Builds and refreshes the index of the project behind ``store``.

    Usage::

        indexer = Indexer(store)
        indexer.build()     # from scratch
        indexer.update()    # only what changed since
    """

    def __init__(
        self,
        store: IndexStore,
        scanner: FileScanner | None = None,
        config: CodemapConfig | None = None,
        *,
        extract_fn: ExtractFn | None = None,
    ) -> None:
        self._store = store
        self._config = config or CodemapConfig()
        self._scanner = scanner or GlobScanner(store.project_root, self._config.index)
        self._extract = extract_fn or extract

    @property
    def store(self) -> IndexStore:
        return self._store

    def build(self, on_progress: ProgressFn | None = None) -> IndexResult:
        """Clear the index and extract every scanned file."""
        set_run_id()
        start = time.monotonic()
        result = IndexResult()
        try:
            with self._store.writer():
                logger.info("index_build_started", project_root=str(self._store.project_root))
                _report(on_progress, IndexPhase.SCANNING, 0, 0)
                with self._store.db.bulk_writer(immediate=True) as writer:
                    writer.delete_where(File)
                current = self._scanner.scan()
                self._index_files(list(current), current, result, on_progress)
            result.duration = time.monotonic() - start
            logger.info("index_build_complete", **self._summary(result))
            return result
        finally:
            clear_run_id()

    def update(self, on_progress: ProgressFn | None = None) -> IndexResult:
        """Re-extract new and modified files; drop rows of deleted ones."""
        set_run_id()
        start = time.monotonic()
        result = IndexResult()
        try:
            with self._store.writer():
                _report(on_progress, IndexPhase.SCANNING, 0, 0)
                current = self._scanner.scan()
                with self._store.queries() as q:
                    diff = q.diff_files(current)

                if diff.deleted:
                    self._delete_files(diff.deleted, result)

                changed = set(diff.stale) | set(diff.new)
                if changed:
                    logger.info(
                        "changes_detected",
                        stale=len(diff.stale),
                        new=len(diff.new),
                        deleted=len(diff.deleted),
                    )
                # Scan order, not diff order
                self._index_files(
                    [p for p in current if p in changed], current, result, on_progress
                )
            result.duration = time.monotonic() - start
            logger.info("index_update_complete", **self._summary(result))
            return result
        finally:
            clear_run_id()

    def remove(self, paths: Iterable[str]) -> IndexResult:
        """Drop the rows of ``paths`` from the index. Files on disk are untouched.

        Paths that are not indexed are ignored. A removed file that still
        matches the scan comes back as new on the next update().
        """
        set_run_id()
        start = time.monotonic()
        result = IndexResult()
        targets = sorted(set(paths))
        try:
            with self._store.writer():
                if targets:
                    self._delete_files(targets, result)
            result.duration = time.monotonic() - start
            logger.info("index_remove_complete", requested=len(targets), **self._summary(result))
            return result
        finally:
            clear_run_id()

    @staticmethod
    def _summary(result: IndexResult) -> dict[str, Any]:
        return {
            "files_indexed": result.files_indexed,
            "files_deleted": result.files_deleted,
            "symbols": result.symbols_extracted,
            "errors": len(result.errors),
            "duration_sec": round(result.duration, 3),
        }

    # -- deletion ------------------------------------------------------------

    def _delete_files(self, paths: list[str], result: IndexResult) -> None:
        try:
            with self._store.db.bulk_writer(immediate=True) as writer:
                result.files_deleted = writer.delete_where(File, col(File.path).in_(paths))
        except SQLAlchemyError as e:
            error = StoreError.write_failed(", ".join(paths), str(e))
            logger.error("file_delete_failed", paths=paths, error=str(e))
            result.errors.extend(FileError.from_exception(p, error) for p in paths)
            return
        logger.debug("files_deleted", count=result.files_deleted)

    # -- extraction ----------------------------------------------------------

    def _prepare(self, path: str, modified_at: float) -> _PreparedFile:
        """Read and extract one file. Runs on a worker thread."""
        language = self._scanner.language_of(path)
        if language is None:
            raise ParseError.unsupported_language(path, "unknown")

        try:
            raw = to_absolute(self._store.project_root, path).read_bytes()
        except FileNotFoundError as e:
            # Deleted between scan and read
            raise NotFoundError.file_absent(path) from e
        content = raw.decode("utf-8", errors="replace")
        try:
            extraction = self._extract(content, path, language)
        except CodemapError:
            raise
        except Exception as e:
            raise ParseError.extraction_failed(path, str(e)) from e

        if extraction.error_count:
            logger.debug("file_parse_errors", path=path, error_nodes=extraction.error_count)
        return _PreparedFile(
            path=path,
            language=language,
            modified_at=modified_at,
            loc=count_lines(content),
            extraction=extraction,
        )

    def _extract_in_order(
        self, paths: Iterable[str], mtimes: dict[str, float]
    ) -> Iterator[tuple[str, Future[_PreparedFile]]]:
        """Yield extraction futures in input order, bounded in-flight."""
        indexer_config = self._config.indexer
        window = max(indexer_config.queue_max_size, indexer_config.max_workers)
        with ThreadPoolExecutor(
            max_workers=indexer_config.max_workers,
            thread_name_prefix="codemap-extract",
        ) as executor:
            pending: deque[tuple[str, Future[_PreparedFile]]] = deque()
            for path in paths:
                pending.append((path, executor.submit(self._prepare, path, mtimes[path])))
                if len(pending) >= window:
                    yield pending.popleft()
            while pending:
                yield pending.popleft()

    def _index_files(
        self,
        paths: list[str],
        mtimes: dict[str, float],
        result: IndexResult,
        on_progress: ProgressFn | None = None,
    ) -> None:
        total = len(paths)
        resolver = ImportResolver(self._store.project_root)

        for current, (path, future) in enumerate(self._extract_in_order(paths, mtimes), 1):
            _report(on_progress, IndexPhase.PARSING, current, total, path)
            try:
                prepared = future.result()
            except Exception as e:
                self._record_failure(result, path, e)
                continue

            _report(on_progress, IndexPhase.STORING, current, total, path)
            try:
                with self._store.db.bulk_writer(immediate=True) as writer:
                    self._write_file(writer, prepared, resolver)
            except SQLAlchemyError as e:
                self._record_failure(result, path, StoreError.write_failed(path, str(e)))
                continue
            except Exception as e:
                # Rolled back like a database error; the batch goes on
                self._record_failure(result, path, e)
                continue

            extraction = prepared.extraction
            result.files_indexed += 1
            result.symbols_extracted += len(extraction.symbols)
            result.imports_extracted += len(extraction.imports)
            result.exports_extracted += len(extraction.exports)
            logger.debug(
                "file_indexed",
                path=path,
                symbols=len(extraction.symbols),
                imports=len(extraction.imports),
                exports=len(extraction.exports),
            )

        _report(on_progress, IndexPhase.COMPLETE, total, total)

    @staticmethod
    def _record_failure(result: IndexResult, path: str, exc: Exception) -> None:
        error = FileError.from_exception(path, exc)
        result.errors.append(error)
        logger.warning("file_index_failed", path=path, error=error.error, code=error.code)

    # -- persistence ---------------------------------------------------------

    @staticmethod
    def _write_file(writer: IndexWriter, prepared: _PreparedFile, resolver: ImportResolver) -> None:
        """Replace every row of one file. Caller owns the transaction."""
        path = prepared.path
        extraction = prepared.extraction

        # Cascades to the file's symbols, imports and exports
        writer.delete_where(File, col(File.path) == path)
        writer.insert_many(
            File,
            [
                {
                    "path": path,
                    "language": prepared.language,
                    "modified_at": prepared.modified_at,
                    "loc": prepared.loc,
                    "has_default_export": extraction.has_default_export,
                }
            ],
        )

        # Parents precede their members, so one pass resolves both ids
        symbol_ids: dict[int, int] = {}
        for symbol in extraction.symbols:
            parent_id = (
                symbol_ids[symbol.parent_ordinal] if symbol.parent_ordinal is not None else None
            )
            symbol_ids[symbol.ordinal] = writer.insert_returning_id(
                Symbol,
                {
                    "name": symbol.name,
                    "file_path": path,
                    "line_start": symbol.line_start,
                    "line_end": symbol.line_end,
                    "kind": symbol.kind.value,
                    "signature": symbol.signature,
                    "exported": symbol.exported,
                    "is_default": symbol.is_default,
                    "parent_symbol_id": parent_id,
                },
            )

        writer.insert_many(
            Import,
            [
                {
                    "importer_path": path,
                    "imported_path": None
                    if imp.is_external
                    else resolver.resolve(path, imp.source),
                    "imported_name": imp.imported_name,
                    "local_alias": imp.local_alias,
                    "is_external": imp.is_external,
                    "package_name": imp.package_name,
                    "line": imp.line,
                }
                for imp in extraction.imports
            ],
        )

        writer.insert_many(
            Export,
            [
                {
                    "file_path": path,
                    "exported_name": exp.exported_name,
                    "local_name": exp.local_name,
                    "symbol_id": symbol_ids.get(exp.symbol_ordinal)
                    if exp.symbol_ordinal is not None
                    else None,
                    "is_reexport": exp.is_reexport,
                    "source_path": exp.source_path,
                    "line": exp.line,
                }
                for exp in extraction.exports
            ],
        )
