"""Tests for full builds and incremental updates."""

from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from codemap.config.models import CodemapConfig
from codemap.core.errors import ErrorCode, StoreError
from codemap.index import (
    ExtractionResult,
    Indexer,
    IndexPhase,
    IndexProgress,
    IndexStore,
    extract,
)
from codemap.index._internal.extraction import ExtractedImport
from codemap.index.indexer import count_lines

WriteFiles = Callable[[dict[str, str]], None]

TYPES_TS = """\
export interface User {
  id: number;
  name: string;
}

export type UserId = number;
"""

GREET_TS = """\
import type { User } from "./types";
import chalk from "chalk";

export function greet(user: User): string {
  return chalk.green(`Hello ${user.name}`);
}

export default class Greeter {
  prefix = "Hi";
  run(): void {}
}
"""

INDEX_TS = """\
import { greet } from "./greet";

export { greet };
export * from "./types";
export const VERSION = "1.0";
"""


@pytest.fixture
def sample(write_files: WriteFiles) -> None:
    write_files(
        {
            "src/types.ts": TYPES_TS,
            "src/greet.ts": GREET_TS,
            "src/index.ts": INDEX_TS,
        }
    )


@pytest.fixture
def indexer(store: IndexStore, config: CodemapConfig) -> Indexer:
    return Indexer(store, config=config)


class CountingExtract:
    """extract() wrapper recording which paths were parsed."""

    def __init__(self, fail_on: set[str] | None = None) -> None:
        self.calls: list[str] = []
        self._fail_on = fail_on or set()

    def __call__(self, content: str, path: str, language: str) -> ExtractionResult:
        self.calls.append(path)
        if path in self._fail_on:
            raise ValueError(f"cannot extract {path}")
        return extract(content, path, language)


def touch_later(path: Path, seconds: float = 10.0) -> None:
    """Move a file's mtime forward so it reads as modified."""
    mtime = path.stat().st_mtime + seconds
    os.utime(path, (mtime, mtime))


def snapshot(store: IndexStore) -> dict[str, Any]:
    """Every row of the index, minus generated ids."""
    with store.queries() as q:
        files = q.get_all_files()
        result: dict[str, Any] = {}
        for f in files:
            symbols = q.get_symbols_by_file(f.path)
            names = {s.id: s.name for s in symbols}
            result[f.path] = {
                "file": (f.language, f.modified_at, f.loc, f.has_default_export),
                "symbols": [
                    (
                        s.name,
                        s.kind,
                        s.line_start,
                        s.line_end,
                        s.signature,
                        s.exported,
                        s.is_default,
                        names.get(s.parent_symbol_id),
                    )
                    for s in symbols
                ],
                "imports": [
                    (i.imported_name, i.imported_path, i.local_alias, i.is_external, i.line)
                    for i in q.get_imports_by_file(f.path)
                ],
                "exports": [
                    (
                        e.export.exported_name,
                        e.export.local_name,
                        e.symbol.name if e.symbol else None,
                        e.export.is_reexport,
                        e.export.source_path,
                    )
                    for e in q.get_exports_with_symbols(f.path)
                ],
            }
        return result


class TestBuild:
    @pytest.mark.usefixtures("sample")
    def test_build_counts(self, indexer: Indexer, store: IndexStore) -> None:
        result = indexer.build()

        assert result.errors == []
        assert result.files_indexed == 3
        assert result.symbols_extracted == 7
        assert result.imports_extracted == 3
        assert result.exports_extracted == 7
        assert result.changed

        with store.queries() as q:
            stats = q.get_index_stats()
        assert (stats.files, stats.symbols, stats.imports, stats.exports) == (3, 7, 3, 7)
        assert stats.files_by_language == {"typescript": 3}
        assert stats.external_packages == {"chalk": 1}

    @pytest.mark.usefixtures("sample")
    def test_file_rows(self, indexer: Indexer, store: IndexStore, project: Path) -> None:
        indexer.build()

        with store.queries() as q:
            greet = q.lookup_file("src/greet.ts").unwrap()
            index = q.lookup_file("src/index.ts").unwrap()

        assert greet.language == "typescript"
        assert greet.loc == count_lines(GREET_TS)
        assert greet.has_default_export
        assert not index.has_default_export
        assert greet.modified_at == (project / "src" / "greet.ts").stat().st_mtime

    @pytest.mark.usefixtures("sample")
    def test_imports_resolved(self, indexer: Indexer, store: IndexStore) -> None:
        indexer.build()

        with store.queries() as q:
            imports = q.get_imports_by_file("src/greet.ts")
            importers = q.get_importers_of_file("src/types.ts")

        assert [(i.imported_name, i.imported_path, i.is_external, i.package_name) for i in imports] == [
            ("User", "src/types.ts", False, None),
            ("default", None, True, "chalk"),
        ]
        assert imports[1].local_alias == "chalk"
        assert [(i.importer_path, i.imported_name) for i in importers] == [("src/greet.ts", "User")]

    @pytest.mark.usefixtures("sample")
    def test_members_and_default_export(self, indexer: Indexer, store: IndexStore) -> None:
        indexer.build()

        with store.queries() as q:
            symbols = {s.name: s for s in q.get_symbols_by_file("src/greet.ts")}
            exports = q.get_exports_with_symbols("src/greet.ts")

        greeter = symbols["Greeter"]
        assert greeter.exported and greeter.is_default
        assert symbols["prefix"].parent_symbol_id == greeter.id
        assert symbols["run"].parent_symbol_id == greeter.id
        assert symbols["greet"].parent_symbol_id is None

        default = next(e for e in exports if e.export.exported_name == "default")
        assert default.export.local_name == "Greeter"
        assert default.symbol is not None and default.symbol.id == greeter.id

    @pytest.mark.usefixtures("sample")
    def test_reexports(self, indexer: Indexer, store: IndexStore) -> None:
        indexer.build()

        with store.queries() as q:
            reexports = q.get_reexports_by_file("src/index.ts")
            exports = q.get_exports_with_symbols("src/index.ts")

        assert [(e.exported_name, e.source_path) for e in reexports] == [("*", "./types")]
        by_name = {e.export.exported_name: e for e in exports}
        # Imported binding, not a symbol of this file
        assert by_name["greet"].symbol is None
        assert by_name["VERSION"].symbol is not None

    @pytest.mark.usefixtures("sample")
    def test_build_is_idempotent(self, indexer: Indexer, store: IndexStore) -> None:
        indexer.build()
        first = snapshot(store)
        indexer.build()

        assert snapshot(store) == first

    def test_build_drops_vanished_files(
        self, indexer: Indexer, store: IndexStore, project: Path, write_files: WriteFiles
    ) -> None:
        write_files({"a.ts": "export const a = 1;\n", "b.ts": "export const b = 1;\n"})
        indexer.build()
        (project / "b.ts").unlink()

        indexer.build()

        with store.queries() as q:
            assert [f.path for f in q.get_all_files()] == ["a.ts"]
            assert q.find_symbols_exact("b") == []

    def test_empty_and_non_utf8_files(
        self, indexer: Indexer, store: IndexStore, project: Path
    ) -> None:
        (project / "empty.ts").write_text("")
        (project / "latin1.ts").write_bytes(b"export const cafe = 'caf\xe9';\nexport const ok = 2;\n")

        result = indexer.build()

        assert result.errors == []
        with store.queries() as q:
            empty = q.lookup_file("empty.ts").unwrap()
            assert empty.loc == 1
            assert q.get_symbols_by_file("empty.ts") == []
            assert "ok" in {s.name for s in q.get_symbols_by_file("latin1.ts")}

    def test_many_files_through_bounded_window(
        self, indexer: Indexer, store: IndexStore, write_files: WriteFiles
    ) -> None:
        write_files({f"src/m{i:02d}.ts": f"export function f{i}() {{}}\n" for i in range(25)})

        result = indexer.build()

        assert result.files_indexed == 25
        with store.queries() as q:
            assert len(q.get_all_symbol_names()) == 25

    @pytest.mark.usefixtures("sample")
    def test_build_while_writer_held(self, indexer: Indexer, store: IndexStore) -> None:
        with store.writer(), pytest.raises(StoreError) as exc_info:
            indexer.build()
        assert exc_info.value.code == ErrorCode.STORE_WRITER_BUSY


class TestUpdate:
    @pytest.mark.usefixtures("sample")
    def test_update_on_empty_index_indexes_everything(
        self, indexer: Indexer, store: IndexStore
    ) -> None:
        result = indexer.update()

        assert result.files_indexed == 3
        with store.queries() as q:
            assert q.get_index_stats().symbols == 7

    @pytest.mark.usefixtures("sample")
    def test_unchanged_files_not_reparsed(
        self, store: IndexStore, config: CodemapConfig
    ) -> None:
        Indexer(store, config=config).build()
        counting = CountingExtract()

        result = Indexer(store, config=config, extract_fn=counting).update()

        assert counting.calls == []
        assert result.files_indexed == 0
        assert not result.changed

    @pytest.mark.usefixtures("sample")
    def test_modified_file_reindexed(
        self, store: IndexStore, config: CodemapConfig, project: Path
    ) -> None:
        Indexer(store, config=config).build()
        types_path = project / "src" / "types.ts"
        types_path.write_text(TYPES_TS + "\nexport enum Role { Admin, Guest }\n")
        touch_later(types_path)
        counting = CountingExtract()

        result = Indexer(store, config=config, extract_fn=counting).update()

        assert counting.calls == ["src/types.ts"]
        assert result.files_indexed == 1
        with store.queries() as q:
            assert [s.name for s in q.get_symbols_by_file("src/types.ts")] == [
                "User",
                "UserId",
                "Role",
            ]
            assert q.get_file("src/types.ts").modified_at == types_path.stat().st_mtime
            assert q.diff_files({}).deleted == ["src/greet.ts", "src/index.ts", "src/types.ts"]

    @pytest.mark.usefixtures("sample")
    def test_new_file_indexed(
        self, indexer: Indexer, store: IndexStore, write_files: WriteFiles
    ) -> None:
        indexer.build()
        write_files({"src/extra.ts": "export const extra = true;\n"})

        result = indexer.update()

        assert result.files_indexed == 1
        with store.queries() as q:
            assert [s.file_path for s in q.find_symbols_exact("extra")] == ["src/extra.ts"]

    @pytest.mark.usefixtures("sample")
    def test_deleted_file_rows_removed(
        self, indexer: Indexer, store: IndexStore, project: Path
    ) -> None:
        indexer.build()
        (project / "src" / "types.ts").unlink()

        result = indexer.update()

        assert result.files_deleted == 1
        assert result.files_indexed == 0
        with store.queries() as q:
            assert q.get_file("src/types.ts") is None
            assert q.get_symbols_by_file("src/types.ts") == []
            assert q.get_exports_by_file("src/types.ts") == []
            assert q.get_index_stats().symbols == 5

    @pytest.mark.usefixtures("sample")
    def test_failed_file_keeps_prior_rows(
        self, store: IndexStore, config: CodemapConfig, project: Path
    ) -> None:
        Indexer(store, config=config).build()
        before = snapshot(store)["src/greet.ts"]
        for name in ("greet.ts", "index.ts"):
            path = project / "src" / name
            path.write_text(path.read_text() + "\nexport const added = 1;\n")
            touch_later(path)
        failing = CountingExtract(fail_on={"src/greet.ts"})

        result = Indexer(store, config=config, extract_fn=failing).update()

        assert result.files_indexed == 1
        assert [(e.path, e.code) for e in result.errors] == [
            ("src/greet.ts", "PARSE_EXTRACTION_FAILED")
        ]
        assert snapshot(store)["src/greet.ts"] == before
        with store.queries() as q:
            assert [s.file_path for s in q.find_symbols_exact("added")] == ["src/index.ts"]
            # Still stale, so the next update retries it
            current = {"src/greet.ts": (project / "src" / "greet.ts").stat().st_mtime}
            assert q.get_stale_files(current) == ["src/greet.ts"]

    @pytest.mark.usefixtures("sample")
    def test_rejected_insert_rolls_back_file(
        self, store: IndexStore, config: CodemapConfig, project: Path
    ) -> None:
        """A constraint failure after the old rows were deleted restores them."""
        Indexer(store, config=config).build()
        before = snapshot(store)["src/greet.ts"]
        path = project / "src" / "greet.ts"
        path.write_text(path.read_text() + "\nexport const added = 1;\n")
        touch_later(path)

        def default_member(content: str, rel: str, language: str) -> ExtractionResult:
            result = extract(content, rel, language)
            if rel == "src/greet.ts":
                # is_default without exported violates ck_symbols_default_exported
                next(s for s in result.symbols if s.name == "prefix").is_default = True
            return result

        result = Indexer(store, config=config, extract_fn=default_member).update()

        assert result.files_indexed == 0
        assert [(e.path, e.code) for e in result.errors] == [
            ("src/greet.ts", "STORE_WRITE_FAILED")
        ]
        assert snapshot(store)["src/greet.ts"] == before
        with store.queries() as q:
            assert q.find_symbols_exact("added") == []

    def test_result_to_dict(self, indexer: Indexer, write_files: WriteFiles) -> None:
        write_files({"a.ts": "export const a = 1;\n"})

        data = indexer.update().to_dict()

        assert data["files_indexed"] == 1
        assert data["symbols_extracted"] == 1
        assert data["errors"] == []
        assert data["duration"] >= 0


class StaticScanner:
    """Scanner reporting a fixed listing regardless of the filesystem."""

    def __init__(self, files: dict[str, float]) -> None:
        self._files = files

    def scan(self) -> dict[str, float]:
        return dict(self._files)

    def language_of(self, rel_path: str) -> str | None:
        return "typescript" if rel_path.endswith(".ts") else None


class TestCustomScanner:
    def test_file_vanished_before_read(
        self, store: IndexStore, config: CodemapConfig, write_files: WriteFiles
    ) -> None:
        write_files({"here.ts": "export const here = 1;\n"})
        scanner = StaticScanner({"gone.ts": 1.0, "here.ts": 1.0})

        result = Indexer(store, scanner, config).update()

        assert result.files_indexed == 1
        assert [(e.path, e.code) for e in result.errors] == [("gone.ts", "FILE_NOT_FOUND")]

    def test_unknown_language_recorded(self, store: IndexStore, config: CodemapConfig) -> None:
        result = Indexer(store, StaticScanner({"notes.txt": 1.0}), config).build()

        assert [(e.path, e.code) for e in result.errors] == [
            ("notes.txt", "PARSE_UNSUPPORTED_LANGUAGE")
        ]


class TestWriteIsolation:
    """A file that fails while being written never stops the batch."""

    @pytest.fixture
    def two_files(self, write_files: WriteFiles) -> StaticScanner:
        write_files({"a.ts": "export const a = 1;\n", "b.ts": "export const b = 1;\n"})
        return StaticScanner({"a.ts": 1.0, "b.ts": 1.0})

    def test_overlong_specifier_is_unresolved(
        self, store: IndexStore, config: CodemapConfig, two_files: StaticScanner
    ) -> None:
        def long_import(content: str, rel: str, language: str) -> ExtractionResult:
            result = extract(content, rel, language)
            if rel == "a.ts":
                result.imports.append(
                    ExtractedImport(
                        imported_name="*", source="./" + "x" * 300, is_external=False, line=1
                    )
                )
            return result

        result = Indexer(store, two_files, config, extract_fn=long_import).build()

        assert result.errors == []
        assert result.files_indexed == 2
        with store.queries() as q:
            [imp] = q.get_imports_by_file("a.ts")
        assert (imp.imported_path, imp.is_external) == (None, False)

    def test_unexpected_error_skips_only_that_file(
        self, store: IndexStore, config: CodemapConfig, two_files: StaticScanner
    ) -> None:
        def dangling_parent(content: str, rel: str, language: str) -> ExtractionResult:
            result = extract(content, rel, language)
            if rel == "a.ts":
                result.symbols[0].parent_ordinal = 99
            return result

        result = Indexer(store, two_files, config, extract_fn=dangling_parent).build()

        assert result.files_indexed == 1
        assert [e.path for e in result.errors] == ["a.ts"]
        with store.queries() as q:
            assert q.get_file("a.ts") is None
            assert q.get_file("b.ts") is not None


class TestRemove:
    @pytest.mark.usefixtures("sample")
    def test_remove_cascades(self, indexer: Indexer, store: IndexStore, project: Path) -> None:
        indexer.build()

        result = indexer.remove(["src/types.ts", "src/missing.ts"])

        assert result.files_deleted == 1
        assert result.files_indexed == 0
        assert result.errors == []
        assert (project / "src" / "types.ts").is_file()
        with store.queries() as q:
            assert q.get_file("src/types.ts") is None
            assert q.get_symbols_by_file("src/types.ts") == []
            assert q.get_exports_by_file("src/types.ts") == []
            assert q.get_index_stats().symbols == 5
            # Imports in other files keep pointing at the path
            importers = q.get_importers_of_file("src/types.ts")
            assert [i.importer_path for i in importers] == ["src/greet.ts"]

    @pytest.mark.usefixtures("sample")
    def test_update_brings_removed_file_back(self, indexer: Indexer, store: IndexStore) -> None:
        indexer.build()
        indexer.remove(["src/types.ts"])

        result = indexer.update()

        assert result.files_indexed == 1
        with store.queries() as q:
            assert q.get_file("src/types.ts") is not None

    def test_remove_nothing(self, indexer: Indexer) -> None:
        result = indexer.remove([])

        assert result.files_deleted == 0
        assert not result.changed

    def test_remove_while_writer_held(self, indexer: Indexer, store: IndexStore) -> None:
        with store.writer(), pytest.raises(StoreError) as exc_info:
            indexer.remove(["a.ts"])
        assert exc_info.value.code == ErrorCode.STORE_WRITER_BUSY


class TestProgress:
    @pytest.mark.usefixtures("sample")
    def test_build_reports_every_file(self, indexer: Indexer) -> None:
        events: list[IndexProgress] = []

        indexer.build(on_progress=events.append)

        assert events[0] == IndexProgress(IndexPhase.SCANNING, 0, 0)
        assert events[-1] == IndexProgress(IndexPhase.COMPLETE, 3, 3)
        per_file = events[1:-1]
        assert [(e.phase, e.current) for e in per_file] == [
            (IndexPhase.PARSING, 1),
            (IndexPhase.STORING, 1),
            (IndexPhase.PARSING, 2),
            (IndexPhase.STORING, 2),
            (IndexPhase.PARSING, 3),
            (IndexPhase.STORING, 3),
        ]
        assert {e.total for e in per_file} == {3}
        assert sorted({e.current_file for e in per_file}) == [
            "src/greet.ts",
            "src/index.ts",
            "src/types.ts",
        ]

    @pytest.mark.usefixtures("sample")
    def test_update_counts_changed_files_only(
        self, indexer: Indexer, project: Path
    ) -> None:
        indexer.build()
        touch_later(project / "src" / "index.ts")
        events: list[IndexProgress] = []

        indexer.update(on_progress=events.append)

        assert events == [
            IndexProgress(IndexPhase.SCANNING, 0, 0),
            IndexProgress(IndexPhase.PARSING, 1, 1, "src/index.ts"),
            IndexProgress(IndexPhase.STORING, 1, 1, "src/index.ts"),
            IndexProgress(IndexPhase.COMPLETE, 1, 1),
        ]

    @pytest.mark.usefixtures("sample")
    def test_nothing_to_update(self, indexer: Indexer) -> None:
        indexer.build()
        events: list[IndexProgress] = []

        indexer.update(on_progress=events.append)

        assert [e.phase for e in events] == [IndexPhase.SCANNING, IndexPhase.COMPLETE]
        assert events[-1].total == 0

    def test_failed_extraction_not_stored(
        self, store: IndexStore, config: CodemapConfig, write_files: WriteFiles
    ) -> None:
        write_files({"a.ts": "export const a = 1;\n", "b.ts": "export const b = 1;\n"})
        events: list[IndexProgress] = []
        failing = CountingExtract(fail_on={"a.ts"})

        Indexer(store, config=config, extract_fn=failing).build(on_progress=events.append)

        assert [(e.phase, e.current_file) for e in events] == [
            (IndexPhase.SCANNING, None),
            (IndexPhase.PARSING, "a.ts"),
            (IndexPhase.PARSING, "b.ts"),
            (IndexPhase.STORING, "b.ts"),
            (IndexPhase.COMPLETE, None),
        ]
