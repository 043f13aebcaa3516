"""Tests for relative import resolution."""

from __future__ import annotations

from pathlib import Path

import pytest

from codemap.index._internal.resolution import ImportResolver, resolve_import_path


@pytest.fixture
def root(tmp_path: Path) -> Path:
    files = [
        "src/app.ts",
        "src/util.ts",
        "src/esm.ts",
        "src/view.tsx",
        "src/data.json",
        "src/lib/index.ts",
        "src/legacy/index.js",
        "shared/config.js",
        "index.ts",
    ]
    for rel in files:
        path = tmp_path / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("")
    return tmp_path


class TestResolve:
    @pytest.mark.parametrize(
        ("specifier", "expected"),
        [
            ("./util", "src/util.ts"),
            ("./view", "src/view.tsx"),
            ("./lib", "src/lib/index.ts"),
            ("./legacy", "src/legacy/index.js"),
            ("./data.json", "src/data.json"),
            ("./util.ts", "src/util.ts"),
            ("../shared/config", "shared/config.js"),
            ("..", "index.ts"),
            ("/src/util", "src/util.ts"),
        ],
    )
    def test_resolves(self, root: Path, specifier: str, expected: str) -> None:
        assert resolve_import_path("src/app.ts", specifier, root) == expected

    def test_compiled_js_name_maps_to_ts_source(self, root: Path) -> None:
        assert resolve_import_path("src/app.ts", "./esm.js", root) == "src/esm.ts"

    def test_existing_js_file_wins_over_stripping(self, root: Path) -> None:
        assert resolve_import_path("shared/other.ts", "./config.js", root) == "shared/config.js"

    @pytest.mark.parametrize("specifier", ["./missing", "./lib/missing", "react", "@scope/pkg", "node:fs"])
    def test_unresolvable(self, root: Path, specifier: str) -> None:
        assert resolve_import_path("src/app.ts", specifier, root) is None

    def test_escaping_project_root(self, root: Path) -> None:
        assert resolve_import_path("src/app.ts", "../../outside", root) is None

    def test_name_too_long_is_unresolved(self, root: Path) -> None:
        assert resolve_import_path("src/app.ts", "./" + "x" * 300, root) is None

    def test_importer_at_root(self, root: Path) -> None:
        assert resolve_import_path("index.ts", "./src/util", root) == "src/util.ts"


class TestCache:
    def test_results_cached_per_directory(self, root: Path) -> None:
        resolver = ImportResolver(root)
        assert resolver.resolve("src/app.ts", "./util") == "src/util.ts"

        (root / "src" / "util.ts").unlink()

        # Same directory and specifier: served from cache
        assert resolver.resolve("src/other.ts", "./util") == "src/util.ts"
        # A fresh resolver sees the filesystem
        assert ImportResolver(root).resolve("src/app.ts", "./util") is None
