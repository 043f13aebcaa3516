"""Tests for project root discovery and path helpers."""

from pathlib import Path

import pytest

from codemap.core.errors import ErrorCode, NotFoundError
from codemap.core.paths import (
    find_project_root,
    index_db_path,
    index_exists,
    normalize_rel,
    to_relative,
    writer_lock_path,
)


class TestFindProjectRoot:
    @pytest.mark.parametrize("marker", ["package.json", ".git", "codemap.config.json"])
    def test_marker_found_from_subdirectory(self, tmp_path: Path, marker: str) -> None:
        marker_path = tmp_path / marker
        if marker == ".git":
            marker_path.mkdir()
        else:
            marker_path.write_text("{}")
        nested = tmp_path / "src" / "deep"
        nested.mkdir(parents=True)

        assert find_project_root(nested) == tmp_path.resolve()

    def test_start_may_be_a_file(self, tmp_path: Path) -> None:
        (tmp_path / "package.json").write_text("{}")
        source = tmp_path / "index.ts"
        source.write_text("")

        assert find_project_root(source) == tmp_path.resolve()

    def test_nearest_marker_wins(self, tmp_path: Path) -> None:
        (tmp_path / ".git").mkdir()
        package = tmp_path / "packages" / "app"
        package.mkdir(parents=True)
        (package / "package.json").write_text("{}")

        assert find_project_root(package / "src") == package.resolve()

    def test_no_marker(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("codemap.core.paths.PROJECT_MARKERS", ("no-such-marker-file",))

        with pytest.raises(NotFoundError) as exc_info:
            find_project_root(tmp_path)
        assert exc_info.value.code == ErrorCode.PROJECT_ROOT_NOT_FOUND


class TestIndexLocations:
    def test_paths(self, tmp_path: Path) -> None:
        assert index_db_path(tmp_path) == tmp_path / ".codemap" / "index.db"
        assert writer_lock_path(tmp_path) == tmp_path / ".codemap" / "index.lock"
        assert not index_exists(tmp_path)

        index_db_path(tmp_path).parent.mkdir()
        index_db_path(tmp_path).write_bytes(b"")
        assert index_exists(tmp_path)


class TestRelativePaths:
    def test_to_relative(self, tmp_path: Path) -> None:
        assert to_relative(tmp_path, tmp_path / "src" / "a.ts") == "src/a.ts"
        assert to_relative(tmp_path, "src/a.ts") == "src/a.ts"

    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("src/./a.ts", "src/a.ts"),
            ("src/lib/../a.ts", "src/a.ts"),
            ("src/..", "."),
            ("..", None),
            ("src/../../a.ts", None),
        ],
    )
    def test_normalize_rel(self, path: str, expected: str | None) -> None:
        assert normalize_rel(path) == expected
