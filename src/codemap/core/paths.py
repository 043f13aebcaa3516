"""Project root discovery and index location helpers."""

from __future__ import annotations

import os
from pathlib import Path

from codemap.core.errors import NotFoundError

INDEX_DIR_NAME = ".codemap"
INDEX_DB_NAME = "index.db"
WRITER_LOCK_NAME = "index.lock"
CONFIG_FILE_NAME = "codemap.config.json"

PROJECT_MARKERS: tuple[str, ...] = ("package.json", ".git", CONFIG_FILE_NAME)


def find_project_root(start: Path | None = None) -> Path:
    """Walk upward from ``start`` until a directory holds a project marker.

    Raises:
        NotFoundError: If no ancestor contains package.json, .git or
            codemap.config.json.
    """
    origin = (start or Path.cwd()).resolve()
    current = origin if origin.is_dir() else origin.parent
    for candidate in (current, *current.parents):
        if any((candidate / marker).exists() for marker in PROJECT_MARKERS):
            return candidate
    raise NotFoundError.project_root(str(origin))


def index_dir(project_root: Path) -> Path:
    return project_root / INDEX_DIR_NAME


def index_db_path(project_root: Path) -> Path:
    return index_dir(project_root) / INDEX_DB_NAME


def writer_lock_path(project_root: Path) -> Path:
    return index_dir(project_root) / WRITER_LOCK_NAME


def index_exists(project_root: Path) -> bool:
    return index_db_path(project_root).is_file()


def to_relative(project_root: Path, path: Path | str) -> str:
    """Project-relative path with POSIX separators."""
    p = Path(path)
    if p.is_absolute():
        p = p.relative_to(project_root)
    return p.as_posix()


def to_absolute(project_root: Path, rel_path: str) -> Path:
    return project_root / rel_path


def normalize_rel(rel_path: str) -> str | None:
    """Collapse ``.`` and ``..`` segments of a project-relative path.

    Returns None when the path climbs above the project root.
    """
    normalized = os.path.normpath(rel_path).replace(os.sep, "/")
    if normalized == ".." or normalized.startswith("../") or os.path.isabs(normalized):
        return None
    return normalized
