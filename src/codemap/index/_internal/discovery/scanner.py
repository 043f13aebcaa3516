"""File discovery: which project files are indexable, with their mtimes.

The indexer only depends on the ``FileScanner`` protocol; ``GlobScanner`` is
the default implementation driven by ``IndexConfig``.
"""

from __future__ import annotations

from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Protocol

import structlog

from codemap.index._internal.discovery.ignore import IgnoreChecker, expand_braces, matches_any

if TYPE_CHECKING:
    from codemap.config.models import IndexConfig

logger = structlog.get_logger()


class FileScanner(Protocol):
    """Enumerates indexable files of one project."""

    def scan(self) -> dict[str, float]:
        """Project-relative POSIX path -> modification time (seconds)."""
        ...

    def language_of(self, rel_path: str) -> str | None:
        """Language tag for a path, or None when its extension is not configured."""
        ...


def detect_language(rel_path: str, extension_map: dict[str, str]) -> str | None:
    return extension_map.get(PurePosixPath(rel_path).suffix.lower())


class GlobScanner:
    """Walks the project applying include/exclude globs and .gitignore rules."""

    def __init__(
        self,
        project_root: Path,
        config: IndexConfig,
        *,
        respect_gitignore: bool = True,
    ) -> None:
        self._root = project_root
        self._include = [p for pattern in config.include for p in expand_braces(pattern)]
        self._exclude = [p for pattern in config.exclude for p in expand_braces(pattern)]
        self._extensions = config.extension_map()
        self._respect_gitignore = respect_gitignore

    @property
    def project_root(self) -> Path:
        return self._root

    def language_of(self, rel_path: str) -> str | None:
        return detect_language(rel_path, self._extensions)

    def is_indexable(self, rel_path: str, ignore_checker: IgnoreChecker | None = None) -> bool:
        """Apply extension, include, exclude and gitignore rules to one path."""
        if self.language_of(rel_path) is None:
            return False
        if not matches_any(rel_path, self._include):
            return False
        if matches_any(rel_path, self._exclude):
            return False
        return not (ignore_checker is not None and ignore_checker.should_ignore(rel_path))

    def _prune_dir(self, rel_dir: str, name: str, ignore_checker: IgnoreChecker) -> bool:
        if ignore_checker.should_prune_dir(name):
            return True
        # A directory is pruned when an exclude pattern covers everything below it
        if matches_any(f"{rel_dir}/", self._exclude):
            return True
        return ignore_checker.should_ignore(f"{rel_dir}/")

    def scan(self) -> dict[str, float]:
        ignore_checker = IgnoreChecker(self._root, respect_gitignore=self._respect_gitignore)
        found: dict[str, float] = {}

        for dirpath, dirnames, filenames in self._root.walk():
            rel_dir = dirpath.relative_to(self._root).as_posix()
            prefix = "" if rel_dir == "." else f"{rel_dir}/"
            dirnames[:] = sorted(
                d for d in dirnames if not self._prune_dir(f"{prefix}{d}", d, ignore_checker)
            )
            for filename in sorted(filenames):
                rel_path = f"{prefix}{filename}"
                if not self.is_indexable(rel_path, ignore_checker):
                    continue
                try:
                    found[rel_path] = (dirpath / filename).stat().st_mtime
                except OSError:
                    # Removed between listing and stat
                    continue

        logger.debug("scan_complete", root=str(self._root), files=len(found))
        return found
