"""Resolve relative import specifiers to project files.

Probe order for a specifier ``./x`` written in ``src/a.ts``:
1. ``src/x`` itself, when it is a file
2. ``src/x`` + each of SOURCE_EXTENSIONS
3. ``src/x/index`` + each of INDEX_EXTENSIONS, when ``src/x`` is a directory
4. When the specifier ends in a runtime extension (``./x.js``), steps 1-3
   again with that extension stripped, since TypeScript sources import
   their compiled names.

Bare specifiers are external and never resolve. Specifiers starting with
``/`` are taken relative to the project root. A probe that hits an OS error
(name too long, permission denied) counts as a miss.
"""

from __future__ import annotations

import os
import posixpath
from pathlib import Path

from codemap.core.paths import normalize_rel
from codemap.index._internal.extraction import is_external_specifier

SOURCE_EXTENSIONS: tuple[str, ...] = (".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs")
INDEX_EXTENSIONS: tuple[str, ...] = (".ts", ".tsx", ".js", ".jsx")
RUNTIME_EXTENSIONS: frozenset[str] = frozenset({".js", ".jsx", ".mjs", ".cjs"})


class ImportResolver:
    """Filesystem-backed resolver with a per-instance cache.

    Create one per indexing run; results are not invalidated when files
    appear or disappear afterwards.
    """

    def __init__(self, project_root: Path) -> None:
        self._root = project_root
        self._cache: dict[tuple[str, str], str | None] = {}

    def resolve(self, importer_path: str, specifier: str) -> str | None:
        """Project-relative path ``specifier`` points at, or None."""
        if is_external_specifier(specifier):
            return None
        importer_dir = posixpath.dirname(importer_path)
        key = (importer_dir, specifier)
        if key not in self._cache:
            self._cache[key] = self._resolve(importer_dir, specifier)
        return self._cache[key]

    def _resolve(self, importer_dir: str, specifier: str) -> str | None:
        if specifier.startswith("/"):
            joined = specifier.lstrip("/") or "."
        else:
            joined = posixpath.join(importer_dir, specifier) if importer_dir else specifier
        base = normalize_rel(joined)
        if base is None:
            return None

        found = self._probe(base)
        if found is None:
            stem, ext = posixpath.splitext(base)
            if ext in RUNTIME_EXTENSIONS:
                found = self._probe(stem)
        return found

    def _probe(self, base: str) -> str | None:
        if base != ".":
            if os.path.isfile(self._root / base):
                return base
            for ext in SOURCE_EXTENSIONS:
                candidate = base + ext
                if os.path.isfile(self._root / candidate):
                    return candidate

        if os.path.isdir(self._root / base):
            prefix = "" if base == "." else f"{base}/"
            for ext in INDEX_EXTENSIONS:
                candidate = f"{prefix}index{ext}"
                if os.path.isfile(self._root / candidate):
                    return candidate
        return None


def resolve_import_path(importer_path: str, specifier: str, project_root: Path) -> str | None:
    """One-off resolution without caching."""
    return ImportResolver(project_root).resolve(importer_path, specifier)
