"""Glob and .gitignore matching used by the file scanner.

Tiered Architecture:
- VCS internals and .codemap: never traversed
- Config exclude patterns: directories they cover are pruned during the walk
- .gitignore patterns: loaded from the root and nested directories
"""

from __future__ import annotations

import fnmatch
import re
from pathlib import Path, PurePosixPath

from codemap.core.excludes import GITIGNORE_SKIP_DIRS, is_hardcoded_dir

__all__ = [
    "IgnoreChecker",
    "expand_braces",
    "matches_any",
    "matches_glob",
]

_BRACE_RE = re.compile(r"\{([^{}]*)\}")


def expand_braces(pattern: str) -> list[str]:
    """Expand ``*.{ts,tsx}`` into ``["*.ts", "*.tsx"]`` (nested groups allowed)."""
    match = _BRACE_RE.search(pattern)
    if match is None:
        return [pattern]
    head, tail = pattern[: match.start()], pattern[match.end() :]
    expanded: list[str] = []
    for option in match.group(1).split(","):
        expanded.extend(expand_braces(f"{head}{option}{tail}"))
    return expanded


def matches_glob(rel_path: str, pattern: str) -> bool:
    """Check if a path matches a glob pattern, with ** support."""
    if fnmatch.fnmatchcase(rel_path, pattern):
        return True
    # Handle **/pattern for any-depth matching (including the root)
    if pattern.startswith("**/"):
        return matches_glob(rel_path, pattern[3:])
    return False


def matches_any(rel_path: str, patterns: list[str]) -> bool:
    return any(matches_glob(rel_path, p) for p in patterns)


class IgnoreChecker:
    """Checks project-relative paths against .gitignore patterns.

    Pattern syntax (the subset of gitignore in common use):
    - Patterns without ``/`` match any path segment (``*.log``, ``tmp``)
    - Patterns with ``/`` are anchored to the directory of their .gitignore
    - Trailing ``/`` matches directories and their contents
    - ``!`` negates an earlier match
    """

    def __init__(self, root: Path, *, respect_gitignore: bool = True) -> None:
        self._root = root
        # (pattern, negated, anchored)
        self._patterns: list[tuple[str, bool, bool]] = []
        if respect_gitignore:
            self._load_gitignore_recursive(root)

    @property
    def pattern_count(self) -> int:
        return len(self._patterns)

    def should_prune_dir(self, dirname: str) -> bool:
        """Hardcoded directories are never traversed."""
        return is_hardcoded_dir(dirname)

    def _load_gitignore_recursive(self, root: Path) -> None:
        """Load .gitignore from root and all subdirectories.

        Nested files have their patterns prefixed with their directory.
        """
        root_gitignore = root / ".gitignore"
        if root_gitignore.exists():
            self._load_ignore_file(root_gitignore)

        for dirpath, dirnames, filenames in root.walk():
            dirnames[:] = [d for d in dirnames if d not in GITIGNORE_SKIP_DIRS]

            if dirpath == root:
                continue  # Already loaded

            if ".gitignore" in filenames:
                rel_dir = dirpath.relative_to(root).as_posix()
                self._load_ignore_file(dirpath / ".gitignore", prefix=rel_dir)

    def _load_ignore_file(self, path: Path, prefix: str = "") -> None:
        try:
            content = path.read_text(encoding="utf-8", errors="replace")
        except OSError:
            return
        for raw in content.splitlines():
            line = raw.strip()
            if not line or line.startswith("#"):
                continue

            negated = line.startswith("!")
            if negated:
                line = line[1:]

            # Directory patterns (ending in /) match all contents
            if line.endswith("/"):
                line = f"{line}**"

            anchored = "/" in line.rstrip("*").rstrip("/")
            line = line.lstrip("/")
            if prefix:
                line = f"{prefix}/{line}"
                anchored = True

            self._patterns.append((line, negated, anchored))

    def _pattern_matches(self, rel_path: PurePosixPath, pattern: str, anchored: bool) -> bool:
        rel_str = rel_path.as_posix()
        if anchored:
            if matches_glob(rel_str, pattern):
                return True
            return any(
                matches_glob(parent.as_posix(), pattern.removesuffix("/**"))
                for parent in rel_path.parents
                if parent.as_posix() != "."
            )
        name_pattern = pattern.removesuffix("/**")
        return any(fnmatch.fnmatchcase(part, name_pattern) for part in rel_path.parts)

    def should_ignore(self, rel_path: str) -> bool:
        """Check a project-relative POSIX path. Later patterns override earlier ones."""
        path = PurePosixPath(rel_path)
        if any(is_hardcoded_dir(part) for part in path.parts[:-1]):
            return True

        ignored = False
        for pattern, negated, anchored in self._patterns:
            if negated == ignored and self._pattern_matches(path, pattern, anchored):
                ignored = not negated
        return ignored
