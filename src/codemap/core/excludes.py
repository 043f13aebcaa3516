"""Directory names excluded from scanning and watching.

- VCS_AND_DATA_DIRS are never entered, whatever the configuration says.
- DEPENDENCY_DIRS hold installed packages and build output. The default
  exclude globs already drop them from scans; the .gitignore loader skips
  them too so nested ignore files inside node_modules are never read.
- WATCH_IGNORED_DIRS is the default for ``watch.ignored_dirs``.
"""

from __future__ import annotations

VCS_AND_DATA_DIRS: frozenset[str] = frozenset({".git", ".hg", ".svn", ".codemap"})

DEPENDENCY_DIRS: frozenset[str] = frozenset(
    {
        "node_modules",
        "bower_components",
        ".pnpm-store",
        ".yarn",
        ".next",
        ".nuxt",
        ".turbo",
        ".parcel-cache",
        "dist",
        "build",
        "out",
        "coverage",
        ".nyc_output",
    }
)

GITIGNORE_SKIP_DIRS: frozenset[str] = VCS_AND_DATA_DIRS | DEPENDENCY_DIRS

WATCH_IGNORED_DIRS: frozenset[str] = frozenset(
    {"node_modules", ".git", "dist", "build", ".codemap", "coverage", "__pycache__"}
)


def is_hardcoded_dir(name: str) -> bool:
    return name in VCS_AND_DATA_DIRS
