"""Project file discovery."""

from codemap.index._internal.discovery.ignore import (
    IgnoreChecker,
    expand_braces,
    matches_any,
    matches_glob,
)
from codemap.index._internal.discovery.scanner import FileScanner, GlobScanner, detect_language

__all__ = [
    "FileScanner",
    "GlobScanner",
    "IgnoreChecker",
    "detect_language",
    "expand_braces",
    "matches_any",
    "matches_glob",
]
