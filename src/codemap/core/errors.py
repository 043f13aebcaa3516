"""codemap error types with typed error codes.

Error code ranges:
- 1xxx: Config
- 2xxx: Parse
- 3xxx: Store
- 4xxx: Not found (raised by queries and path resolution)
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Stable numeric codes; the name doubles as the ``error`` field of to_dict()."""

    # Config (1xxx)
    CONFIG_PARSE_ERROR = 1001
    CONFIG_INVALID_VALUE = 1002

    # Parse (2xxx)
    PARSE_UNSUPPORTED_LANGUAGE = 2001
    PARSE_EXTRACTION_FAILED = 2002

    # Store (3xxx)
    STORE_OPEN_FAILED = 3001
    STORE_WRITE_FAILED = 3002
    STORE_WRITER_BUSY = 3003

    # Not found (4xxx)
    INDEX_NOT_FOUND = 4001
    FILE_NOT_INDEXED = 4002
    FILE_NOT_FOUND = 4003
    PROJECT_ROOT_NOT_FOUND = 4004
    SYMBOL_NOT_FOUND = 4005


@dataclass(frozen=True, slots=True)
class CodemapError(Exception):
    """Base for every error the index raises. Only subclasses are raised."""

    code: ErrorCode
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ConfigError(CodemapError):
    """Configuration-related errors. Fatal to the operation that loads config."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )


class ParseError(CodemapError):
    """A file could not be turned into a usable tree or extraction."""

    @classmethod
    def unsupported_language(cls, path: str, language: str) -> "ParseError":
        return cls(
            code=ErrorCode.PARSE_UNSUPPORTED_LANGUAGE,
            message=f"No grammar available for language '{language}' ({path})",
            details={"path": path, "language": language},
        )

    @classmethod
    def extraction_failed(cls, path: str, reason: str) -> "ParseError":
        return cls(
            code=ErrorCode.PARSE_EXTRACTION_FAILED,
            message=f"Failed to extract {path}: {reason}",
            details={"path": path, "reason": reason},
        )


class StoreError(CodemapError):
    """Failure to open, create or write the persistent store."""

    @classmethod
    def open_failed(cls, path: str, reason: str) -> "StoreError":
        return cls(
            code=ErrorCode.STORE_OPEN_FAILED,
            message=f"Failed to open index at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def write_failed(cls, path: str, reason: str) -> "StoreError":
        return cls(
            code=ErrorCode.STORE_WRITE_FAILED,
            message=f"Failed to write index rows for {path}: {reason}",
            retryable=True,
            details={"path": path, "reason": reason},
        )

    @classmethod
    def writer_busy(cls, lock_path: str, owner_pid: int | None) -> "StoreError":
        return cls(
            code=ErrorCode.STORE_WRITER_BUSY,
            message=f"Another indexing run holds the writer lock ({lock_path})",
            retryable=True,
            details={"lock_path": lock_path, "owner_pid": owner_pid},
        )


class NotFoundError(CodemapError):
    """Query-time not-found conditions."""

    @property
    def suggestions(self) -> list[str]:
        return list(self.details.get("suggestions", []))

    @classmethod
    def index_missing(cls, project_root: str) -> "NotFoundError":
        return cls(
            code=ErrorCode.INDEX_NOT_FOUND,
            message=f"No index found for {project_root}; build one first",
            details={"project_root": project_root},
        )

    @classmethod
    def file_not_indexed(cls, path: str) -> "NotFoundError":
        return cls(
            code=ErrorCode.FILE_NOT_INDEXED,
            message=f"File is not in the index: {path}",
            details={"path": path},
        )

    @classmethod
    def file_absent(cls, path: str) -> "NotFoundError":
        return cls(
            code=ErrorCode.FILE_NOT_FOUND,
            message=f"File not found: {path}",
            details={"path": path},
        )

    @classmethod
    def project_root(cls, start: str) -> "NotFoundError":
        return cls(
            code=ErrorCode.PROJECT_ROOT_NOT_FOUND,
            message=f"Could not find a project root above {start}",
            details={"start": start},
        )

    @classmethod
    def symbol(cls, query: str, suggestions: list[str]) -> "NotFoundError":
        message = f"Symbol not found: {query}"
        if suggestions:
            message += f" (did you mean: {', '.join(suggestions)}?)"
        return cls(
            code=ErrorCode.SYMBOL_NOT_FOUND,
            message=message,
            details={"query": query, "suggestions": list(suggestions)},
        )

