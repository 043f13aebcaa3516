"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config()
2. Environment variables (CODEMAP__SECTION__KEY)
3. Project JSON (codemap.config.json at the project root)
4. Global YAML (~/.config/codemap/config.yaml)
5. Built-in defaults (this file)

Environment Variable Format:
    CODEMAP__<SECTION>__<KEY>=<VALUE>

Examples:
    CODEMAP__LOGGING__LEVEL=DEBUG
    CODEMAP__INDEXER__MAX_WORKERS=8
    CODEMAP__WATCH__DEBOUNCE_SEC=0.5
    CODEMAP__INDEX__EXCLUDE='["**/vendor/**"]'
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from codemap.core.excludes import WATCH_IGNORED_DIRS

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

DEFAULT_INCLUDE: tuple[str, ...] = ("**/*.{ts,tsx,js,jsx,mjs,cjs}",)

DEFAULT_EXCLUDE: tuple[str, ...] = (
    "**/node_modules/**",
    "**/dist/**",
    "**/build/**",
    "**/.git/**",
    "**/*.d.ts",
    "**/*.test.{ts,tsx,js,jsx}",
    "**/*.spec.{ts,tsx,js,jsx}",
    "**/__tests__/**",
    "**/__mocks__/**",
    "**/coverage/**",
    "**/.codemap/**",
)

DEFAULT_LANGUAGES: dict[str, tuple[str, ...]] = {
    "typescript": (".ts", ".tsx", ".mts", ".cts"),
    "javascript": (".js", ".jsx", ".mjs", ".cjs"),
}


class LogOutputConfig(BaseModel):
    """Single logging output configuration."""

    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr, stdout, or absolute file path
    level: LogLevel | None = None  # Inherits from parent if None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v in ("stderr", "stdout"):
            return v
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"File destination must be absolute path: {v}")
        return str(path)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        CODEMAP__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="INFO",
        description="Root log level. DEBUG logs one event per indexed file.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class IndexConfig(BaseModel):
    """Which files are indexed and how their language is detected.

    Each key falls back to its default on its own, so a project file that
    only sets ``exclude`` keeps the default ``include`` and ``languages``.
    """

    include: list[str] = Field(
        default_factory=lambda: list(DEFAULT_INCLUDE),
        description="Glob patterns (project-relative, brace sets allowed) selecting files.",
    )
    exclude: list[str] = Field(
        default_factory=lambda: list(DEFAULT_EXCLUDE),
        description="Glob patterns removing files selected by include.",
    )
    languages: dict[str, list[str]] = Field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_LANGUAGES.items()},
        description="Language tag -> file extensions (with leading dot).",
    )

    @field_validator("include", "exclude")
    @classmethod
    def validate_patterns(cls, v: list[str]) -> list[str]:
        for pattern in v:
            if not pattern.strip():
                raise ValueError("Glob patterns must be non-empty strings")
        return v

    @field_validator("languages")
    @classmethod
    def validate_languages(cls, v: dict[str, list[str]]) -> dict[str, list[str]]:
        if not v:
            raise ValueError("At least one language must be configured")
        for language, extensions in v.items():
            if not extensions:
                raise ValueError(f"Language '{language}' has no extensions")
            for ext in extensions:
                if not ext.startswith(".") or len(ext) < 2:
                    raise ValueError(f"Extension must start with '.': {ext!r}")
        return {lang: [e.lower() for e in exts] for lang, exts in v.items()}

    def extension_map(self) -> dict[str, str]:
        """Extension -> language tag. First language listing an extension wins."""
        mapping: dict[str, str] = {}
        for language, extensions in self.languages.items():
            for ext in extensions:
                mapping.setdefault(ext, language)
        return mapping


class IndexerConfig(BaseModel):
    """Incremental indexer configuration.

    Env vars:
        CODEMAP__INDEXER__MAX_WORKERS: Extraction worker threads
        CODEMAP__INDEXER__QUEUE_MAX_SIZE: Extractions allowed ahead of the writer
    """

    max_workers: int = Field(default=4, ge=1, le=64)
    queue_max_size: int = Field(
        default=64,
        ge=1,
        description="Bound on extracted-but-unwritten files held in memory.",
    )


class WatchConfig(BaseModel):
    """Watch mode configuration.

    Env vars:
        CODEMAP__WATCH__DEBOUNCE_SEC: Quiet period before an update runs
    """

    debounce_sec: float = Field(default=0.3, gt=0, le=60)
    ignored_dirs: list[str] = Field(default_factory=lambda: sorted(WATCH_IGNORED_DIRS))


class DatabaseConfig(BaseModel):
    """SQLite store configuration."""

    busy_timeout_ms: int = Field(default=30000, ge=0)
    max_retries: int = Field(default=3, ge=0, le=10)


class CodemapConfig(BaseModel):
    """Root config model (for type hints)."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    index: IndexConfig = Field(default_factory=IndexConfig)
    indexer: IndexerConfig = Field(default_factory=IndexerConfig)
    watch: WatchConfig = Field(default_factory=WatchConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
