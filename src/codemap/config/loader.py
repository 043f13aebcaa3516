"""Resolve a CodemapConfig from files, environment and overrides.

Later sources win, key by key:

    defaults < ~/.config/codemap/config.yaml < <project>/codemap.config.json
             < CODEMAP__SECTION__KEY env vars < load_config() kwargs

The project file keeps the flat shape projects already commit::

    {"include": [...], "exclude": [...], "languages": {"typescript": [".ts"]}}

Top-level include/exclude/languages land in the ``index`` section; any other
top-level key must name a section (``indexer``, ``watch``, ...).
"""

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any, TextIO

import structlog
import yaml
from pydantic import ValidationError
from pydantic_settings import (
    BaseSettings,
    InitSettingsSource,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from codemap.config.models import (
    CodemapConfig,
    DatabaseConfig,
    IndexConfig,
    IndexerConfig,
    LoggingConfig,
    WatchConfig,
)
from codemap.core.errors import ConfigError
from codemap.core.paths import CONFIG_FILE_NAME

logger = structlog.get_logger()

GLOBAL_CONFIG_PATH = Path("~/.config/codemap/config.yaml").expanduser()

_INDEX_KEYS = frozenset({"include", "exclude", "languages"})


def _read_mapping(
    path: Path,
    parse: Callable[[TextIO], Any],
    errors: type[Exception] | tuple[type[Exception], ...],
) -> dict[str, Any]:
    if not path.is_file():
        return {}
    try:
        with path.open(encoding="utf-8") as f:
            data = parse(f)
    except errors as e:
        raise ConfigError.parse_error(str(path), str(e)) from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError.parse_error(str(path), f"expected a mapping, got {type(data).__name__}")
    return data


def _load_yaml(path: Path) -> dict[str, Any]:
    return _read_mapping(path, yaml.safe_load, yaml.YAMLError)


def _load_project_json(path: Path) -> dict[str, Any]:
    """Read codemap.config.json, folding its flat keys into the index section."""
    data = _read_mapping(path, json.load, json.JSONDecodeError)
    flat = {k: v for k, v in data.items() if k in _INDEX_KEYS}
    sections = {k: v for k, v in data.items() if k not in _INDEX_KEYS}
    if flat:
        sections["index"] = _deep_merge(sections.get("index") or {}, flat)
    return sections


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def _settings_for(file_config: dict[str, Any]) -> type[BaseSettings]:
    """Settings class whose lowest-priority source is ``file_config``.

    A fresh class per call keeps concurrent loads for different projects apart.
    """

    class CodemapSettings(BaseSettings):
        model_config = SettingsConfigDict(
            env_prefix="CODEMAP__",
            env_nested_delimiter="__",
            case_sensitive=False,
        )

        logging: LoggingConfig = LoggingConfig()
        index: IndexConfig = IndexConfig()
        indexer: IndexerConfig = IndexerConfig()
        watch: WatchConfig = WatchConfig()
        database: DatabaseConfig = DatabaseConfig()

        @classmethod
        def settings_customise_sources(
            cls,
            settings_cls: type[BaseSettings],
            init_settings: PydanticBaseSettingsSource,
            env_settings: PydanticBaseSettingsSource,
            dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
            file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        ) -> tuple[PydanticBaseSettingsSource, ...]:
            files = InitSettingsSource(settings_cls, init_kwargs=file_config)
            return (init_settings, env_settings, files)

    return CodemapSettings


def load_config(project_root: Path | None = None, **kwargs: Any) -> CodemapConfig:
    """Load the effective configuration for ``project_root`` (default: cwd).

    Keyword arguments override whole sections, e.g. ``indexer={"max_workers": 2}``.

    Raises:
        ConfigError: A config file does not parse, or a value fails validation.
    """
    root = project_root or Path.cwd()

    merged = _load_yaml(GLOBAL_CONFIG_PATH)
    project_path = root / CONFIG_FILE_NAME
    if project := _load_project_json(project_path):
        logger.debug("project_config_loaded", path=str(project_path))
        merged = _deep_merge(merged, project)

    try:
        settings = _settings_for(merged)(**kwargs)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"])
        raise ConfigError.invalid_value(field, first.get("input"), first["msg"]) from e
    return CodemapConfig.model_validate(settings.model_dump())
