"""Tests for config/models.py validation and helpers."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from codemap.config.models import (
    CodemapConfig,
    IndexConfig,
    IndexerConfig,
    LogOutputConfig,
    WatchConfig,
)


class TestIndexConfig:
    def test_extension_map_defaults(self) -> None:
        mapping = IndexConfig().extension_map()

        assert mapping[".ts"] == "typescript"
        assert mapping[".tsx"] == "typescript"
        assert mapping[".js"] == "javascript"
        assert mapping[".cjs"] == "javascript"

    def test_first_language_wins(self) -> None:
        config = IndexConfig(languages={"typescript": [".ts", ".js"], "javascript": [".js"]})
        assert config.extension_map() == {".ts": "typescript", ".js": "typescript"}

    def test_extensions_lowercased(self) -> None:
        config = IndexConfig(languages={"typescript": [".TS"]})
        assert config.languages == {"typescript": [".ts"]}

    @pytest.mark.parametrize(
        "languages",
        [
            {},
            {"typescript": []},
            {"typescript": ["ts"]},
            {"typescript": ["."]},
        ],
    )
    def test_invalid_languages(self, languages: dict[str, list[str]]) -> None:
        with pytest.raises(ValidationError):
            IndexConfig(languages=languages)

    def test_blank_pattern_rejected(self) -> None:
        with pytest.raises(ValidationError):
            IndexConfig(exclude=["  "])

    def test_defaults_are_independent(self) -> None:
        a, b = IndexConfig(), IndexConfig()
        a.exclude.append("x")
        assert "x" not in b.exclude


class TestBounds:
    def test_indexer_workers_bounds(self) -> None:
        with pytest.raises(ValidationError):
            IndexerConfig(max_workers=0)
        with pytest.raises(ValidationError):
            IndexerConfig(queue_max_size=0)

    def test_watch_debounce_positive(self) -> None:
        with pytest.raises(ValidationError):
            WatchConfig(debounce_sec=0)

    def test_watch_ignores_build_dirs(self) -> None:
        ignored = WatchConfig().ignored_dirs
        assert {"node_modules", ".git", "dist", ".codemap"} <= set(ignored)


class TestLogOutputConfig:
    def test_stream_destinations(self) -> None:
        assert LogOutputConfig(destination="stdout").destination == "stdout"

    def test_relative_file_rejected(self) -> None:
        with pytest.raises(ValidationError):
            LogOutputConfig(destination="logs/codemap.log")

    def test_home_expanded(self) -> None:
        output = LogOutputConfig(destination="~/codemap.log")
        assert not output.destination.startswith("~")


def test_root_defaults() -> None:
    config = CodemapConfig()
    assert config.database.max_retries == 3
    assert config.logging.outputs[0].format == "console"
