"""Root conftest.py for test configuration.

Ensures local src/ directory takes priority over any installed packages.
"""

import os
import sys
from collections.abc import Callable, Generator
from pathlib import Path

import pytest

# Insert local src directory at the beginning of sys.path
# This ensures that the local codemap package is used, not any installed one
_src_dir = Path(__file__).parent.parent / "src"
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

# Force reimport of codemap modules if already imported
for module_name in list(sys.modules.keys()):
    if module_name.startswith("codemap"):
        del sys.modules[module_name]

from codemap.config.models import CodemapConfig, IndexerConfig  # noqa: E402
from codemap.index.store import IndexStore  # noqa: E402

WriteFiles = Callable[[dict[str, str]], None]


@pytest.fixture(autouse=True)
def isolated_config(tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the user's global config and CODEMAP__ env vars out of tests."""
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setattr("codemap.config.loader.GLOBAL_CONFIG_PATH", home / "config.yaml")
    for key in list(os.environ):
        if key.upper().startswith("CODEMAP__"):
            monkeypatch.delenv(key)


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """Empty project root (marked by package.json)."""
    root = tmp_path / "project"
    root.mkdir()
    (root / "package.json").write_text('{"name": "fixture"}\n')
    return root


@pytest.fixture
def write_files(project: Path) -> WriteFiles:
    """Write ``{relative path: content}`` into the project."""

    def _write(files: dict[str, str]) -> None:
        for rel, content in files.items():
            path = project / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)

    return _write


@pytest.fixture
def config() -> CodemapConfig:
    """Small worker pool and window so the bounded pipeline is exercised."""
    return CodemapConfig(indexer=IndexerConfig(max_workers=2, queue_max_size=2))


@pytest.fixture
def store(project: Path, config: CodemapConfig) -> Generator[IndexStore, None, None]:
    s = IndexStore.open(project, config)
    yield s
    s.close()
