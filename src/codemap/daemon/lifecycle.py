"""Watch mode lifecycle management."""

from __future__ import annotations

import asyncio
import signal
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from codemap.config.loader import load_config
from codemap.config.models import CodemapConfig
from codemap.daemon.updater import DebouncedUpdater
from codemap.daemon.watcher import FileWatcher
from codemap.index.indexer import Indexer, IndexResult
from codemap.index.store import IndexStore

logger = structlog.get_logger()


@dataclass
class WatchController:
    """
    Orchestrates watch mode components.

    Components:
    - Indexer: update() against the project's store
    - DebouncedUpdater: Coalesces events, runs updates off the event loop
    - FileWatcher: Async filesystem monitoring
    """

    store: IndexStore
    config: CodemapConfig = field(default_factory=CodemapConfig)

    indexer: Indexer = field(init=False)
    updater: DebouncedUpdater = field(init=False)
    watcher: FileWatcher = field(init=False)

    def __post_init__(self) -> None:
        self.indexer = Indexer(self.store, config=self.config)
        self.updater = DebouncedUpdater(
            run_update=self.indexer.update,
            debounce_sec=self.config.watch.debounce_sec,
            on_complete=_log_update,
        )
        self.watcher = FileWatcher(
            project_root=self.store.project_root,
            on_change=self.updater.notify,
            config=self.config,
        )

    async def start(self) -> IndexResult | None:
        """Bring the index up to date, then start watching."""
        logger.info("watch_starting", project_root=str(self.store.project_root))
        self.updater.start()
        initial = await self.updater.run_now()
        await self.watcher.start()
        logger.info("watch_started")
        return initial

    async def stop(self) -> None:
        """Stop the watcher first (no new events), then drain the updater."""
        logger.info("watch_stopping")
        await self.watcher.stop()
        await self.updater.stop()
        logger.info("watch_stopped")


def _log_update(result: IndexResult) -> None:
    if result.changed or result.errors:
        logger.info("index_refreshed", **result.to_dict())


async def run_watch(
    project_root: Path,
    config: CodemapConfig | None = None,
    *,
    shutdown: asyncio.Event | None = None,
) -> None:
    """Keep the index of ``project_root`` current until SIGINT/SIGTERM.

    Setting ``shutdown`` has the same effect as a signal.
    """
    root = project_root.resolve()
    config = config or load_config(root)
    shutdown = shutdown or asyncio.Event()

    store = IndexStore.open(root, config)
    controller = WatchController(store=store, config=config)

    loop = asyncio.get_running_loop()

    def signal_handler() -> None:
        logger.info("shutdown_signal_received")
        shutdown.set()

    installed: list[signal.Signals] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, signal_handler)
        except (NotImplementedError, RuntimeError):
            # Not on the main thread, or no signal support on this platform
            continue
        installed.append(sig)

    try:
        await controller.start()
        await shutdown.wait()
    finally:
        await controller.stop()
        for sig in installed:
            loop.remove_signal_handler(sig)
        store.close()
