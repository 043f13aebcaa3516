"""codemap watch mode - file watching and debounced incremental updates."""

from codemap.daemon.lifecycle import WatchController, run_watch
from codemap.daemon.updater import DebouncedUpdater, UpdaterState, UpdaterStatus
from codemap.daemon.watcher import FileWatcher

__all__ = [
    "DebouncedUpdater",
    "FileWatcher",
    "UpdaterState",
    "UpdaterStatus",
    "WatchController",
    "run_watch",
]
