"""Filesystem events for indexable files, via watchfiles.

One recursive ``awatch`` covers the project root. Its ``watch_filter`` drops
paths under ignored directories (``watch.ignored_dirs``) and paths whose
extension no configured language claims. Batches are handed to ``on_change``
as sorted project-relative POSIX paths; debouncing belongs to the receiver.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable
from pathlib import Path, PurePosixPath

import structlog
from watchfiles import Change, awatch

from codemap.config.models import CodemapConfig

logger = structlog.get_logger()

# watchfiles batching window and poll step, in milliseconds
_BATCH_MS = 50
_STEP_MS = 50

_RESTART_DELAY_SEC = 1.0
_STOP_GRACE_SEC = 2.0


class FileWatcher:
    """Reports changes to indexable files under ``project_root``.

    ``on_change`` runs on the event loop thread.
    """

    def __init__(
        self,
        project_root: Path,
        on_change: Callable[[list[str]], None],
        config: CodemapConfig | None = None,
    ) -> None:
        config = config or CodemapConfig()
        self.project_root = project_root.resolve()
        self.on_change = on_change
        self._extensions = frozenset(config.index.extension_map())
        self._ignored_dirs = frozenset(config.watch.ignored_dirs)
        self._halt = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def relative_path(self, path: Path | str) -> str | None:
        """Project-relative path for an event, or None when it is not of interest."""
        try:
            rel = PurePosixPath(Path(path).resolve().relative_to(self.project_root).as_posix())
        except ValueError:
            return None
        if self._ignored_dirs.intersection(rel.parts[:-1]):
            return None
        if rel.suffix.lower() not in self._extensions:
            return None
        return str(rel)

    def _watch_filter(self, _change: Change, path: str) -> bool:
        return self.relative_path(path) is not None

    async def start(self) -> None:
        if self.running:
            return
        self._halt = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name="codemap-watcher")
        logger.info("file_watcher_started", project_root=str(self.project_root))

    async def stop(self) -> None:
        """Signal the watch loop and wait for it, cancelling after a grace period."""
        self._halt.set()
        task, self._task = self._task, None
        if task is not None:
            done, _ = await asyncio.wait({task}, timeout=_STOP_GRACE_SEC)
            if not done:
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
        logger.info("file_watcher_stopped")

    async def _run(self) -> None:
        # awatch can die on transient OS errors (a watched dir removed, inotify
        # limits); restart it until asked to halt.
        while not self._halt.is_set():
            try:
                async for changes in awatch(
                    self.project_root,
                    watch_filter=self._watch_filter,
                    debounce=_BATCH_MS,
                    step=_STEP_MS,
                    stop_event=self._halt,
                    ignore_permission_denied=True,
                ):
                    self._handle_changes(changes)
            except Exception as e:
                if self._halt.is_set():
                    break
                logger.error("watcher_error", error=str(e), retry_in_sec=_RESTART_DELAY_SEC)
                with contextlib.suppress(TimeoutError):
                    await asyncio.wait_for(self._halt.wait(), timeout=_RESTART_DELAY_SEC)

    def _handle_changes(self, changes: set[tuple[Change, str]]) -> None:
        paths = sorted({rel for _change, raw in changes if (rel := self.relative_path(raw))})
        if paths:
            logger.debug("watch_events", count=len(paths), sample=paths[:5])
            self.on_change(paths)
