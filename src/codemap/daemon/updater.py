"""Debounced, single-flight index updates driven by watch events."""

from __future__ import annotations

import asyncio
import contextlib
import threading
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from codemap.index.indexer import IndexResult

logger = structlog.get_logger()


class UpdaterState(Enum):
    """Debounced updater state."""

    IDLE = "idle"
    UPDATING = "updating"
    STOPPING = "stopping"
    STOPPED = "stopped"


@dataclass
class UpdaterStatus:
    state: UpdaterState
    pending: int
    updates_run: int
    last_result: IndexResult | None = None
    last_error: str | None = None


@dataclass
class DebouncedUpdater:
    """
    Coalesces change notifications into index updates.

    Design:
    - notify() adds paths to a pending set and restarts the debounce timer
    - When the timer fires, exactly one update is scheduled
    - Updates run on a single worker thread; an update requested while one
      is running is queued and runs once after it
    - stop() cancels the timer and waits for the in-flight update
    """

    run_update: Callable[[], IndexResult]
    debounce_sec: float = 0.3
    on_complete: Callable[[IndexResult], None] | None = None

    _state: UpdaterState = field(default=UpdaterState.STOPPED, init=False)
    _executor: ThreadPoolExecutor | None = field(default=None, init=False)
    _pending_paths: set[str] = field(default_factory=set, init=False)
    _pending_lock: threading.Lock = field(default_factory=threading.Lock, init=False)
    _timer_task: asyncio.Task[None] | None = field(default=None, init=False)
    _update_task: asyncio.Task[None] | None = field(default=None, init=False)
    _rerun_requested: bool = field(default=False, init=False)
    _updates_run: int = field(default=0, init=False)
    _last_result: IndexResult | None = field(default=None, init=False)
    _last_error: str | None = field(default=None, init=False)

    def start(self) -> None:
        if self._executor is not None:
            return
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="codemap-updater")
        self._state = UpdaterState.IDLE
        logger.debug("updater_started", debounce_sec=self.debounce_sec)

    async def stop(self) -> None:
        """Cancel the pending timer and wait for any running update."""
        self._state = UpdaterState.STOPPING

        if self._timer_task is not None and not self._timer_task.done():
            self._timer_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._timer_task
        self._timer_task = None

        if self._update_task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._update_task
            self._update_task = None

        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

        self._state = UpdaterState.STOPPED
        logger.debug("updater_stopped", updates_run=self._updates_run)

    def notify(self, paths: Iterable[str]) -> None:
        """Record changed paths and (re)start the debounce timer.

        Must be called from the event loop thread.
        """
        if self._executor is None or self._state is UpdaterState.STOPPING:
            return

        with self._pending_lock:
            self._pending_paths.update(paths)
            count = len(self._pending_paths)
        logger.debug("paths_queued", total_pending=count)

        if self._timer_task is not None and not self._timer_task.done():
            self._timer_task.cancel()
        self._timer_task = asyncio.get_running_loop().create_task(self._debounce())

    async def _debounce(self) -> None:
        await asyncio.sleep(self.debounce_sec)
        self._request_update()

    def _request_update(self) -> None:
        if self._update_task is not None and not self._update_task.done():
            self._rerun_requested = True
            return
        self._update_task = asyncio.get_running_loop().create_task(self._run_updates())

    async def run_now(self) -> IndexResult | None:
        """Run one update immediately (outside the debounce), waiting for it."""
        if self._update_task is not None and not self._update_task.done():
            self._rerun_requested = True
            await self._update_task
            return self._last_result
        self._update_task = asyncio.get_running_loop().create_task(self._run_updates())
        await self._update_task
        return self._last_result

    async def _run_updates(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            with self._pending_lock:
                paths = sorted(self._pending_paths)
                self._pending_paths.clear()
            self._rerun_requested = False

            if self._executor is None:
                return
            self._state = UpdaterState.UPDATING
            logger.info("watch_update_started", changed=len(paths), sample=paths[:5])
            try:
                result = await loop.run_in_executor(self._executor, self.run_update)
            except Exception as e:
                self._last_error = str(e)
                logger.error("watch_update_failed", error=str(e))
            else:
                self._last_result = result
                self._last_error = None
                if self.on_complete is not None:
                    self.on_complete(result)
            finally:
                self._updates_run += 1
                if self._state is UpdaterState.UPDATING:
                    self._state = UpdaterState.IDLE

            if not self._rerun_requested or self._state is UpdaterState.STOPPING:
                return

    @property
    def status(self) -> UpdaterStatus:
        with self._pending_lock:
            pending = len(self._pending_paths)
        return UpdaterStatus(
            state=self._state,
            pending=pending,
            updates_run=self._updates_run,
            last_result=self._last_result,
            last_error=self._last_error,
        )
