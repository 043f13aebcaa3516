"""Handle on one project's persistent index.

``IndexStore`` owns the ``Database`` for ``<project>/.codemap/index.db`` and
is passed explicitly to whatever needs it; nothing caches connections at
module level.

Writers are serialized per project: ``writer()`` takes an in-process lock
and an exclusive ``.codemap/index.lock`` file holding the owner's PID. A lock
file left behind by a process that no longer exists is reclaimed.
"""

from __future__ import annotations

import contextlib
import os
import threading
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from types import TracebackType

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from codemap.config.models import CodemapConfig
from codemap.core.errors import NotFoundError, StoreError
from codemap.core.paths import index_db_path, index_dir, index_exists, writer_lock_path
from codemap.index._internal.db import Database, ensure_schema
from codemap.index.queries import IndexQueries

logger = structlog.get_logger()


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists, owned by another user
        return True
    return True


def _read_lock_owner(lock_path: Path) -> int | None:
    try:
        return int(lock_path.read_text().strip())
    except (FileNotFoundError, ValueError):
        return None


class IndexStore:
    """Open index for one project root.

    Usage::

        with IndexStore.open(project_root) as store:
            with store.queries() as q:
                q.lookup_symbol("greet")
    """

    def __init__(self, project_root: Path, db: Database, *, recreated: bool = False) -> None:
        self.project_root = project_root
        self.db = db
        self.recreated = recreated
        self._write_lock = threading.Lock()

    @classmethod
    def open(
        cls,
        project_root: Path,
        config: CodemapConfig | None = None,
        *,
        create: bool = True,
    ) -> IndexStore:
        """Open (and with ``create``, initialize) the index of ``project_root``.

        Raises:
            NotFoundError: If ``create`` is False and no index exists.
            StoreError: If the database cannot be opened or its schema created.
        """
        root = project_root.resolve()
        db_config = (config or CodemapConfig()).database
        db_path = index_db_path(root)

        if not create and not index_exists(root):
            raise NotFoundError.index_missing(str(root))

        try:
            index_dir(root).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError.open_failed(str(db_path), str(e)) from e

        db = Database(
            db_path,
            max_retries=db_config.max_retries,
            busy_timeout_ms=db_config.busy_timeout_ms,
        )
        try:
            recreated = ensure_schema(db)
        except SQLAlchemyError as e:
            db.dispose()
            raise StoreError.open_failed(str(db_path), str(e)) from e

        logger.debug("store_opened", db_path=str(db_path), recreated=recreated)
        return cls(root, db, recreated=recreated)

    @classmethod
    def open_existing(cls, project_root: Path, config: CodemapConfig | None = None) -> IndexStore:
        return cls.open(project_root, config, create=False)

    @property
    def db_path(self) -> Path:
        return self.db.db_path

    @property
    def lock_path(self) -> Path:
        return writer_lock_path(self.project_root)

    def close(self) -> None:
        self.db.dispose()

    def __enter__(self) -> IndexStore:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        with self.db.session() as session:
            yield session

    @contextmanager
    def queries(self) -> Generator[IndexQueries, None, None]:
        """Queries over a fresh session, closed on exit."""
        with self.db.session() as session:
            yield IndexQueries(session)

    # -- writer lock ---------------------------------------------------------

    @contextmanager
    def writer(self) -> Generator[None, None, None]:
        """Hold the project's single-writer lock for the duration of the block.

        Raises:
            StoreError: ``writer_busy`` if another build or update holds it.
        """
        if not self._write_lock.acquire(blocking=False):
            raise StoreError.writer_busy(str(self.lock_path), os.getpid())
        try:
            self._acquire_lock_file()
            try:
                yield
            finally:
                self._release_lock_file()
        finally:
            self._write_lock.release()

    def _acquire_lock_file(self) -> None:
        lock_path = self.lock_path
        for _ in range(2):
            try:
                fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                owner = _read_lock_owner(lock_path)
                if owner is None or _pid_alive(owner):
                    raise StoreError.writer_busy(str(lock_path), owner) from None
                logger.warning("stale_writer_lock_reclaimed", lock_path=str(lock_path), pid=owner)
                with contextlib.suppress(FileNotFoundError):
                    lock_path.unlink()
                continue
            except OSError as e:
                raise StoreError.open_failed(str(lock_path), str(e)) from e
            with os.fdopen(fd, "w") as f:
                f.write(str(os.getpid()))
            return
        raise StoreError.writer_busy(str(lock_path), _read_lock_owner(lock_path))

    def _release_lock_file(self) -> None:
        lock_path = self.lock_path
        if _read_lock_owner(lock_path) == os.getpid():
            with contextlib.suppress(FileNotFoundError):
                lock_path.unlink()
