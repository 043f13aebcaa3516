"""SQLite engine and the per-transaction index writer.

Reads go through ORM sessions (``Database.session``). Writes go through
``IndexWriter``, which issues Core inserts and deletes on a single
connection inside one transaction. A writer opened with ``immediate=True``
takes the SQLite write lock before doing anything, so two processes never
interleave half-written files.
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import delete, event, text
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, SQLModel, create_engine

if TYPE_CHECKING:
    from sqlalchemy import ColumnElement, Connection, Engine

logger = structlog.get_logger()

BUSY_TIMEOUT_MS = 30000
LOCK_RETRIES = 3
BACKOFF_START = 0.1
BACKOFF_CAP = 2.0

_PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
    "PRAGMA foreign_keys=ON",
    "PRAGMA cache_size=-64000",
)


def _lock_contention(error: OperationalError) -> bool:
    message = str(error).lower()
    return "locked" in message or "busy" in message


def _backoff(attempt: int) -> float:
    return min(BACKOFF_START * 2**attempt, BACKOFF_CAP)


class Database:
    """Engine for one index file, with WAL and foreign keys on every connection."""

    def __init__(
        self,
        db_path: Path,
        max_retries: int = LOCK_RETRIES,
        busy_timeout_ms: int = BUSY_TIMEOUT_MS,
    ) -> None:
        self.db_path = db_path
        self.max_retries = max_retries
        self.busy_timeout_ms = busy_timeout_ms
        self.engine: Engine = create_engine(
            f"sqlite:///{db_path}",
            connect_args={"check_same_thread": False},
            pool_pre_ping=True,
        )
        event.listen(self.engine, "connect", self._on_connect)

    def _on_connect(self, dbapi_conn: Any, _record: Any) -> None:
        cursor = dbapi_conn.cursor()
        try:
            cursor.execute(f"PRAGMA busy_timeout={int(self.busy_timeout_ms)}")
            for pragma in _PRAGMAS:
                cursor.execute(pragma)
        finally:
            cursor.close()

    # Schema

    def create_all(self) -> None:
        SQLModel.metadata.create_all(self.engine)

    def drop_all(self) -> None:
        SQLModel.metadata.drop_all(self.engine)

    def table_names(self) -> set[str]:
        with self.engine.connect() as conn:
            result = conn.execute(text("SELECT name FROM sqlite_master WHERE type = 'table'"))
            return set(result.scalars())

    def dispose(self) -> None:
        self.engine.dispose()

    # Access

    @contextmanager
    def session(self) -> Iterator[Session]:
        with Session(self.engine) as session:
            yield session

    @contextmanager
    def bulk_writer(self, *, immediate: bool = False) -> Iterator[IndexWriter]:
        """Writer holding one transaction; committed on clean exit, rolled back otherwise.

        With ``immediate`` the transaction starts with BEGIN IMMEDIATE, retried
        with exponential backoff while another connection holds the write lock.
        """
        conn = self.engine.connect()
        try:
            if immediate:
                self._begin_immediate(conn)
            else:
                conn.begin()
            writer = IndexWriter(conn)
            try:
                yield writer
            except BaseException:
                conn.rollback()
                raise
            conn.commit()
        finally:
            conn.close()

    def _begin_immediate(self, conn: Connection) -> None:
        attempt = 0
        while True:
            conn.begin()
            try:
                conn.exec_driver_sql("BEGIN IMMEDIATE")
                return
            except OperationalError as e:
                conn.rollback()
                if not _lock_contention(e) or attempt >= self.max_retries:
                    raise
                delay = _backoff(attempt)
                attempt += 1
                logger.warning(
                    "sqlite_busy_retry",
                    attempt=attempt,
                    max_retries=self.max_retries,
                    delay_sec=delay,
                )
                time.sleep(delay)


class IndexWriter:
    """Core SQL writes on a connection whose transaction is already open."""

    def __init__(self, conn: Connection) -> None:
        self.conn = conn

    def insert_many(self, model: type[SQLModel], rows: list[dict[str, Any]]) -> int:
        if rows:
            self.conn.execute(model.__table__.insert(), rows)  # type: ignore[attr-defined]
        return len(rows)

    def insert_returning_id(self, model: type[SQLModel], row: dict[str, Any]) -> int:
        result = self.conn.execute(model.__table__.insert().values(**row))  # type: ignore[attr-defined]
        return int(result.inserted_primary_key[0])

    def delete_where(
        self,
        model: type[SQLModel],
        condition: ColumnElement[bool] | None = None,
    ) -> int:
        """Delete matching rows, or every row when ``condition`` is None."""
        stmt = delete(model.__table__)  # type: ignore[attr-defined]
        if condition is not None:
            stmt = stmt.where(condition)
        return self.conn.execute(stmt).rowcount
