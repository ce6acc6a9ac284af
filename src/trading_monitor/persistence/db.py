from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager, suppress
from pathlib import Path
from typing import Any, Iterator, Sequence

from trading_monitor.core.exceptions import PersistenceError
from trading_monitor.persistence.migrations import apply_migrations
from trading_monitor.persistence.repos import SnapshotRepo, TrainingRepo


class Database:
    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._local = threading.local()
        self._init_lock = threading.Lock()
        self._initialized = False

    def initialize(self) -> None:
        with self._init_lock:
            if self._initialized:
                return
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                conn = self._connect_new()
                try:
                    apply_migrations(conn)
                    conn.execute("PRAGMA journal_mode=WAL;")
                    conn.execute("PRAGMA synchronous=NORMAL;")
                finally:
                    conn.close()
            except (OSError, sqlite3.Error) as exc:
                raise PersistenceError(f"Failed initializing database {self.path}: {exc}") from exc
            self._initialized = True

    def _connect_new(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            self.path,
            timeout=30,
            isolation_level=None,  # autocommit; we manage transactions explicitly
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        return conn

    def conn(self) -> sqlite3.Connection:
        if not getattr(self._local, "conn", None):
            self._local.conn = self._connect_new()
        return self._local.conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = self.conn()
            conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as exc:
            raise PersistenceError(str(exc)) from exc
        try:
            yield conn
            conn.execute("COMMIT")
        except (sqlite3.Error, OverflowError) as exc:
            self._rollback(conn)
            raise PersistenceError(str(exc)) from exc
        except Exception:
            self._rollback(conn)
            raise

    @staticmethod
    def _rollback(conn: sqlite3.Connection) -> None:
        # A failed ROLLBACK must not mask the error that triggered it.
        with suppress(sqlite3.Error):
            conn.execute("ROLLBACK")

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> None:
        try:
            self.conn().execute(sql, params or [])
        except Exception as exc:
            raise PersistenceError(str(exc)) from exc

    def query_all(self, sql: str, params: Sequence[Any] | None = None) -> list[sqlite3.Row]:
        try:
            cur = self.conn().execute(sql, params or [])
            return list(cur.fetchall())
        except Exception as exc:
            raise PersistenceError(str(exc)) from exc

    def query_one(self, sql: str, params: Sequence[Any] | None = None) -> sqlite3.Row | None:
        try:
            cur = self.conn().execute(sql, params or [])
            return cur.fetchone()
        except Exception as exc:
            raise PersistenceError(str(exc)) from exc

    def snapshot_repo(self) -> SnapshotRepo:
        return SnapshotRepo(self)

    def training_repo(self) -> TrainingRepo:
        return TrainingRepo(self)
