"""SQLite implementation of the key store."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional, Union

from ..errors import (
    StoreInitializationError,
    StoreReadError,
    StoreTimeoutError,
    StoreWriteError,
)
from ..migrations import (
    MIGRATIONS_TABLE,
    load_migrations,
    pending_migrations,
    split_statements,
)
from .base import TABLE, BaseKeyStore, Row, current_call

logger = logging.getLogger(__name__)

# Stay below SQLITE_MAX_VARIABLE_NUMBER on older builds.
_DELETE_BATCH = 500


def _is_transient(exc: sqlite3.Error) -> bool:
    message = str(exc).lower()
    return isinstance(exc, sqlite3.OperationalError) and (
        "locked" in message or "busy" in message
    )


def _check_deadline(call: Optional[threading.Event]) -> None:
    if call is not None and call.is_set():
        raise StoreTimeoutError("Deadline expired before the statement ran")


class SQLiteKeyStore(BaseKeyStore):
    """Persist signing keys using SQLite.

    One connection is shared by all operations. Blocking calls run in worker
    threads and take turns on the connection through ``_lock``. The call
    holding the connection is recorded so that an expired deadline only
    interrupts its own statement.
    """

    dialect = "sqlite"

    def __init__(
        self,
        db_path: Union[str, Path],
        migrations_dir: Optional[Union[str, Path]] = None,
        **options: Any,
    ) -> None:
        super().__init__(**options)
        self.db_path = str(db_path)
        self._migrations_dir = migrations_dir
        self._lock = threading.Lock()
        # Guards _owner and the interrupt decision.
        self._owner_lock = threading.Lock()
        self._owner: Optional[threading.Event] = None
        try:
            # Autocommit; migrations manage their own transaction.
            self._conn = sqlite3.connect(
                self.db_path, check_same_thread=False, isolation_level=None
            )
        except sqlite3.Error as e:
            raise StoreInitializationError(
                f"Cannot open SQLite database {self.db_path}: {e}"
            ) from e

    @contextmanager
    def _claim(self, call: Optional[threading.Event]) -> Iterator[sqlite3.Cursor]:
        """Hold the connection on behalf of ``call``.

        Raises StoreTimeoutError without touching the database when the
        deadline of ``call`` expired while it waited for the connection.
        """
        with self._lock:
            with self._owner_lock:
                _check_deadline(call)
                self._owner = call
            try:
                yield self._conn.cursor()
            finally:
                with self._owner_lock:
                    self._owner = None

    def _interrupt(self, call: threading.Event) -> None:
        with self._owner_lock:
            call.set()
            if self._owner is call:
                self._conn.interrupt()

    # ------------------------------------------------------------------
    # Schema management
    def _apply_migrations(self, call: Optional[threading.Event]) -> list[str]:
        migrations = load_migrations(self.dialect, self._migrations_dir)
        with self._claim(call) as cur:
            cur.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {MIGRATIONS_TABLE} (
                    name TEXT PRIMARY KEY,
                    applied_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%d %H:%M:%f', 'now'))
                )
                """
            )
            # write lock held for the whole run
            cur.execute("BEGIN IMMEDIATE")
            try:
                applied = [
                    row[0] for row in cur.execute(f"SELECT name FROM {MIGRATIONS_TABLE}")
                ]
                pending = pending_migrations(migrations, applied)
                for migration in pending:
                    for statement in split_statements(migration.sql):
                        _check_deadline(call)
                        cur.execute(statement)
                    cur.execute(
                        f"INSERT INTO {MIGRATIONS_TABLE} (name) VALUES (?)",
                        (migration.name,),
                    )
                _check_deadline(call)
                cur.execute("COMMIT")
            except BaseException:
                if self._conn.in_transaction:
                    cur.execute("ROLLBACK")
                raise
        return [m.name for m in pending]

    async def _migrate(self) -> list[str]:
        try:
            return await asyncio.to_thread(self._apply_migrations, current_call.get())
        except sqlite3.Error as e:
            raise StoreInitializationError(
                f"Failed to migrate SQLite database {self.db_path}: {e}"
            ) from e

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(
        self, call: Optional[threading.Event], query: str, *params: Any
    ) -> None:
        with self._claim(call) as cur:
            cur.execute(query, params)

    def _fetchall(
        self, call: Optional[threading.Event], query: str, *params: Any
    ) -> list[tuple]:
        with self._claim(call) as cur:
            return cur.execute(query, params).fetchall()

    def _delete_many(self, call: Optional[threading.Event], kids: list[str]) -> None:
        with self._claim(call) as cur:
            cur.execute("BEGIN")
            try:
                for start in range(0, len(kids), _DELETE_BATCH):
                    _check_deadline(call)
                    batch = kids[start : start + _DELETE_BATCH]
                    placeholders = ", ".join("?" for _ in batch)
                    cur.execute(
                        f"DELETE FROM {TABLE} WHERE kid IN ({placeholders})", batch
                    )
                _check_deadline(call)
                cur.execute("COMMIT")
            except BaseException:
                if self._conn.in_transaction:
                    cur.execute("ROLLBACK")
                raise

    # ------------------------------------------------------------------
    # Storage round trips
    async def _insert(self, kid: str, payload: str) -> None:
        try:
            await asyncio.to_thread(
                self._execute,
                current_call.get(),
                f"INSERT INTO {TABLE} (kid, key) VALUES (?, ?)",
                kid,
                payload,
            )
        except sqlite3.Error as e:
            raise StoreWriteError(
                f"Failed to store key kid={kid}: {e}", transient=_is_transient(e)
            ) from e

    async def _select_all(self) -> list[Row]:
        try:
            rows = await asyncio.to_thread(
                self._fetchall,
                current_call.get(),
                f"SELECT kid, key, created_at FROM {TABLE}",
            )
        except sqlite3.Error as e:
            raise StoreReadError(f"Failed to list keys: {e}") from e
        return [(r[0], r[1], r[2]) for r in rows]

    async def _delete(self, kids: list[str]) -> None:
        try:
            await asyncio.to_thread(self._delete_many, current_call.get(), kids)
        except sqlite3.Error as e:
            raise StoreWriteError(
                f"Failed to remove keys: {e}", transient=_is_transient(e)
            ) from e

    async def close(self) -> None:
        with self._lock:
            self._conn.close()
        await super().close()
        logger.info(f"Closed SQLite key store {self.db_path}")
