"""PostgreSQL implementation of the key store."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Optional, Union

import asyncpg

from ..errors import StoreInitializationError, StoreReadError, StoreWriteError
from ..migrations import MIGRATIONS_TABLE, load_migrations, pending_migrations
from .base import TABLE, BaseKeyStore, Row

# Key for pg_advisory_xact_lock held while migrating ("jwks").
MIGRATION_LOCK_ID = 0x6A776B73

# asyncio.TimeoutError is not an OSError before Python 3.11.
BACKEND_ERRORS = (
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
    OSError,
    asyncio.TimeoutError,
)
TRANSIENT_ERRORS = (
    OSError,
    asyncpg.exceptions.PostgresConnectionError,
    asyncpg.exceptions.TransactionRollbackError,
    asyncio.TimeoutError,
)


class PostgresKeyStore(BaseKeyStore):
    """Persist signing keys using PostgreSQL.

    Either a DSN or an existing ``asyncpg`` pool must be supplied. With a DSN
    a connection is opened for each operation; a pool stays owned by the
    caller and is not closed by :meth:`close`.
    """

    dialect = "postgres"

    def __init__(
        self,
        dsn: Optional[str] = None,
        pool: Optional[asyncpg.Pool] = None,
        migrations_dir: Optional[Union[str, Path]] = None,
        **options: Any,
    ) -> None:
        if dsn is None and pool is None:
            raise ValueError("PostgresKeyStore requires a dsn or a pool")
        super().__init__(**options)
        self._dsn = dsn
        self._pool = pool
        self._migrations_dir = migrations_dir

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[asyncpg.Connection]:
        if self._pool is not None:
            async with self._pool.acquire() as conn:
                yield conn
            return
        conn = await asyncpg.connect(self._dsn)
        try:
            yield conn
        finally:
            await conn.close()

    # ------------------------------------------------------------------
    # Schema management
    async def _migrate(self) -> list[str]:
        migrations = load_migrations(self.dialect, self._migrations_dir)
        try:
            async with self._connect() as conn:
                async with conn.transaction():
                    await conn.execute(
                        "SELECT pg_advisory_xact_lock($1)", MIGRATION_LOCK_ID
                    )
                    await conn.execute(
                        f"""
                        CREATE TABLE IF NOT EXISTS {MIGRATIONS_TABLE} (
                            name TEXT PRIMARY KEY,
                            applied_at TIMESTAMPTZ NOT NULL DEFAULT now()
                        )
                        """
                    )
                    rows = await conn.fetch(f"SELECT name FROM {MIGRATIONS_TABLE}")
                    pending = pending_migrations(migrations, [r["name"] for r in rows])
                    for migration in pending:
                        await conn.execute(migration.sql)
                        await conn.execute(
                            f"INSERT INTO {MIGRATIONS_TABLE} (name) VALUES ($1)",
                            migration.name,
                        )
        except BACKEND_ERRORS as e:
            raise StoreInitializationError(
                f"Failed to migrate PostgreSQL database: {e}"
            ) from e
        return [m.name for m in pending]

    # ------------------------------------------------------------------
    # Storage round trips
    async def _insert(self, kid: str, payload: str) -> None:
        try:
            async with self._connect() as conn:
                await conn.execute(
                    f"INSERT INTO {TABLE} (kid, key) VALUES ($1, $2)", kid, payload
                )
        except BACKEND_ERRORS as e:
            raise StoreWriteError(
                f"Failed to store key kid={kid}: {e}",
                transient=isinstance(e, TRANSIENT_ERRORS),
            ) from e

    async def _select_all(self) -> list[Row]:
        try:
            async with self._connect() as conn:
                rows = await conn.fetch(f"SELECT kid, key, created_at FROM {TABLE}")
        except BACKEND_ERRORS as e:
            raise StoreReadError(f"Failed to list keys: {e}") from e
        return [(r["kid"], r["key"], r["created_at"]) for r in rows]

    async def _delete(self, kids: list[str]) -> None:
        try:
            async with self._connect() as conn:
                await conn.execute(
                    f"DELETE FROM {TABLE} WHERE kid = ANY($1::text[])", kids
                )
        except BACKEND_ERRORS as e:
            raise StoreWriteError(
                f"Failed to remove keys: {e}",
                transient=isinstance(e, TRANSIENT_ERRORS),
            ) from e
