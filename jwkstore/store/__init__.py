"""Key store backends."""

from __future__ import annotations

import os
from typing import Optional

from ..config import JwkStoreConfig, load_config
from .base import BaseKeyStore, KeyStore
from .inmemory import InMemoryKeyStore
from .postgres import PostgresKeyStore
from .sqlite import SQLiteKeyStore

_store_instance: BaseKeyStore | None = None


async def open_key_store(
    database_url: Optional[str] = None, config: Optional[JwkStoreConfig] = None
) -> BaseKeyStore:
    """Factory function to obtain an initialized key store.

    The backend is selected based on ``database_url`` which can be provided
    explicitly, via environment variable ``JWKSTORE_DATABASE_URL`` or
    ``DATABASE_URL``, or from loaded configuration. When no database is
    configured, an in-memory store is returned. Pending migrations are applied
    before the store is handed out. Calls without arguments reuse the last
    store until it is closed.
    """

    global _store_instance
    if (
        _store_instance is not None
        and not _store_instance.closed
        and database_url is None
        and config is None
    ):
        return _store_instance

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("JWKSTORE_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or config.database_url
    )
    options = {
        "operation_timeout": config.operation_timeout,
        "on_corrupt": config.on_corrupt,
    }

    if not database_url:
        _store_instance = await InMemoryKeyStore.create(**options)
        return _store_instance

    if database_url.startswith("sqlite://"):
        path = database_url.replace("sqlite://", "", 1)
        _store_instance = await SQLiteKeyStore.create(
            path, migrations_dir=config.migrations_dir, **options
        )
    elif database_url.startswith("postgres://") or database_url.startswith(
        "postgresql://"
    ):
        _store_instance = await PostgresKeyStore.create(
            database_url, migrations_dir=config.migrations_dir, **options
        )
    else:
        raise ValueError(f"Unsupported database backend: {database_url}")

    return _store_instance


__all__ = [
    "KeyStore",
    "BaseKeyStore",
    "InMemoryKeyStore",
    "SQLiteKeyStore",
    "PostgresKeyStore",
    "open_key_store",
]
