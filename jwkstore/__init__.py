"""jwkstore: Durable storage for JWT signing keys."""

from .config import JwkStoreConfig, load_config
from .errors import (
    KeyStoreError,
    StoreCorruptionError,
    StoreInitializationError,
    StoreReadError,
    StoreTimeoutError,
    StoreWriteError,
)
from .models import AnyJWK, KeyList, StoredKey
from .serialization import JsonKeyCodec, KeyCodec
from .store import (
    InMemoryKeyStore,
    KeyStore,
    PostgresKeyStore,
    SQLiteKeyStore,
    open_key_store,
)

__version__ = "0.1.0"
__all__ = [
    "AnyJWK",
    "StoredKey",
    "KeyList",
    "KeyCodec",
    "JsonKeyCodec",
    "KeyStore",
    "InMemoryKeyStore",
    "SQLiteKeyStore",
    "PostgresKeyStore",
    "open_key_store",
    "JwkStoreConfig",
    "load_config",
    "KeyStoreError",
    "StoreInitializationError",
    "StoreWriteError",
    "StoreReadError",
    "StoreCorruptionError",
    "StoreTimeoutError",
]
