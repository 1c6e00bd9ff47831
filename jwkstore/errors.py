"""Exceptions raised by key stores."""

from __future__ import annotations

from typing import Optional


class KeyStoreError(Exception):
    """Base class for all key store failures."""


class StoreInitializationError(KeyStoreError):
    """Schema bootstrap failed or the store was used before it was ready."""


class StoreWriteError(KeyStoreError):
    """Inserting or deleting keys failed.

    ``transient`` is set when the storage layer reported a condition that may
    clear on its own (locked database, dropped connection). Anything else
    should be treated as non-retryable.
    """

    def __init__(self, message: str, transient: bool = False) -> None:
        super().__init__(message)
        self.transient = transient


class StoreReadError(KeyStoreError):
    """Querying stored keys failed."""


class StoreCorruptionError(KeyStoreError):
    """A stored key payload could not be decoded."""

    def __init__(self, message: str, kid: Optional[str] = None) -> None:
        super().__init__(message)
        self.kid = kid


class StoreTimeoutError(KeyStoreError):
    """A store operation exceeded its deadline."""


__all__ = [
    "KeyStoreError",
    "StoreInitializationError",
    "StoreWriteError",
    "StoreReadError",
    "StoreCorruptionError",
    "StoreTimeoutError",
]
