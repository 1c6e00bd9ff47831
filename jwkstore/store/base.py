"""Key store abstraction shared by all backends."""

from __future__ import annotations

import abc
import asyncio
import logging
import threading
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Awaitable, Iterable, Optional, Protocol, TypeVar, Union

from ..errors import (
    StoreCorruptionError,
    StoreInitializationError,
    StoreTimeoutError,
)
from ..models import AnyJWK, KeyList, StoredKey
from ..serialization import JsonKeyCodec, KeyCodec

logger = logging.getLogger(__name__)

TABLE = "signing_keys"

T = TypeVar("T")
StoreT = TypeVar("StoreT", bound="BaseKeyStore")

# (kid, serialized key, created_at as returned by the backend)
Row = tuple[str, str, Union[datetime, str]]

# Set once the deadline of the operation running in this context expires.
current_call: ContextVar[Optional[threading.Event]] = ContextVar(
    "current_call", default=None
)


class KeyStore(Protocol):
    """Protocol for signing key persistence backends."""

    async def initialize(self, timeout: Optional[float] = None) -> None:
        """Bring the schema up to date."""

    async def add_key(self, key: AnyJWK, timeout: Optional[float] = None) -> None:
        """Persist a new key."""

    async def list_keys(self, timeout: Optional[float] = None) -> KeyList:
        """Return every stored key."""

    async def remove_keys(
        self, kids: Iterable[str], timeout: Optional[float] = None
    ) -> None:
        """Delete all keys with the given ids."""

    async def close(self) -> None:
        """Release backend resources."""


def to_utc(value: Union[datetime, str]) -> datetime:
    """Interpret a stored timestamp as UTC.

    Naive values are assumed to already be UTC, which is how the storage
    defaults record them.
    """

    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class BaseKeyStore(metaclass=abc.ABCMeta):
    """Common behaviour for key stores.

    Subclasses implement the storage round trips (``_migrate``, ``_insert``,
    ``_select_all``, ``_delete``) and raise the store error matching the
    failure. This class takes care of the codec, deadlines, the corruption
    policy and refusing use before :meth:`initialize` has completed.

    Instances should be obtained through :meth:`create`.
    """

    def __init__(
        self,
        codec: Optional[KeyCodec] = None,
        operation_timeout: Optional[float] = None,
        on_corrupt: str = "raise",
    ) -> None:
        if on_corrupt not in ("raise", "skip"):
            raise ValueError(f"Unsupported corruption policy: {on_corrupt}")
        self._codec: KeyCodec = codec or JsonKeyCodec()
        self._operation_timeout = operation_timeout
        self._on_corrupt = on_corrupt
        self._initialized = False
        self.closed = False

    @classmethod
    async def create(cls: type[StoreT], *args: Any, **kwargs: Any) -> StoreT:
        """Construct a store and apply pending migrations before returning it."""
        store = cls(*args, **kwargs)
        await store.initialize()
        return store

    async def __aenter__(self: StoreT) -> StoreT:
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Public API
    async def initialize(self, timeout: Optional[float] = None) -> None:
        """Apply pending migrations. Safe to call repeatedly."""
        applied = await self._with_deadline(self._migrate(), timeout, "initialize")
        for name in applied:
            logger.info(f"Applied migration {name} ({type(self).__name__})")
        self._initialized = True

    async def add_key(self, key: AnyJWK, timeout: Optional[float] = None) -> None:
        self._require_initialized()
        payload = self._codec.encode(key)
        logger.debug(f"Adding signing key kid={key.kid}")
        await self._with_deadline(self._insert(key.kid, payload), timeout, "add_key")

    async def list_keys(self, timeout: Optional[float] = None) -> KeyList:
        self._require_initialized()
        rows = await self._with_deadline(self._select_all(), timeout, "list_keys")
        items: list[StoredKey] = []
        for kid, payload, created_at in rows:
            try:
                items.append(self._decode_row(kid, payload, created_at))
            except StoreCorruptionError as e:
                if self._on_corrupt == "raise":
                    raise
                logger.warning(f"Skipping unreadable signing key kid={kid}: {e}")
        logger.debug(f"Listed {len(items)} signing keys")
        return KeyList(items=items)

    async def remove_keys(
        self, kids: Iterable[str], timeout: Optional[float] = None
    ) -> None:
        self._require_initialized()
        kids = list(dict.fromkeys(kids))
        if not kids:
            return
        logger.debug(f"Removing signing keys kids={kids}")
        await self._with_deadline(self._delete(kids), timeout, "remove_keys")

    async def close(self) -> None:
        """Release backend resources and mark the store closed."""
        self.closed = True

    # ------------------------------------------------------------------
    # Backend hooks
    @abc.abstractmethod
    async def _migrate(self) -> list[str]:
        """Apply pending migrations and return the names applied."""
        raise NotImplementedError

    @abc.abstractmethod
    async def _insert(self, kid: str, payload: str) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def _select_all(self) -> list[Row]:
        raise NotImplementedError

    @abc.abstractmethod
    async def _delete(self, kids: list[str]) -> None:
        raise NotImplementedError

    def _interrupt(self, call: threading.Event) -> None:
        """Abort the backend work belonging to ``call`` after its deadline expired.

        Backends that hand work to threads override this so the expired call
        neither starts late nor disturbs the calls of other tasks.
        """
        call.set()

    # ------------------------------------------------------------------
    # Helpers
    def _require_initialized(self) -> None:
        if not self._initialized:
            raise StoreInitializationError(
                f"{type(self).__name__} used before initialize(); "
                "obtain stores through create()"
            )

    async def _with_deadline(
        self, aw: Awaitable[T], timeout: Optional[float], operation: str
    ) -> T:
        timeout = timeout if timeout is not None else self._operation_timeout
        if timeout is None:
            return await aw
        call = threading.Event()
        token = current_call.set(call)
        try:
            return await asyncio.wait_for(aw, timeout)
        except asyncio.TimeoutError:
            self._interrupt(call)
            raise StoreTimeoutError(
                f"{operation} did not complete within {timeout}s"
            ) from None
        finally:
            current_call.reset(token)

    def _decode_row(
        self, kid: str, payload: str, created_at: Union[datetime, str]
    ) -> StoredKey:
        try:
            key = self._codec.decode(payload)
        except ValueError as e:
            raise StoreCorruptionError(
                f"Stored key kid={kid} could not be decoded: {e}", kid=kid
            ) from e
        try:
            timestamp = to_utc(created_at)
        except (TypeError, ValueError) as e:
            raise StoreCorruptionError(
                f"Stored key kid={kid} has invalid created_at {created_at!r}",
                kid=kid,
            ) from e
        return StoredKey(key=key, created_at=timestamp)
