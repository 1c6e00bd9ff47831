"""In-memory implementation of the key store."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from .base import BaseKeyStore, Row


class InMemoryKeyStore(BaseKeyStore):
    """Store signing keys in local memory.

    Useful for tests or when no database is configured. Keys are not
    persisted across process restarts.
    """

    def __init__(self, **options: Any) -> None:
        super().__init__(**options)
        self._rows: list[Row] = []

    async def _migrate(self) -> list[str]:
        return []

    async def _insert(self, kid: str, payload: str) -> None:
        self._rows.append((kid, payload, datetime.now(timezone.utc)))

    async def _select_all(self) -> list[Row]:
        return list(self._rows)

    async def _delete(self, kids: list[str]) -> None:
        doomed = set(kids)
        self._rows = [row for row in self._rows if row[0] not in doomed]
