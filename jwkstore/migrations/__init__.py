"""Schema migrations for the signing key table.

Migrations are plain SQL files named ``NNNN_<name>.sql`` stored in one
subdirectory per dialect (``sqlite``, ``postgres``). They are applied in name
order and recorded in :data:`MIGRATIONS_TABLE` so that later runs only apply
what is missing.
"""

from __future__ import annotations

import re
import sqlite3
from pathlib import Path
from typing import Iterable, Optional, Union

from pydantic import BaseModel, ConfigDict

from ..errors import StoreInitializationError

MIGRATIONS_TABLE = "signing_keys_migrations"
DEFAULT_MIGRATIONS_DIR = Path(__file__).resolve().parent

_NAME_RE = re.compile(r"^\d{4}_[A-Za-z0-9_]+$")


class Migration(BaseModel):
    """A single named structural change."""

    model_config = ConfigDict(frozen=True)

    name: str
    sql: str


def load_migrations(
    dialect: str, directory: Optional[Union[str, Path]] = None
) -> list[Migration]:
    """Read the migrations for ``dialect`` ordered by name."""

    base = Path(directory) if directory else DEFAULT_MIGRATIONS_DIR
    path = base / dialect
    if not path.is_dir():
        raise StoreInitializationError(f"Migrations directory not found: {path}")

    migrations: list[Migration] = []
    for file in sorted(path.glob("*.sql")):
        if not _NAME_RE.match(file.stem):
            raise StoreInitializationError(
                f"Invalid migration file name: {file.name}"
            )
        try:
            sql = file.read_text(encoding="utf-8")
        except (OSError, UnicodeError) as e:
            raise StoreInitializationError(
                f"Cannot read migration {file.name}: {e}"
            ) from e
        migrations.append(Migration(name=file.stem, sql=sql))
    return migrations


def pending_migrations(
    available: Iterable[Migration], applied: Iterable[str]
) -> list[Migration]:
    """Return the migrations from ``available`` that have not been applied.

    Raises:
        StoreInitializationError: the database records a migration this code
            does not know about, i.e. its schema is newer than the code.
    """

    available = list(available)
    applied = set(applied)
    unknown = applied - {m.name for m in available}
    if unknown:
        raise StoreInitializationError(
            "Database contains unknown migrations: " + ", ".join(sorted(unknown))
        )
    return [m for m in available if m.name not in applied]


def split_statements(sql: str) -> list[str]:
    """Split a SQL script into complete statements."""

    statements: list[str] = []
    buffer = ""
    for line in sql.splitlines(keepends=True):
        buffer += line
        if sqlite3.complete_statement(buffer):
            statements.append(buffer.strip())
            buffer = ""
    if buffer.strip():
        statements.append(buffer.strip())
    return statements


__all__ = [
    "DEFAULT_MIGRATIONS_DIR",
    "MIGRATIONS_TABLE",
    "Migration",
    "load_migrations",
    "pending_migrations",
    "split_statements",
]
