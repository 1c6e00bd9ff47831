"""Command line interface for managing stored signing keys."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, List, TypeVar

import jwt
import typer
import yaml
from pydantic import ValidationError

from jwkstore import AnyJWK, KeyStoreError, load_config, open_key_store
from jwkstore.store import BaseKeyStore

T = TypeVar("T")

app = typer.Typer(help="CLI for jwkstore signing keys")

# Command groups
keys_app = typer.Typer(help="Commands for managing signing keys")

app.add_typer(keys_app, name="keys")


@app.callback()
def main() -> None:
    """jwkstore CLI entry point."""
    try:
        config = load_config()
    except (ValidationError, yaml.YAMLError) as e:
        typer.secho(f"Invalid configuration: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    logging.basicConfig(level=config.log_level.upper())


def _run(action: Callable[[BaseKeyStore], Awaitable[T]]) -> T:
    async def runner() -> T:
        store = await open_key_store()
        return await action(store)

    try:
        return asyncio.run(runner())
    except KeyStoreError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)


def _read_keys(path: Path, validate: bool) -> list[AnyJWK]:
    data: Any = json.loads(path.read_text())
    documents = data["keys"] if isinstance(data, dict) and "keys" in data else [data]
    keys = []
    for document in documents:
        if not isinstance(document, dict):
            raise ValueError("Key document must be a JSON object")
        if validate:
            jwt.PyJWK(document)
        keys.append(AnyJWK.model_validate(document))
    return keys


@app.command("migrate")
def migrate() -> None:
    """
    Bring the configured database schema up to date.

    Applies any pending migrations. Running it against an up-to-date
    database does nothing.

    Example:
        JWKSTORE_DATABASE_URL=sqlite://keys.db jwkstore migrate
    """

    async def action(store: BaseKeyStore) -> None:
        await store.initialize()

    _run(action)
    typer.echo("Signing key store is up to date")


@keys_app.command("list")
def keys_list() -> None:
    """
    List stored signing keys.

    Returns:
        Tab-separated kid and creation time (UTC), or "No keys found"

    Example:
        jwkstore keys list
        # Output: 2f1c...    2024-01-01T10:00:00+00:00
    """

    async def action(store: BaseKeyStore):
        return await store.list_keys()

    keys = _run(action)
    if not keys.items:
        typer.echo("No keys found")
        return
    for item in keys.items:
        typer.echo(f"{item.key.kid}\t{item.created_at.isoformat()}")


@keys_app.command("add")
def keys_add(
    path: Path,
    validate: bool = typer.Option(
        True, help="Check that the document parses as a JSON Web Key"
    ),
) -> None:
    """
    Store the key(s) from a JWK or JWKS JSON file.

    Example:
        jwkstore keys add ./key.json
        jwkstore keys add ./jwks.json --no-validate
    """

    if not path.exists():
        typer.secho("Specified path does not exist", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    try:
        keys = _read_keys(path, validate)
    except (ValueError, KeyError, jwt.exceptions.PyJWTError) as e:
        typer.secho(f"Invalid key document: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    async def action(store: BaseKeyStore) -> None:
        for key in keys:
            await store.add_key(key)

    _run(action)
    for key in keys:
        typer.echo(f"Added {key.kid}")


@keys_app.command("remove")
def keys_remove(kids: List[str]) -> None:
    """
    Remove all stored keys with the given ids.

    Example:
        jwkstore keys remove old-key-1 old-key-2
    """

    async def action(store: BaseKeyStore) -> None:
        await store.remove_keys(kids)

    _run(action)
    typer.echo(f"Removed {', '.join(kids)}")


@keys_app.command("jwks")
def keys_jwks() -> None:
    """Print the public members of all stored keys as a JWKS document."""

    async def action(store: BaseKeyStore):
        return await store.list_keys()

    keys = _run(action)
    typer.echo(json.dumps(keys.to_jwks(), indent=2))


if __name__ == "__main__":
    app()
