import asyncio

import pytest

from jwkstore import AnyJWK, SQLiteKeyStore


def _signing_key(kid: str) -> AnyJWK:
    return AnyJWK(kid=kid, kty="EC", crv="P-256", alg="ES256", use="sig", x="x", y="y", d="d")


@pytest.mark.asyncio
async def test_rotation_survives_restart(tmp_path):
    """Keys added by one process are visible and removable from the next."""

    db_path = tmp_path / "keys.db"

    store = await SQLiteKeyStore.create(db_path)
    await store.add_key(_signing_key("gen-1"))
    await store.close()

    # next process start: rotate in a new key, then retire the old one
    await asyncio.sleep(0.01)
    store = await SQLiteKeyStore.create(db_path)
    await store.add_key(_signing_key("gen-2"))
    listed = await store.list_keys()
    assert sorted(listed.kids()) == ["gen-1", "gen-2"]
    newest = max(listed.items, key=lambda item: item.created_at)
    assert newest.key.kid == "gen-2"

    await store.remove_keys([k for k in listed.kids() if k != newest.key.kid])
    await store.close()

    store = await SQLiteKeyStore.create(db_path)
    remaining = await store.list_keys()
    assert remaining.kids() == ["gen-2"]
    assert remaining.to_jwks()["keys"][0] == {
        "kid": "gen-2",
        "kty": "EC",
        "crv": "P-256",
        "alg": "ES256",
        "use": "sig",
        "x": "x",
        "y": "y",
    }
    await store.close()


@pytest.mark.asyncio
async def test_concurrent_operations_on_one_store(tmp_path):
    store = await SQLiteKeyStore.create(tmp_path / "keys.db")
    await asyncio.gather(*(store.add_key(_signing_key(f"k{i}")) for i in range(20)))
    await asyncio.gather(
        store.list_keys(),
        store.remove_keys([f"k{i}" for i in range(10)]),
        store.list_keys(),
    )
    assert sorted((await store.list_keys()).kids()) == sorted(f"k{i}" for i in range(10, 20))
    await store.close()


@pytest.mark.asyncio
async def test_concurrent_initialization(tmp_path):
    db_path = tmp_path / "keys.db"
    stores = [SQLiteKeyStore(db_path) for _ in range(4)]
    await asyncio.gather(*(s.initialize() for s in stores))

    await stores[0].add_key(_signing_key("shared"))
    for s in stores:
        assert (await s.list_keys()).kids() == ["shared"]
        await s.close()
