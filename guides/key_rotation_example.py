"""Example showing a signing key rotation against a SQLite store."""

import asyncio
import json
from datetime import datetime, timedelta, timezone

from jwkstore import AnyJWK, open_key_store


async def main():
    """Add a new signing key and retire keys older than a day."""
    store = await open_key_store("sqlite://signing_keys.db")

    # Key material comes from your key generator; the store treats it as opaque
    new_key = AnyJWK(
        kid=f"key-{datetime.now(timezone.utc):%Y%m%d%H%M%S}",
        kty="EC",
        crv="P-256",
        alg="ES256",
        use="sig",
        x="f83OJ3D2xF1Bg8vub9tLe1gHMzV76e8Tus9uPHvRVEU",
        y="x_FEzRu9m36HLN_tue659LNpXW6pCyStikYjKIWI5a0",
        d="jpsQnnGQmL-YBIffH1136cspYG6-0iY7X1fCE9-E9LI",
    )
    await store.add_key(new_key)
    print(f"✅ Added {new_key.kid}")

    cutoff = datetime.now(timezone.utc) - timedelta(days=1)
    keys = await store.list_keys()
    expired = [item.key.kid for item in keys.items if item.created_at < cutoff]
    await store.remove_keys(expired)
    print(f"🗑️  Retired: {expired or 'nothing'}")

    # Publish verification keys without private members
    print(json.dumps((await store.list_keys()).to_jwks(), indent=2))

    await store.close()


if __name__ == "__main__":
    asyncio.run(main())
