"""Data models for stored signing keys."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

# Members carrying private key material (RFC 7517/7518).
PRIVATE_KEY_MEMBERS = frozenset({"d", "p", "q", "dp", "dq", "qi", "oth", "k"})


class AnyJWK(BaseModel):
    """A JSON Web Key identified by ``kid``.

    Only ``kid`` is required. Every other member is kept as-is so that the
    store never has to understand the key material it persists.
    """

    model_config = ConfigDict(extra="allow")

    kid: str
    kty: Optional[str] = None
    use: Optional[str] = None
    alg: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)

    def public(self) -> "AnyJWK":
        """Return a copy without private key members."""
        data = {k: v for k, v in self.to_dict().items() if k not in PRIVATE_KEY_MEMBERS}
        return AnyJWK.model_validate(data)


class StoredKey(BaseModel):
    """A persisted key together with the time the store recorded it."""

    key: AnyJWK
    created_at: datetime


class KeyList(BaseModel):
    """Result of listing a key store."""

    items: list[StoredKey] = Field(default_factory=list)

    def kids(self) -> list[str]:
        return [item.key.kid for item in self.items]

    def to_jwks(self) -> dict[str, Any]:
        """Render the public members of every key as a JWKS document."""
        return {"keys": [item.key.public().to_dict() for item in self.items]}
