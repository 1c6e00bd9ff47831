"""Encoding of key payloads to and from their stored form."""

from __future__ import annotations

import json
from typing import Protocol

from pydantic import ValidationError

from .models import AnyJWK


class KeyCodec(Protocol):
    """Converts keys to the text persisted in the ``key`` column and back."""

    def encode(self, key: AnyJWK) -> str:
        """Serialize ``key`` for storage."""

    def decode(self, data: str) -> AnyJWK:
        """Rebuild a key from its stored form.

        Must raise ``ValueError`` when ``data`` is not a valid payload.
        """


class JsonKeyCodec:
    """Store keys as their JSON document."""

    def encode(self, key: AnyJWK) -> str:
        return json.dumps(key.to_dict(), separators=(",", ":"), sort_keys=True)

    def decode(self, data: str) -> AnyJWK:
        try:
            return AnyJWK.model_validate_json(data)
        except ValidationError as e:
            raise ValueError(f"Invalid key payload: {e}") from e


__all__ = ["KeyCodec", "JsonKeyCodec"]
