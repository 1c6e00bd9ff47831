"""Tests for key models and payload encoding."""

import json
from datetime import datetime, timezone

import pytest

from jwkstore.models import AnyJWK, KeyList, StoredKey
from jwkstore.serialization import JsonKeyCodec


RSA_PRIVATE = {
    "kid": "rsa-1",
    "kty": "RSA",
    "alg": "RS256",
    "use": "sig",
    "n": "modulus",
    "e": "AQAB",
    "d": "private-exponent",
    "p": "prime-p",
    "q": "prime-q",
    "dp": "dp",
    "dq": "dq",
    "qi": "qi",
}


def test_any_jwk_keeps_unknown_members():
    key = AnyJWK.model_validate(RSA_PRIVATE)
    assert key.kid == "rsa-1"
    assert key.to_dict() == RSA_PRIVATE


def test_any_jwk_requires_kid():
    with pytest.raises(ValueError):
        AnyJWK.model_validate({"kty": "RSA"})


def test_public_strips_private_members():
    public = AnyJWK.model_validate(RSA_PRIVATE).public()
    assert public.to_dict() == {
        "kid": "rsa-1",
        "kty": "RSA",
        "alg": "RS256",
        "use": "sig",
        "n": "modulus",
        "e": "AQAB",
    }

    secret = AnyJWK(kid="hmac", kty="oct", k="c2VjcmV0").public()
    assert "k" not in secret.to_dict()


def test_key_list_to_jwks():
    now = datetime.now(timezone.utc)
    keys = KeyList(
        items=[
            StoredKey(key=AnyJWK.model_validate(RSA_PRIVATE), created_at=now),
            StoredKey(key=AnyJWK(kid="ec-1", kty="EC", crv="P-256", x="x", y="y", d="d"), created_at=now),
        ]
    )
    assert keys.kids() == ["rsa-1", "ec-1"]
    jwks = keys.to_jwks()
    assert [k["kid"] for k in jwks["keys"]] == ["rsa-1", "ec-1"]
    assert all("d" not in k for k in jwks["keys"])


def test_json_codec_round_trip():
    codec = JsonKeyCodec()
    key = AnyJWK.model_validate(RSA_PRIVATE)
    encoded = codec.encode(key)
    assert json.loads(encoded) == RSA_PRIVATE
    assert codec.decode(encoded) == key


@pytest.mark.parametrize("payload", ["", "{not json", "[]", '{"kty": "RSA"}'])
def test_json_codec_rejects_invalid_payloads(payload):
    with pytest.raises(ValueError):
        JsonKeyCodec().decode(payload)
