from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import ec
from jwt.algorithms import ECAlgorithm

from online_courses.core.errors import ExternalServiceError
from online_courses.services.token_service import DEV_ISSUER, DEV_KEY_ID, SigningKeyStore

JWKS_URL = "https://idp.example/.well-known/jwks.json"
ISSUER = "https://idp.example/"


def _jwks(private_key: ec.EllipticCurvePrivateKey, kid: str) -> dict:
    jwk = ECAlgorithm.to_jwk(private_key.public_key(), as_dict=True)
    jwk.update({"kid": kid, "use": "sig", "alg": "ES256"})
    return {"keys": [jwk]}


def _sign(private_key: ec.EllipticCurvePrivateKey, kid: str | None, **claims: object) -> str:
    now = datetime.now(UTC)
    payload = {"sub": "learner-9", "iss": ISSUER, "exp": now + timedelta(minutes=5), **claims}
    headers = {"kid": kid} if kid is not None else None
    return jwt.encode(payload, private_key, algorithm="ES256", headers=headers)


def _remote_store(handler) -> SigningKeyStore:
    return SigningKeyStore(
        jwks_url=JWKS_URL, issuer=ISSUER, transport=httpx.MockTransport(handler)
    )


# ---- dev store ----


def test_dev_store_mints_and_decodes() -> None:
    store = SigningKeyStore()
    assert not store.is_remote
    assert store.key_ids == [DEV_KEY_ID]

    token = store.mint(sub="learner-1", email="a@example.com", roles=["learner"])
    claims = store.decode(token)
    assert claims["sub"] == "learner-1"
    assert claims["email"] == "a@example.com"
    assert claims["iss"] == DEV_ISSUER
    assert jwt.get_unverified_header(token)["kid"] == DEV_KEY_ID


def test_expired_token_rejected() -> None:
    store = SigningKeyStore()
    token = store.mint(sub="learner-1", ttl_minutes=-1)
    with pytest.raises(jwt.ExpiredSignatureError):
        store.decode(token)


def test_token_from_another_key_rejected() -> None:
    token = SigningKeyStore().mint(sub="learner-1")
    with pytest.raises(jwt.InvalidTokenError):
        SigningKeyStore().decode(token)


def test_unknown_kid_rejected() -> None:
    other = ec.generate_private_key(ec.SECP256R1())
    with pytest.raises(jwt.InvalidTokenError, match="unknown signing key"):
        SigningKeyStore().decode(_sign(other, "rogue"))


def test_dev_store_uses_configured_issuer() -> None:
    store = SigningKeyStore(issuer="expected-issuer")
    assert store.decode(store.mint(sub="learner-1"))["iss"] == "expected-issuer"


def test_remote_store_cannot_mint() -> None:
    with pytest.raises(RuntimeError):
        _remote_store(lambda r: httpx.Response(200, json={"keys": []})).mint(sub="x")


# ---- JWKS store ----


def test_refresh_loads_jwks_and_verifies() -> None:
    private_key = ec.generate_private_key(ec.SECP256R1())
    store = _remote_store(lambda r: httpx.Response(200, json=_jwks(private_key, "kid-1")))
    assert store.is_remote
    assert store.key_ids == []

    asyncio.run(store.refresh())
    assert store.key_ids == ["kid-1"]
    assert store.decode(_sign(private_key, "kid-1"))["sub"] == "learner-9"


def test_single_key_accepts_token_without_kid() -> None:
    private_key = ec.generate_private_key(ec.SECP256R1())
    store = _remote_store(lambda r: httpx.Response(200, json=_jwks(private_key, "kid-1")))
    asyncio.run(store.refresh())
    assert store.decode(_sign(private_key, None))["sub"] == "learner-9"


def test_remote_store_checks_issuer() -> None:
    private_key = ec.generate_private_key(ec.SECP256R1())
    store = _remote_store(lambda r: httpx.Response(200, json=_jwks(private_key, "kid-1")))
    asyncio.run(store.refresh())
    with pytest.raises(jwt.InvalidIssuerError):
        store.decode(_sign(private_key, "kid-1", iss="https://evil.example/"))


def test_refresh_failure_keeps_previous_keys() -> None:
    private_key = ec.generate_private_key(ec.SECP256R1())
    responses = [
        httpx.Response(200, json=_jwks(private_key, "kid-1")),
        httpx.Response(503),
    ]
    store = _remote_store(lambda r: responses.pop(0))

    asyncio.run(store.refresh())
    with pytest.raises(ExternalServiceError):
        asyncio.run(store.refresh())
    assert store.key_ids == ["kid-1"]


def test_refresh_rejects_malformed_jwks() -> None:
    store = _remote_store(lambda r: httpx.Response(200, text="not json"))
    with pytest.raises(ExternalServiceError):
        asyncio.run(store.refresh())
