"""Bearer token validation against the identity provider's signing keys.

Tokens are issued by an external identity provider; this service only
verifies them.  The keys live in a SigningKeyStore owned by the FastAPI
app (app.state.signing_keys) rather than in module globals:

  - JWKS_URL set:   keys are fetched from the provider's JWKS endpoint
                    and refreshed by a lifespan-owned task every
                    KEY_REFRESH_INTERVAL seconds.
  - JWKS_URL unset: dev/test.  The store generates an ephemeral ES256
                    key pair and can mint tokens for local use.

Algorithms are pinned so a token cannot pick its own (alg:none and
alg-switching attacks).  Audience is not checked; the provider issues
tokens for the whole site.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
import jwt
from cryptography.hazmat.primitives.asymmetric import ec

from online_courses.core.config import Settings
from online_courses.core.errors import ExternalServiceError

logger = logging.getLogger(__name__)

ALGORITHMS = ["ES256", "RS256"]
DEV_KEY_ID = "dev"
DEV_ISSUER = "online-courses-dev"
ACCESS_TOKEN_TTL_MIN = 60
KEY_REFRESH_INTERVAL = 600  # seconds


class SigningKeyStore:
    def __init__(
        self,
        *,
        jwks_url: str | None = None,
        issuer: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._jwks_url = jwks_url
        self._transport = transport
        self._keys: dict[str, Any] = {}
        self._private_key: ec.EllipticCurvePrivateKey | None = None

        if jwks_url is None:
            self._private_key = ec.generate_private_key(ec.SECP256R1())
            self._keys[DEV_KEY_ID] = self._private_key.public_key()
            self.issuer: str | None = issuer or DEV_ISSUER
        else:
            self.issuer = issuer

    @classmethod
    def from_settings(cls, settings: Settings) -> SigningKeyStore:
        return cls(jwks_url=settings.jwks_url, issuer=settings.token_issuer)

    @property
    def is_remote(self) -> bool:
        return self._jwks_url is not None

    @property
    def key_ids(self) -> list[str]:
        return sorted(self._keys)

    # --- JWKS refresh ---

    async def refresh(self) -> None:
        """Replace the key set with the provider's current JWKS.

        On failure the previous keys stay in place and ExternalServiceError
        is raised.
        """
        if self._jwks_url is None:
            return
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=10.0) as client:
                response = await client.get(self._jwks_url)
                response.raise_for_status()
                jwk_set = jwt.PyJWKSet.from_dict(response.json())
        except (httpx.HTTPError, ValueError, jwt.PyJWKSetError) as exc:
            raise ExternalServiceError("jwks", str(exc)) from exc

        self._keys = {k.key_id or DEV_KEY_ID: k.key for k in jwk_set.keys}
        logger.info("Signing keys refreshed  kids=%s", self.key_ids)

    async def refresh_forever(self, interval: float = KEY_REFRESH_INTERVAL) -> None:
        """Periodic refresh loop.  Runs until the lifespan cancels it."""
        while True:
            await asyncio.sleep(interval)
            try:
                await self.refresh()
            except ExternalServiceError:
                logger.warning(
                    "Signing key refresh failed; keeping %d cached keys",
                    len(self._keys),
                    exc_info=True,
                )

    # --- tokens ---

    def mint(
        self,
        *,
        sub: str,
        email: str | None = None,
        given_name: str | None = None,
        family_name: str | None = None,
        roles: list[str] | None = None,
        ttl_minutes: int = ACCESS_TOKEN_TTL_MIN,
    ) -> str:
        """Sign a token with the dev key.  Only available without JWKS_URL."""
        if self._private_key is None:
            raise RuntimeError("token minting is only available with the dev signing key")
        now = datetime.now(UTC)
        payload: dict[str, Any] = {
            "sub": sub,
            "iss": self.issuer,
            "exp": now + timedelta(minutes=ttl_minutes),
            "iat": now,
            "jti": str(uuid.uuid4()),
            "roles": roles or ["learner"],
        }
        if email is not None:
            payload["email"] = email
        if given_name is not None:
            payload["given_name"] = given_name
        if family_name is not None:
            payload["family_name"] = family_name
        return jwt.encode(
            payload, self._private_key, algorithm="ES256", headers={"kid": DEV_KEY_ID}
        )

    def decode(self, token: str) -> dict:
        """Verify signature, expiry and (when configured) issuer.

        Raises jwt.ExpiredSignatureError, jwt.InvalidTokenError on failure.
        """
        header = jwt.get_unverified_header(token)
        kid = header.get("kid")
        key = self._keys.get(kid) if kid is not None else None
        if key is None and kid is None and len(self._keys) == 1:
            key = next(iter(self._keys.values()))
        if key is None:
            raise jwt.InvalidTokenError(f"unknown signing key {kid!r}")

        return jwt.decode(
            token,
            key,
            algorithms=ALGORITHMS,
            issuer=self.issuer,
            options={"require": ["sub", "exp"], "verify_aud": False},
        )
