from __future__ import annotations

import asyncio
import logging

import jwt
from jwt import PyJWKClient

from chat_sync.application.dto.principal import Principal
from chat_sync.infrastructure.auth.claims import principal_from_claims

logger = logging.getLogger(__name__)


class JWKSVerifier:
    """Verify JWTs issued by a managed identity platform that publishes a JWKS."""

    def __init__(self, jwks_url: str, audience: str | None = None) -> None:
        self._jwks_url = jwks_url
        self._audience = audience
        self._jwk_client = PyJWKClient(jwks_url, cache_keys=True)

    async def verify(self, token: str) -> Principal:
        # PyJWKClient fetches over blocking urllib.
        signing_key = await asyncio.to_thread(
            self._jwk_client.get_signing_key_from_jwt, token
        )
        payload = jwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256", "ES256"],
            audience=self._audience,
            options={"verify_aud": self._audience is not None},
        )
        logger.debug("JWKS token verified for sub=%s", payload.get("sub"))
        return principal_from_claims(payload)
