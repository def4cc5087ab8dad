from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Protocol

import jwt
import structlog

from graphql_context.config import Settings
from graphql_context.errors import AuthError, StartupConfigurationError

logger = structlog.get_logger(__name__)

Claims = dict[str, Any]


class TokenVerifier(Protocol):
    async def verify(self, headers: Mapping[str, str]) -> Claims: ...


def bearer_token(headers: Mapping[str, str]) -> str | None:
    value = headers.get("authorization") or headers.get("Authorization")
    if not value:
        return None
    scheme, _, token = value.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class JwtTokenVerifier:
    """Verify JWTs issued for one application identity.

    With a shared secret configured tokens are checked with HS256, otherwise
    with RS256 against the public keys published at ``jwks_url``.
    """

    def __init__(
        self,
        *,
        audience: str | None,
        issuer: str | None,
        jwks_url: str | None = None,
        shared_secret: str | None = None,
        jwks_client: jwt.PyJWKClient | None = None,
    ) -> None:
        if not shared_secret and not (jwks_url or jwks_client):
            raise StartupConfigurationError(
                "Token verifier needs either a shared secret or a JWKS endpoint"
            )
        self._audience = audience
        self._issuer = issuer
        self._signing_key: Callable[[str], Awaitable[tuple[Any, list[str]]]]
        if shared_secret:
            self._shared_secret = shared_secret
            self._signing_key = self._shared_secret_key
        else:
            self._jwks_client = jwks_client or jwt.PyJWKClient(jwks_url, cache_keys=True)
            self._signing_key = self._jwks_key

    async def _shared_secret_key(self, token: str) -> tuple[Any, list[str]]:
        return self._shared_secret, ["HS256"]

    async def _jwks_key(self, token: str) -> tuple[Any, list[str]]:
        loop = asyncio.get_running_loop()
        signing_key = await loop.run_in_executor(
            None,
            lambda: self._jwks_client.get_signing_key_from_jwt(token),
        )
        return signing_key.key, ["RS256"]

    @classmethod
    def from_settings(cls, settings: Settings) -> JwtTokenVerifier:
        if not settings.verifier_app_id and not settings.verifier_shared_secret:
            raise StartupConfigurationError(
                "VERIFIER_APP_ID or VERIFIER_SHARED_SECRET must be configured"
            )
        return cls(
            audience=settings.verifier_audience,
            issuer=settings.verifier_issuer,
            jwks_url=settings.verifier_jwks_url,
            shared_secret=settings.verifier_shared_secret,
        )

    async def verify(self, headers: Mapping[str, str]) -> Claims:
        token = bearer_token(headers)
        if token is None:
            raise jwt.InvalidTokenError("Missing bearer token")

        key, algorithms = await self._signing_key(token)
        return jwt.decode(
            token,
            key,
            algorithms=algorithms,
            audience=self._audience,
            issuer=self._issuer,
            options={"verify_aud": self._audience is not None},
        )


class IdentityVerifier:
    """Verify the session token carried by the current request."""

    def __init__(self, verifier: TokenVerifier) -> None:
        self._verifier = verifier

    async def verify(self, token: str | None) -> Claims:
        if not token:
            raise AuthError("Missing auth token")

        headers = {"authorization": f"Bearer {token}"}
        try:
            claims = await self._verifier.verify(headers)
        except AuthError:
            raise
        except Exception as exc:
            raise AuthError(f"Token verification failed: {exc}") from exc

        logger.debug("auth.token_verified", subject=claims.get("sub"))
        return claims
