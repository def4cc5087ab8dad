from __future__ import annotations

import base64
import hashlib
from collections.abc import Mapping, Sequence
from typing import Any, Protocol

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from .base import JSONServiceClient

User = Mapping[str, Any]


def hash_login_token(token: str) -> str:
    """Hash a login token the way stored resume tokens are hashed (base64 SHA-256)."""
    digest = hashlib.sha256(token.encode("utf-8")).digest()
    return base64.b64encode(digest).decode("ascii")


class UserStore(Protocol):
    async def find_by_token(self, token: str) -> User | None: ...


class InMemoryUserStore:
    """Users indexed by the hashed login tokens listed on each record."""

    def __init__(self, users: Sequence[User] = ()) -> None:
        self._by_hashed_token: dict[str, User] = {}
        for user in users:
            self.add(user)

    def add(self, user: User) -> None:
        login_tokens = user.get("services", {}).get("resume", {}).get("loginTokens", [])
        for login_token in login_tokens:
            self._by_hashed_token[login_token["hashedToken"]] = user

    async def find_by_token(self, token: str) -> User | None:
        return self._by_hashed_token.get(hash_login_token(token))


class HttpUserStore(JSONServiceClient):
    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        reraise=True,
    )
    async def find_by_token(self, token: str) -> User | None:
        response = await self._client.post(
            "/users/find-by-token",
            json={"hashedToken": hash_login_token(token)},
        )
        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        response.raise_for_status()

        try:
            payload = response.json()
        except ValueError as e:
            raise RuntimeError(f"Invalid JSON from user store: {e}") from e

        return payload.get("user") if isinstance(payload, dict) else None
