from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

import pytest
from starlette.requests import Request

from graphql_context.auth.users import UserResolver
from graphql_context.auth.verifier import Claims, IdentityVerifier, bearer_token
from graphql_context.builder import ContextBuilder
from graphql_context.config import Settings
from graphql_context.registry import CollectionRegistry, InMemoryCollection
from graphql_context.services.events import CallbackEventSink
from graphql_context.services.users import InMemoryUserStore, hash_login_token

API_KEY = "s3cr3t-api-key"
ALICE_TOKEN = "alice-login-token"
BOB_TOKEN = "bob-login-token"


class StubTokenVerifier:
    """Accepts a fixed set of bearer tokens and records what it was asked to verify."""

    def __init__(self, valid_tokens: set[str]) -> None:
        self.valid_tokens = valid_tokens
        self.seen: list[str | None] = []

    async def verify(self, headers: Mapping[str, str]) -> Claims:
        token = bearer_token(headers)
        self.seen.append(token)
        if token not in self.valid_tokens:
            raise ValueError("signature verification failed")
        return {"sub": token}


class RecordingCollection(InMemoryCollection):
    """In-memory collection that remembers the id batches it was asked for."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.fetch_calls: list[list[Any]] = []

    async def fetch_by_ids(self, ids):
        self.fetch_calls.append(list(ids))
        return await super().fetch_by_ids(ids)


def make_user(user_id: str, token: str, **fields: Any) -> dict[str, Any]:
    return {
        "_id": user_id,
        "services": {"resume": {"loginTokens": [{"hashedToken": hash_login_token(token)}]}},
        **fields,
    }


def make_request(headers: Mapping[str, str] | None = None) -> Request:
    raw = [(key.lower().encode(), value.encode()) for key, value in (headers or {}).items()]
    return Request({"type": "http", "method": "POST", "path": "/graphql", "headers": raw})


@pytest.fixture
def settings() -> Settings:
    return Settings(api_key=API_KEY, default_locale="en-US")


@pytest.fixture
def posts() -> RecordingCollection:
    return RecordingCollection(
        "Posts",
        [{"_id": "p1", "title": "First"}, {"_id": "p2", "title": "Second"}],
    )


@pytest.fixture
def registry(posts: InMemoryCollection) -> CollectionRegistry:
    return CollectionRegistry([posts, InMemoryCollection("Comments")])


@pytest.fixture
def alice() -> dict[str, Any]:
    return make_user("alice", ALICE_TOKEN, locale="fr")


@pytest.fixture
def bob() -> dict[str, Any]:
    return make_user("bob", BOB_TOKEN)


@pytest.fixture
def token_verifier() -> StubTokenVerifier:
    return StubTokenVerifier({ALICE_TOKEN, BOB_TOKEN})


@pytest.fixture
def events() -> CallbackEventSink:
    return CallbackEventSink()


@pytest.fixture
def make_builder(
    registry: CollectionRegistry,
    token_verifier: StubTokenVerifier,
    events: CallbackEventSink,
    settings: Settings,
    alice: dict[str, Any],
    bob: dict[str, Any],
) -> Callable[..., ContextBuilder]:
    def factory(**kwargs: Any) -> ContextBuilder:
        return ContextBuilder(
            registry=kwargs.pop("registry", registry),
            identity_verifier=IdentityVerifier(token_verifier),
            user_resolver=UserResolver(InMemoryUserStore([alice, bob]), events=events),
            settings=kwargs.pop("settings", settings),
            **kwargs,
        )

    return factory
