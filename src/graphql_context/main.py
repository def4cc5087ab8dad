from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from starlette.applications import Starlette
from starlette.routing import Mount
from strawberry.asgi import GraphQL

from .auth.users import UserResolver
from .auth.verifier import IdentityVerifier, JwtTokenVerifier
from .builder import ContextBuilder
from .config import Settings, get_settings
from .context import RequestContext
from .errors import StartupConfigurationError
from .log import setup_logging
from .registry import CollectionRegistry
from .schema import schema
from .services.collections import RemoteCollection
from .services.events import CallbackEventSink
from .services.users import HttpUserStore


class GlobalApplicationState:
    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        setup_logging(self.settings)

        self._collections: list[RemoteCollection] = []
        self.registry = CollectionRegistry()
        for collection_settings in self.settings.collections:
            collection = RemoteCollection(
                name=collection_settings.name,
                base_url=str(collection_settings.base_url),
                auth_token=self.settings.service_auth_token,
                id_field=collection_settings.id_field,
            )
            self._collections.append(collection)
            self.registry.register(collection)

        if self.settings.user_store_url is None:
            raise StartupConfigurationError("USER_STORE_URL must be configured")
        self._user_store = HttpUserStore(
            base_url=str(self.settings.user_store_url),
            auth_token=self.settings.service_auth_token,
        )

        self.events = CallbackEventSink()

        self.builder = ContextBuilder(
            registry=self.registry,
            identity_verifier=IdentityVerifier(JwtTokenVerifier.from_settings(self.settings)),
            user_resolver=UserResolver(self._user_store, events=self.events),
            settings=self.settings,
        )

    async def build_context(self, request: Any, response: Any) -> RequestContext:
        return await self.builder.build(request, extra={"response": response})

    async def close(self) -> None:
        await self.events.drain()
        for collection in self._collections:
            await collection.close()
        await self._user_store.close()


class StatefulGraphQL(GraphQL):
    def __init__(self, state: GlobalApplicationState) -> None:
        self._state = state
        super().__init__(schema)

    async def get_context(self, request, response) -> RequestContext:  # type: ignore[override]
        return await self._state.build_context(request, response)


def create_app(settings: Settings | None = None) -> Starlette:
    state = GlobalApplicationState(settings)

    @asynccontextmanager
    async def lifespan(_: Any) -> AsyncGenerator[Any, Any]:
        try:
            yield
        finally:
            await state.close()

    return Starlette(
        routes=[Mount("/graphql", StatefulGraphQL(state))],
        lifespan=lifespan,
    )
