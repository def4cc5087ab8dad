"""Build the request context for every GraphQL operation.

The build walks through a fixed sequence of stages::

    INIT -> BASE_CONTEXT_ASSEMBLED -> LOADERS_ATTACHED -> AUTH_RESOLVED
         -> PRIVILEGE_CHECKED -> LOCALE_RESOLVED -> FINALIZED

Auth failures do not abort the build: the request continues anonymously
unless the static API key grants admin rights. Any other error propagates
and the request fails before reaching a resolver.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

import structlog
from starlette.datastructures import Headers

from .auth.api_key import API_KEY_HEADER, is_trusted_api_key
from .auth.users import UserResolver
from .auth.verifier import IdentityVerifier
from .config import Settings
from .context import (
    ADMIN_PRINCIPAL,
    BuildStage,
    CollectionSlot,
    RequestContext,
    init_context,
    merge_context,
)
from .errors import AuthError, ContextBuildError, StartupConfigurationError
from .loaders import make_loader
from .locale import HtmlAttributeSink, LocaleResolver, RequestHtmlAttributes
from .registry import CollectionRegistry

logger = structlog.get_logger(__name__)

ContextOverride = Callable[[Any], Mapping[str, Any] | Awaitable[Mapping[str, Any]]]


def request_headers(request: Any) -> Headers:
    headers = getattr(request, "headers", None) or {}
    if isinstance(headers, Headers):
        return headers
    return Headers(headers={str(key): str(value) for key, value in headers.items()})


def html_attribute_sink(request: Any) -> HtmlAttributeSink | None:
    """Return the per-request HTML attribute sink, creating it on ``request.state``."""
    state = getattr(request, "state", None)
    if state is None:
        return None
    sink = getattr(state, "html_attributes", None)
    if sink is None:
        sink = RequestHtmlAttributes()
        state.html_attributes = sink
    return sink


class ContextBuilder:
    def __init__(
        self,
        *,
        registry: CollectionRegistry,
        identity_verifier: IdentityVerifier,
        user_resolver: UserResolver,
        settings: Settings,
        locale_resolver: LocaleResolver | None = None,
        static_context: Mapping[str, Any] | None = None,
        context_from_request: ContextOverride | None = None,
    ) -> None:
        if settings.require_collections and not len(registry):
            raise StartupConfigurationError("At least one collection must be registered")

        registry.seal()
        self._registry = registry
        self._identity_verifier = identity_verifier
        self._user_resolver = user_resolver
        self._settings = settings
        self._locale_resolver = locale_resolver or LocaleResolver(
            default_locale=settings.default_locale,
            available_locales=settings.available_locales,
        )
        self._context_from_request = context_from_request
        self._base_context = init_context(registry, static_context)

    @staticmethod
    def _advance(context: RequestContext, stage: BuildStage) -> None:
        if stage != context.stage + 1:
            raise ContextBuildError(f"Cannot enter {stage.name} from {context.stage.name}")
        context.stage = stage

    async def build(self, request: Any, extra: Mapping[str, Any] | None = None) -> RequestContext:
        headers = request_headers(request)
        context = RequestContext()

        base = await self._assemble_base(request)
        if extra:
            base = merge_context(base, extra)
        self._split_base(context, base)
        self._advance(context, BuildStage.BASE_CONTEXT_ASSEMBLED)

        self._attach_loaders(context)
        self._advance(context, BuildStage.LOADERS_ATTACHED)

        await self._resolve_auth(context, headers)
        self._advance(context, BuildStage.AUTH_RESOLVED)

        self._check_privilege(context, headers)
        self._advance(context, BuildStage.PRIVILEGE_CHECKED)

        self._resolve_locale(context, headers, request)
        self._advance(context, BuildStage.LOCALE_RESOLVED)

        context.headers = headers
        # pass the whole request for advanced usage, like reading the client address
        context.req = request
        self._advance(context, BuildStage.FINALIZED)
        context.freeze()
        return context

    async def _assemble_base(self, request: Any) -> dict[str, Any]:
        if self._context_from_request is None:
            return merge_context(self._base_context)
        override = self._context_from_request(request)
        if inspect.isawaitable(override):
            override = await override
        return merge_context(self._base_context, override)

    def _split_base(self, context: RequestContext, base: Mapping[str, Any]) -> None:
        for key, value in base.items():
            if self._registry.get(key) is value:
                continue
            context.extras[key] = value

    def _attach_loaders(self, context: RequestContext) -> None:
        base_keys = set(context.extras)
        for collection in self._registry.all():
            if collection.name in base_keys:
                # replaced by the per-request override
                continue
            loader = make_loader(collection, max_batch_size=self._settings.loader_max_batch_size)
            context.collections[collection.name] = CollectionSlot(collection=collection, loader=loader)

    async def _resolve_auth(self, context: RequestContext, headers: Headers) -> None:
        token = headers.get(self._settings.auth_header)
        context.user_id = None
        context.current_user = None
        if not token:
            return

        try:
            await self._identity_verifier.verify(token)
        except AuthError as exc:
            logger.warning("auth.verification_failed", error=str(exc))
            return

        user = await self._user_resolver.resolve(token)
        if user is not None:
            context.user_id = user.get("_id")
            context.current_user = user

    def _check_privilege(self, context: RequestContext, headers: Headers) -> None:
        if is_trusted_api_key(headers.get(API_KEY_HEADER), self._settings.get("api_key")):
            logger.info("auth.api_key_admin")
            context.current_user = dict(ADMIN_PRINCIPAL)

    def _resolve_locale(self, context: RequestContext, headers: Headers, request: Any) -> None:
        user_locale = context.current_user.get("locale") if context.current_user else None
        context.locale = self._locale_resolver.resolve(headers, user_locale)
        sink = html_attribute_sink(request)
        if sink is not None:
            self._locale_resolver.register(sink, context.locale)
