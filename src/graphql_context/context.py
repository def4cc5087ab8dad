"""Request context handed to every resolver."""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from .errors import FrozenContextError
from .loaders import CollectionLoader
from .registry import CollectionDescriptor, CollectionRegistry, Record

ADMIN_PRINCIPAL: Mapping[str, Any] = MappingProxyType({"isAdmin": True, "isApiUser": True})


class BuildStage(enum.IntEnum):
    INIT = 0
    BASE_CONTEXT_ASSEMBLED = 1
    LOADERS_ATTACHED = 2
    AUTH_RESOLVED = 3
    PRIVILEGE_CHECKED = 4
    LOCALE_RESOLVED = 5
    FINALIZED = 6


@dataclass(slots=True)
class CollectionSlot:
    collection: CollectionDescriptor
    loader: CollectionLoader

    @property
    def name(self) -> str:
        return self.collection.name

    async def load(self, id_: Any) -> Record | None:
        return await self.loader.load(id_)


@dataclass
class RequestContext:
    """Per-request bundle of data access, identity and locale.

    Built by :class:`graphql_context.builder.ContextBuilder` and frozen once
    finalized. Item access looks up collection slots first, then the static
    and per-request extras.
    """

    collections: dict[str, CollectionSlot] = field(default_factory=dict)
    extras: dict[str, Any] = field(default_factory=dict)
    user_id: Any = None
    current_user: Mapping[str, Any] | None = None
    locale: str | None = None
    headers: Mapping[str, str] = field(default_factory=dict)
    req: Any = None
    stage: BuildStage = BuildStage.INIT
    _frozen: bool = field(default=False, init=False, repr=False)

    def __setattr__(self, name: str, value: Any) -> None:
        if getattr(self, "_frozen", False):
            raise FrozenContextError(f"Cannot set {name!r}: request context is finalized")
        object.__setattr__(self, name, value)

    def freeze(self) -> None:
        self.collections = MappingProxyType(self.collections)  # type: ignore[assignment]
        self.extras = MappingProxyType(self.extras)  # type: ignore[assignment]
        object.__setattr__(self, "_frozen", True)

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def is_admin(self) -> bool:
        return bool(self.current_user and self.current_user.get("isAdmin"))

    def collection(self, name: str) -> CollectionSlot:
        return self.collections[name]

    def __getitem__(self, key: str) -> Any:
        if key in self.collections:
            return self.collections[key]
        return self.extras[key]

    def __contains__(self, key: object) -> bool:
        return key in self.extras or key in self.collections

    def get(self, key: str, default: Any = None) -> Any:
        try:
            return self[key]
        except KeyError:
            return default


def init_context(
    registry: CollectionRegistry,
    static_context: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Return the process-wide base context: static values plus every collection by name."""
    context = dict(static_context) if static_context else {}
    for collection in registry.all():
        context[collection.name] = collection
    return context


def merge_context(
    base: Mapping[str, Any],
    override: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Shallow merge where keys from ``override`` replace keys from ``base``.

    Values are never merged recursively; collections and other objects are
    kept by reference.
    """
    if override is None:
        return dict(base)
    if not isinstance(override, Mapping):
        raise TypeError(f"Context override must be a mapping, got {type(override).__name__}")
    return {**base, **override}
