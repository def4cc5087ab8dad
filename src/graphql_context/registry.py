"""Named data collections available to every request context."""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from typing import Any, Protocol, runtime_checkable

from .errors import RegistryError

Record = Mapping[str, Any]


@runtime_checkable
class CollectionDescriptor(Protocol):
    name: str

    async def fetch_by_ids(self, ids: Sequence[Any]) -> Sequence[Record]: ...


class InMemoryCollection:
    """Collection backed by a dict of records, keyed by ``id_field``."""

    def __init__(self, name: str, records: Sequence[Record] = (), id_field: str = "_id") -> None:
        self.name = name
        self.id_field = id_field
        self._records: dict[Any, Record] = {record[id_field]: record for record in records}

    async def fetch_by_ids(self, ids: Sequence[Any]) -> Sequence[Record]:
        return [self._records[id_] for id_ in ids if id_ in self._records]


class CollectionRegistry:
    """Insertion-ordered collections, read-only once sealed.

    The builder seals the registry when it is constructed, so every
    collection has to be registered during process start.
    """

    def __init__(self, collections: Sequence[CollectionDescriptor] = ()) -> None:
        self._collections: dict[str, CollectionDescriptor] = {}
        self._sealed = False
        for collection in collections:
            self.register(collection)

    def register(self, descriptor: CollectionDescriptor) -> CollectionDescriptor:
        if self._sealed:
            raise RegistryError(f"Cannot register {descriptor.name!r}: registry is sealed")
        if not descriptor.name:
            raise RegistryError("Collection name must not be empty")
        if descriptor.name in self._collections:
            raise RegistryError(f"Collection {descriptor.name!r} is already registered")
        self._collections[descriptor.name] = descriptor
        return descriptor

    def all(self) -> tuple[CollectionDescriptor, ...]:
        return tuple(self._collections.values())

    def get(self, name: str) -> CollectionDescriptor | None:
        return self._collections.get(name)

    def seal(self) -> None:
        self._sealed = True

    @property
    def sealed(self) -> bool:
        return self._sealed

    def __contains__(self, name: object) -> bool:
        return name in self._collections

    def __iter__(self) -> Iterator[CollectionDescriptor]:
        return iter(self.all())

    def __len__(self) -> int:
        return len(self._collections)
