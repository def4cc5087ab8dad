"""Per-request batching loaders over collections.

Every request gets its own loaders so cached results never cross request
boundaries. Loads issued in the same event loop iteration are coalesced into a
single ``fetch_by_ids`` call.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import structlog
from strawberry.dataloader import DataLoader

from .errors import FetchBatchError
from .registry import CollectionDescriptor, Record

logger = structlog.get_logger(__name__)


async def find_by_ids(collection: CollectionDescriptor, ids: Sequence[Any]) -> list[Record | None]:
    """Fetch ``ids`` in one call and return records in the order requested.

    Ids the collection does not know about map to ``None``.
    """
    id_field = getattr(collection, "id_field", "_id")
    records = await collection.fetch_by_ids(ids)
    by_id = {record.get(id_field): record for record in records}
    return [by_id.get(id_) for id_ in ids]


class CollectionLoader(DataLoader[Any, Record | None]):
    def __init__(
        self,
        collection: CollectionDescriptor,
        max_batch_size: int | None = None,
    ) -> None:
        self.collection = collection
        super().__init__(load_fn=self._load_batch, max_batch_size=max_batch_size, cache=True)

    async def _load_batch(self, ids: list[Any]) -> list[Record | None]:
        logger.debug("loader.batch", collection=self.collection.name, size=len(ids))
        try:
            return await find_by_ids(self.collection, ids)
        except Exception as exc:
            logger.warning(
                "loader.batch_failed",
                collection=self.collection.name,
                size=len(ids),
                error=str(exc),
            )
            raise FetchBatchError(self.collection.name, ids, exc) from exc


def make_loader(
    collection: CollectionDescriptor,
    max_batch_size: int | None = None,
) -> CollectionLoader:
    return CollectionLoader(collection, max_batch_size=max_batch_size)
