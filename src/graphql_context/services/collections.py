from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from graphql_context.registry import Record

from .base import JSONServiceClient


class RemoteCollection(JSONServiceClient):
    """Collection whose records live behind an HTTP document service."""

    def __init__(
        self,
        name: str,
        base_url: str,
        auth_token: str | None = None,
        id_field: str = "_id",
    ) -> None:
        super().__init__(base_url, auth_token=auth_token)
        self.name = name
        self.id_field = id_field

    async def fetch_by_ids(self, ids: Sequence[Any]) -> Sequence[Record]:
        payload = await self.post(
            f"/collections/{self.name}/find-by-ids",
            {"ids": list(ids)},
        )
        if isinstance(payload, dict):
            payload = payload.get("documents", [])
        if not isinstance(payload, list):
            raise RuntimeError(f"Invalid response from collection {self.name!r}")
        return payload
