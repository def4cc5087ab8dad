from __future__ import annotations

import strawberry
from strawberry.scalars import JSON
from strawberry.types import Info

from .context import RequestContext


def get_request_context(info: Info) -> RequestContext:
    context = info.context
    if not isinstance(context, RequestContext):
        raise RuntimeError("Request context missing from GraphQL execution")
    return context


@strawberry.type
class Viewer:
    user_id: str | None
    is_admin: bool
    locale: str


@strawberry.type
class Query:
    @strawberry.field
    def viewer(self, info: Info) -> Viewer:
        context = get_request_context(info)
        return Viewer(
            user_id=str(context.user_id) if context.user_id is not None else None,
            is_admin=context.is_admin,
            locale=context.locale or "",
        )

    @strawberry.field
    async def document(self, info: Info, collection: str, id: strawberry.ID) -> JSON | None:
        context = get_request_context(info)
        if collection not in context.collections:
            raise ValueError(f"Unknown collection: {collection}")
        record = await context.collection(collection).load(str(id))
        return dict(record) if record is not None else None


schema = strawberry.Schema(query=Query)
