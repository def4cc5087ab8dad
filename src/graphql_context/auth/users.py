from __future__ import annotations

import structlog

from graphql_context.services.events import IDENTIFY_EVENT, EventSink
from graphql_context.services.users import User, UserStore

logger = structlog.get_logger(__name__)


class UserResolver:
    def __init__(self, store: UserStore, events: EventSink | None = None) -> None:
        self._store = store
        self._events = events

    async def resolve(self, token: str | None) -> User | None:
        if not token:
            return None

        user = await self._store.find_by_token(token)
        if user is None:
            logger.debug("auth.user_not_found")
            return None

        self._identify(user)
        return user

    def _identify(self, user: User) -> None:
        # identify user to any server-side analytics providers
        if self._events is None:
            return
        try:
            self._events.emit(IDENTIFY_EVENT, user)
        except Exception as exc:
            logger.warning("auth.identify_failed", user_id=user.get("_id"), error=str(exc))
