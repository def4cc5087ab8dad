from __future__ import annotations

import asyncio
import inspect
from collections import defaultdict
from collections.abc import Callable
from typing import Any, Protocol

import structlog

from graphql_context.errors import NotificationError

logger = structlog.get_logger(__name__)

IDENTIFY_EVENT = "events.identify"

Callback = Callable[[Any], Any]


class EventSink(Protocol):
    def emit(self, event_name: str, payload: Any) -> None: ...


class CallbackEventSink:
    """Run named callbacks in background tasks.

    ``emit`` never waits for callbacks; failures are logged and dropped.
    """

    def __init__(self) -> None:
        self._callbacks: dict[str, list[Callback]] = defaultdict(list)
        self._tasks: set[asyncio.Task[None]] = set()

    def add_callback(self, event_name: str, callback: Callback) -> None:
        self._callbacks[event_name].append(callback)

    def emit(self, event_name: str, payload: Any) -> None:
        callbacks = list(self._callbacks.get(event_name, ()))
        if not callbacks:
            return
        task = asyncio.get_running_loop().create_task(self._run(event_name, callbacks, payload))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, event_name: str, callbacks: list[Callback], payload: Any) -> None:
        for callback in callbacks:
            try:
                result = callback(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                error = NotificationError(event_name, exc)
                logger.warning("events.callback_failed", event_name=event_name, error=str(error))

    async def drain(self) -> None:
        """Wait for every in-flight notification."""
        while True:
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)
