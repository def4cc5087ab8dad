"""Error types raised while building request contexts."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any


class ContextError(Exception):
    """Base class for every error raised by this package."""


class StartupConfigurationError(ContextError):
    """The process is misconfigured and must not start serving requests."""


class RegistryError(ContextError):
    pass


class AuthError(ContextError):
    """Token verification or decoding failed.

    The underlying failure is available as ``__cause__``.
    """


class FetchBatchError(ContextError):
    def __init__(self, collection: str, ids: Sequence[Any], cause: BaseException) -> None:
        super().__init__(f"Failed to fetch {len(ids)} record(s) from collection {collection!r}: {cause}")
        self.collection = collection
        self.ids = list(ids)
        self.cause = cause


class NotificationError(ContextError):
    def __init__(self, event_name: str, cause: BaseException) -> None:
        super().__init__(f"Callback for {event_name!r} failed: {cause}")
        self.event_name = event_name
        self.cause = cause


class ContextBuildError(ContextError):
    """A build stage was entered out of order."""


class FrozenContextError(ContextError):
    pass
