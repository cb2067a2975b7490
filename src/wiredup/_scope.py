from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ._errors import ScopedKeyConflictError, ScopedKeyMissingError, ScopeMissingError
from ._utils import maybe_await


logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator


@dataclass
class _ScopeStore:
    values: dict[str, Any] = field(default_factory=dict)
    # one creation lock per key, shared by every task running in the scope
    locks: dict[str, asyncio.Lock] = field(default_factory=dict)


_current_store: ContextVar[_ScopeStore | None] = ContextVar("wiredup_request_scope", default=None)


class RequestScope:
    """Request-scoped key/value store bound to the current execution context.

    `run()` pushes a fresh store for the duration of a callback and pops it
    afterwards, so code outside the callback never sees it. The store travels
    with the context: coroutines awaited inside the callback see it, and so do
    tasks created inside it (they copy the context on creation and share the
    same store object). A task that outlives the scope keeps a reference to
    a store that has already been torn down and emptied.
    """

    @staticmethod
    def is_active() -> bool:
        return _current_store.get() is not None

    @staticmethod
    @contextmanager
    def activate() -> Iterator[dict[str, Any]]:
        """Push a fresh store onto the current context and pop it on exit."""
        store = _ScopeStore()
        token = _current_store.set(store)
        logger.debug("Opened request scope")
        try:
            yield store.values
        finally:
            _current_store.reset(token)
            logger.debug("Closed request scope")

    @staticmethod
    async def run(callback: Callable[..., Any], *args: Any) -> Any:
        with RequestScope.activate():
            return await maybe_await(callback(*args))

    @staticmethod
    def set_scoped(key: str, value: Any) -> None:
        values = _require_store("set scoped value").values
        if key in values and values[key] is not value:
            raise ScopedKeyConflictError(key)
        values[key] = value

    @staticmethod
    def get_scoped(key: str) -> Any:
        values = _require_store("get scoped value").values
        if key not in values:
            raise ScopedKeyMissingError(key)
        return values[key]

    @staticmethod
    def has_scoped(key: str) -> bool:
        return key in _require_store("look up scoped value").values

    @staticmethod
    def delete_key(key: str) -> None:
        values = _require_store("delete scoped value").values
        if key not in values:
            raise ScopedKeyMissingError(key)
        del values[key]

    @staticmethod
    def lock(key: str) -> asyncio.Lock:
        """Return the lock guarding creation of `key` in the current scope."""
        return _require_store("lock scoped value").locks.setdefault(key, asyncio.Lock())

    @staticmethod
    def keys() -> tuple[str, ...]:
        return tuple(_require_store("list scoped values").values)


def _require_store(operation: str) -> _ScopeStore:
    store = _current_store.get()
    if store is None:
        raise ScopeMissingError(operation)
    return store
