"""Runtime bookkeeping of index maintenance, shared by everything that mutates an index."""

import asyncio

from shared.models.scope import Scope


class IndexRegistry:
    """Tracks which scopes are being checked or rebuilt and hands out one lock per scope.

    One registry is created per application (or per test) and injected into
    the consistency manager; nothing here is process-global.
    """

    def __init__(self) -> None:
        self._rebuilding: set[Scope] = set()
        self._locks: dict[Scope, asyncio.Lock] = {}
        self._booted = False

    async def boot(self) -> None:
        self._booted = True

    async def close(self) -> None:
        self._booted = False
        self._rebuilding.clear()
        self._locks.clear()

    def is_booted(self) -> bool:
        return self._booted

    def is_rebuilding(self, scope: Scope) -> bool:
        return scope in self._rebuilding

    def try_mark_rebuilding(self, scope: Scope) -> bool:
        """Flag a scope as rebuilding.

        Check and flag happen without a suspension
        point in between, so two coroutines can never both succeed.

        Returns:
            bool: False if the scope was already flagged.
        """
        if scope in self._rebuilding:
            return False
        self._rebuilding.add(scope)
        return True

    def clear_rebuilding(self, scope: Scope) -> None:
        self._rebuilding.discard(scope)

    def get_lock(self, scope: Scope) -> asyncio.Lock:
        """The lock serializing every index mutation of a scope."""
        lock = self._locks.get(scope)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[scope] = lock
        return lock
