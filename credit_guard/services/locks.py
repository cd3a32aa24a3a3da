"""Per-position serialization of state-changing operations."""
from __future__ import annotations

import asyncio


class PositionLocks:
    """One ``asyncio.Lock`` per owner, shared by every controller.

    Budget counters and the GAD execution stamp of a position are only
    touched while holding its lock.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def for_owner(self, owner: str) -> asyncio.Lock:
        lock = self._locks.get(owner)
        if lock is None:
            lock = self._locks[owner] = asyncio.Lock()
        return lock
