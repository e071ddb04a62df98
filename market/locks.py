"""Per-asset mutual exclusion.

A lock exists only while someone holds or waits for it, so asset ids that
are touched once (including unknown ones) do not accumulate.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import Dict, Hashable, List


class KeyedLock:
    """Map of keys to asyncio locks with reference counting."""

    def __init__(self) -> None:
        # key -> [lock, holders and waiters]
        self._entries: Dict[Hashable, List] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    @asynccontextmanager
    async def __call__(self, key: Hashable):
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = [asyncio.Lock(), 0]
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                del self._entries[key]
