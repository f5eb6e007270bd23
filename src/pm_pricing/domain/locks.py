"""Per-key asyncio locks.

A trade touches one market row and one user's balance/position, so it holds
exactly the locks ``market:<id>`` and ``user:<id>``. Locks are always taken in
sorted key order, which rules out deadlock between two trades that share keys.

A key's lock lives only while some task holds or waits on it; the map is
empty whenever the ledger is idle.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager


def market_key(market_id: str) -> str:
    return f"market:{market_id}"


def user_key(user_id: str) -> str:
    return f"user:{user_id}"


class KeyedLocks:
    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._refs: dict[str, int] = {}     # holders + waiters per key

    def __len__(self) -> int:
        return len(self._locks)

    def locked(self, key: str) -> bool:
        return key in self._locks and self._locks[key].locked()

    @asynccontextmanager
    async def hold(self, *keys: str) -> AsyncIterator[None]:
        async with AsyncExitStack() as stack:
            for key in sorted(set(keys)):
                await stack.enter_async_context(self._hold_one(key))
            yield

    @asynccontextmanager
    async def _hold_one(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._refs[key] = self._refs.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._refs[key] -= 1
            if self._refs[key] == 0:
                del self._refs[key]
                del self._locks[key]
