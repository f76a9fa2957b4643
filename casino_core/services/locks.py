from asyncio import Lock
from contextlib import asynccontextmanager


class LockRegistry:
    """Keyed asyncio locks: one per user for settlement, one per round for actions.

    Locks are not re-entrant; callers holding a round lock must not take it
    again, and settlement uses a separate "user:" namespace.
    """

    def __init__(self):
        self.locks = {}  # key -> Lock
        self.holders = {}  # key -> number of tasks holding or waiting
        self.lock = Lock()  # protects locks and holders

    async def acquire(self, key: str) -> Lock:
        """Get the Lock of the specified key and register the caller

        Args:
            key (str): Namespaced key, e.g. "user:<id>" or "round:<id>"

        Returns:
            Lock: Lock of the specified key
        """
        async with self.lock:
            if key not in self.locks:
                self.locks[key] = Lock()
                self.holders[key] = 0
            self.holders[key] += 1
            return self.locks[key]

    async def release(self, key: str):
        """Unregister the caller and drop the Lock once nobody uses it

        Args:
            key (str): Namespaced key
        """
        async with self.lock:
            self.holders[key] -= 1
            if self.holders[key] == 0:
                del self.locks[key]
                del self.holders[key]

    @asynccontextmanager
    async def hold(self, key: str):
        lock = await self.acquire(key)
        try:
            async with lock:
                yield
        finally:
            await self.release(key)

    def __len__(self) -> int:
        return len(self.locks)
