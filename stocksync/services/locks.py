import asyncio
import weakref
from typing import Hashable, Tuple


class SkuLockManager:
    """
    In-process mutexes keyed by SKU (and optionally platform or purpose).

    Locks are held weakly: an entry lives only while some caller holds or
    waits on it, so the table does not grow with every SKU ever touched.

    Enough for a single-process deployment. Running several instances needs
    a distributed lock in its place.
    """

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[Tuple[Hashable, ...], asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def lock(self, *key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def is_locked(self, *key: Hashable) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @property
    def held(self) -> int:
        return sum(1 for lock in list(self._locks.values()) if lock.locked())

    def __len__(self) -> int:
        return len(self._locks)
