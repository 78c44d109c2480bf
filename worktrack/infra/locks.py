"""
Per-user mutual exclusion for timer mutations.

One table lives on each DatabaseEngine, so every service built on the same
engine queues on the same lock. Locks are held in a WeakValueDictionary and
disappear once no coroutine is waiting on them.
"""

import asyncio
import weakref


class UserLocks:

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def for_user(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock
