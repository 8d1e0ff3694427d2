"""Exclusive per-account access for units of work.

Operations touching the same writable account run one at a time; operations
on disjoint accounts proceed concurrently. Locks are always taken in sorted
address order so two units of work can never wait on each other.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Sequence

from solders.pubkey import Pubkey

from relay_depository.errors import LockTimeoutError

logger = logging.getLogger(__name__)


class AccountLocks:
    """Lock registry owned by one runtime instance.

    A lock lives only while some unit of work holds or waits for it, so the
    registry does not grow with every one-shot account ever touched.
    """

    def __init__(self, timeout: Optional[float] = 30.0):
        self.timeout = timeout
        self._locks: dict[str, asyncio.Lock] = {}
        self._interest: dict[str, int] = {}

    def get_lock(self, address: Pubkey) -> asyncio.Lock:
        """Get or create the lock for an account."""
        return self._lock_for(str(address))

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def _retain(self, key: str) -> None:
        self._interest[key] = self._interest.get(key, 0) + 1

    def _forget(self, key: str) -> None:
        """Drop the lock once nobody holds or awaits it."""
        remaining = self._interest[key] - 1
        if remaining:
            self._interest[key] = remaining
            return
        del self._interest[key]
        lock = self._locks.get(key)
        if lock is not None and not lock.locked():
            del self._locks[key]

    async def _acquire(self, lock: asyncio.Lock, key: str, operation: str) -> None:
        if not self.timeout:
            await lock.acquire()
            return
        try:
            await asyncio.wait_for(lock.acquire(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Lock timeout for account {key} after {self.timeout}s: {operation}")
            raise LockTimeoutError(
                f"Could not acquire lock for account {key} within {self.timeout}s"
            )

    @asynccontextmanager
    async def hold(
        self,
        addresses: Sequence[Pubkey],
        operation: str = "unit_of_work",
    ) -> AsyncIterator[None]:
        """Hold every listed account's lock for the duration of the block.

        Example:
            async with locks.hold([vault, used_request], operation="execute_transfer"):
                ...
        """
        keys = sorted({str(address) for address in addresses})
        for key in keys:
            self._retain(key)
        held: list[asyncio.Lock] = []
        try:
            for key in keys:
                lock = self._lock_for(key)
                await self._acquire(lock, key, operation)
                held.append(lock)
            if keys:
                logger.debug(f"Locks acquired for {len(keys)} accounts: {operation}")
            yield
        finally:
            for lock in reversed(held):
                lock.release()
            for key in keys:
                self._forget(key)
            if held:
                logger.debug(f"Locks released for {len(held)} accounts: {operation}")

    def __len__(self) -> int:
        return len(self._locks)
