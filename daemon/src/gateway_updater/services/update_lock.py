"""
Update Lock - one update at a time per working directory
"""
import asyncio
import os
from typing import Dict

import structlog

from gateway_updater.services.errors import UpdateAlreadyInProgressError

logger = structlog.get_logger(__name__)


def lock_key(cwd: str) -> str:
    return os.path.realpath(os.path.abspath(cwd))


class UpdateLockRegistry:
    """
    In-process registry of per-directory asyncio locks

    Acquisition fails fast: a second trigger for a directory whose update is
    still running is rejected instead of queued.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}

    def is_locked(self, cwd: str) -> bool:
        lock = self._locks.get(lock_key(cwd))
        return lock is not None and lock.locked()

    def hold(self, cwd: str) -> "HeldUpdateLock":
        """Context manager holding the lock for ``cwd``"""
        key = lock_key(cwd)
        lock = self._locks.setdefault(key, asyncio.Lock())
        return HeldUpdateLock(key, lock)


class HeldUpdateLock:
    """Async context manager returned by UpdateLockRegistry.hold"""

    def __init__(self, key: str, lock: asyncio.Lock):
        self.key = key
        self._lock = lock

    async def __aenter__(self) -> "HeldUpdateLock":
        if self._lock.locked():
            logger.warning("update_already_in_progress", cwd=self.key)
            raise UpdateAlreadyInProgressError(f"An update is already in progress for {self.key}")
        # An unlocked asyncio.Lock is acquired without yielding
        await self._lock.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self._lock.release()


_default_registry = UpdateLockRegistry()


def get_lock_registry() -> UpdateLockRegistry:
    """Process-wide registry shared by orchestrators that are not given one"""
    return _default_registry
