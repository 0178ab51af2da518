"""
Sync Coordination

Keeps schedule sync runs from overlapping. Scheduled jobs and manual API
triggers all go through the same coordinator.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable


logger = logging.getLogger(__name__)


class SyncCoordinator:
    """
    Runs sync operations one at a time.

    A request that arrives while another sync holds the lock is skipped rather
    than queued, since the running sync will leave the store current anyway.
    """

    def __init__(self):
        self._sync_lock = asyncio.Lock()

    async def execute(self, operation: str, sync_func: Callable[[], Awaitable[Any]]) -> Any:
        """
        Execute a sync operation with concurrency protection.

        Args:
            operation: Name of the operation, for logging
            sync_func: Async function to execute

        Returns:
            Result from sync_func, or a skip response if a sync is running
        """
        if self._sync_lock.locked():
            logger.warning("Sync already in progress, skipping %s", operation)
            return {
                "status": "skipped",
                "message": "Schedule sync operation already in progress"
            }

        async with self._sync_lock:
            return await sync_func()

    def is_syncing(self) -> bool:
        return self._sync_lock.locked()


_coordinator: SyncCoordinator | None = None


def get_sync_coordinator() -> SyncCoordinator:
    """Get or create the global sync coordinator singleton."""
    global _coordinator
    if _coordinator is None:
        _coordinator = SyncCoordinator()
    return _coordinator


def reset_sync_coordinator() -> None:
    """Reset the sync coordinator (mainly for testing)."""
    global _coordinator
    _coordinator = None
