"""
Sync state

Persisted timestamps of the last run of each sync job. Schedulers read these
to decide whether a job is due; the sync code itself never enforces them.
"""
import logging
from datetime import datetime
from typing import Protocol

from tv_schedule.database import session_scope
from tv_schedule.models import SyncStateEntry


logger = logging.getLogger(__name__)

LAST_PRUNE_KEY = "tv_schedule.last_prune"
LAST_DAY_UPDATE_KEY = "tv_schedule.last_day_update"
LAST_FULL_UPDATE_KEY = "tv_schedule.last_full_update"


class SyncState(Protocol):
    """Key/value store of last-run timestamps."""

    async def get(self, key: str, default: datetime | None = None) -> datetime | None: ...

    async def set(self, key: str, value: datetime) -> None: ...


class SqlSyncState:
    """SyncState backed by the sync_state table."""

    async def get(self, key: str, default: datetime | None = None) -> datetime | None:
        async with session_scope() as db:
            entry = await db.get(SyncStateEntry, key)
            return entry.value if entry is not None else default

    async def set(self, key: str, value: datetime) -> None:
        async with session_scope() as db:
            entry = await db.get(SyncStateEntry, key)
            if entry is None:
                db.add(SyncStateEntry(key=key, value=value))
            else:
                entry.value = value
        logger.debug("Sync state %s set to %s", key, value.isoformat())

