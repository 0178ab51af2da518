"""
Job queue for deferred work

Producers enqueue batches of identifiers; a worker claims one item at a time,
processes it, and deletes it. Claimed items whose lease has expired become
claimable again so a crashed worker does not strand them.
"""
import logging
from datetime import timedelta
from typing import Protocol

from sqlalchemy import func, or_, select

from tv_schedule.database import session_scope
from tv_schedule.models import QueueItem
from tv_schedule.utils.timezone import utc_now


logger = logging.getLogger(__name__)

SCHEDULE_PRUNER_QUEUE = "tv_schedule.queue.schedule_pruner"


class JobQueue(Protocol):
    """Work queue port."""

    async def enqueue(self, payload: list[int]) -> int: ...

    async def pending_ids(self) -> set[int]: ...


class SqlJobQueue:
    """Named queue backed by the queue_items table."""

    def __init__(self, name: str, *, lease_seconds: int = 300) -> None:
        self.name = name
        self.lease = timedelta(seconds=lease_seconds)

    async def enqueue(self, payload: list[int]) -> int:
        """Add one item to the queue and return its ID."""
        async with session_scope() as db:
            item = QueueItem(queue_name=self.name, payload=list(payload))
            db.add(item)
            await db.flush()
            item_id = item.id
        logger.debug("Queued item %s on %s (%s ids)", item_id, self.name, len(payload))
        return item_id

    async def claim(self) -> QueueItem | None:
        """Claim the oldest available item, or None if the queue is empty."""
        now = utc_now()
        async with session_scope() as db:
            stmt = (
                select(QueueItem)
                .where(
                    QueueItem.queue_name == self.name,
                    or_(QueueItem.claimed_at.is_(None), QueueItem.claimed_at < now - self.lease),
                )
                .order_by(QueueItem.created_at, QueueItem.id)
                .limit(1)
            )
            item = (await db.execute(stmt)).scalars().first()
            if item is not None:
                item.claimed_at = now
        return item

    async def release(self, item_id: int) -> None:
        """Return a claimed item to the queue."""
        async with session_scope() as db:
            item = await db.get(QueueItem, item_id)
            if item is not None:
                item.claimed_at = None

    async def delete(self, item_id: int) -> None:
        async with session_scope() as db:
            item = await db.get(QueueItem, item_id)
            if item is not None:
                await db.delete(item)

    async def number_of_items(self) -> int:
        async with session_scope() as db:
            result = await db.execute(
                select(func.count(QueueItem.id)).where(QueueItem.queue_name == self.name)
            )
            return result.scalar_one()

    async def pending_ids(self) -> set[int]:
        """IDs held by every item still in the queue, claimed or not."""
        async with session_scope() as db:
            result = await db.execute(
                select(QueueItem.payload).where(QueueItem.queue_name == self.name)
            )
            return {item_id for payload in result.scalars().all() for item_id in payload}
