"""
Schedule Pruner

Drains the schedule pruner queue. Each queue item holds a batch of schedule
item IDs queued by ScheduleItemManager.queue_old_schedule_items_for_delete.
"""
import logging
import time

from sqlalchemy import delete

from tv_schedule.database import session_scope
from tv_schedule.exceptions import ConfigurationError
from tv_schedule.models import ScheduleItem
from tv_schedule.services.job_queue import SCHEDULE_PRUNER_QUEUE, SqlJobQueue
from tv_schedule.utils.logging_helpers import log_prune_summary


logger = logging.getLogger(__name__)


class SchedulePrunerWorker:
    """Deletes queued batches of schedule items within a time limit."""

    def __init__(self, queue: SqlJobQueue | None = None, *, time_limit: float = 60) -> None:
        self.queue = queue or SqlJobQueue(SCHEDULE_PRUNER_QUEUE)
        self.time_limit = time_limit

    async def process_item(self, ids: list[int]) -> int:
        """Delete the schedule items in one batch. Missing IDs are ignored."""
        if not ids:
            return 0
        async with session_scope() as db:
            result = await db.execute(delete(ScheduleItem).where(ScheduleItem.id.in_(ids)))
        return result.rowcount or 0

    async def run(self) -> dict[str, int]:
        """
        Process queue items until the queue is empty or the time limit passes.

        A batch that fails is released back to the queue for a later run.

        Returns:
            Counts of processed batches, deleted items and failed batches
        """
        deadline = time.monotonic() + self.time_limit
        batches = deleted = failed = 0

        while time.monotonic() < deadline:
            item = await self.queue.claim()
            if item is None:
                break

            try:
                deleted += await self.process_item(list(item.payload))
            except ConfigurationError:
                raise
            except Exception as exc:
                failed += 1
                logger.error("Unable to prune queue item %s: %s", item.id, exc, exc_info=True)
                await self.queue.release(item.id)
                break

            await self.queue.delete(item.id)
            batches += 1

        log_prune_summary(logger, batches, deleted)
        return {"batches": batches, "deleted": deleted, "failed": failed}
