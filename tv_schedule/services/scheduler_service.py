import logging
from datetime import datetime, timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from tv_schedule.config import settings
from tv_schedule.services.schedule_item_manager import ScheduleItemManager
from tv_schedule.services.schedule_pruner import SchedulePrunerWorker
from tv_schedule.services.sync_coordinator import SyncCoordinator
from tv_schedule.utils.timezone import utc_now


logger = logging.getLogger(__name__)


class SyncScheduler:
    """Scheduler for periodic schedule sync and pruning"""

    def __init__(
        self,
        schedule_item_manager: ScheduleItemManager,
        pruner: SchedulePrunerWorker,
        coordinator: SyncCoordinator,
    ):
        self.schedule_item_manager = schedule_item_manager
        self.pruner = pruner
        self.coordinator = coordinator
        self.scheduler: AsyncIOScheduler | None = None

    @staticmethod
    def _is_due(last_run: datetime, interval_sec: int, now: datetime) -> bool:
        return now - last_run >= timedelta(seconds=interval_sec)

    async def run_due_jobs(self) -> dict[str, object]:
        """
        Run every sync step whose interval has elapsed, then drain the pruner queue.

        Each step is isolated: a failure is logged and the next step still runs.
        """
        manager = self.schedule_item_manager
        results: dict[str, object] = {}

        now = utc_now()
        try:
            if self._is_due(await manager.get_last_prune_time(), settings.prune_interval_sec, now):
                results["prune_queued"] = await manager.queue_old_schedule_items_for_delete(
                    timedelta(days=settings.prune_max_age_days)
                )
                await manager.set_last_prune_time(now)
        except Exception as e:
            logger.error(f"Exception while queueing schedule items for pruning: {e}", exc_info=True)

        now = utc_now()
        try:
            if self._is_due(await manager.get_last_day_update(), settings.day_update_interval_sec, now):
                today = now.date().isoformat()
                results["day_updated"] = await manager.update_by_date(today)
                if results["day_updated"]:
                    await manager.set_last_day_update(now)
        except Exception as e:
            logger.error(f"Exception in scheduled day update: {e}", exc_info=True)

        now = utc_now()
        try:
            if self._is_due(await manager.get_last_full_update(), settings.full_update_interval_sec, now):
                results["days_updated"] = await manager.update_from_date(
                    max_days=settings.full_update_max_days or None
                )
                await manager.set_last_full_update(now)
        except Exception as e:
            logger.error(f"Exception in scheduled full update: {e}", exc_info=True)

        try:
            results["pruned"] = await self.pruner.run()
        except Exception as e:
            logger.error(f"Exception in schedule pruner: {e}", exc_info=True)

        return results

    async def _sync_job(self) -> None:
        """Background job that runs due sync steps"""
        logger.info("Scheduled schedule sync triggered")
        try:
            result = await self.coordinator.execute("scheduled sync", self.run_due_jobs)
            if isinstance(result, dict) and result.get("status") == "skipped":
                logger.info("Scheduled sync skipped: %s", result["message"])
        except Exception as e:
            logger.error(f"Exception in scheduled sync: {e}", exc_info=True)

    def start(self) -> None:
        """Start the scheduler with the schedule sync job"""
        if self.scheduler and self.scheduler.running:
            logger.warning("Scheduler already running")
            return

        try:
            trigger = CronTrigger.from_crontab(settings.sync_cron)
        except (ValueError, KeyError) as exc:
            logger.error("Invalid cron expression '%s': %s", settings.sync_cron, exc)
            raise

        self.scheduler = AsyncIOScheduler(timezone='UTC')
        self.scheduler.add_job(
            self._sync_job,
            trigger=trigger,
            id='schedule_sync',
            max_instances=1,
            coalesce=True,
            misfire_grace_time=settings.sync_misfire_grace_sec
        )

        self.scheduler.start()
        next_time = self.get_next_run_time()
        logger.info(
            "Scheduler started. Next sync: %s",
            next_time.isoformat() if next_time else "unknown"
        )

    def shutdown(self) -> None:
        """Shutdown the scheduler"""
        if self.scheduler and self.scheduler.running:
            self.scheduler.shutdown()
            logger.info("Scheduler stopped")
            self.scheduler = None

    def is_running(self) -> bool:
        return bool(self.scheduler and self.scheduler.running)

    def get_next_run_time(self) -> datetime | None:
        """Get next scheduled sync time"""
        if not self.scheduler:
            return None
        job = self.scheduler.get_job('schedule_sync')
        return job.next_run_time if job else None
