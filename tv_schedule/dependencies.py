"""
Dependency Configuration

Process-wide service instances shared by the API routes and the scheduler.
Routes receive them through FastAPI Depends so tests can override them with
app.dependency_overrides.
"""
import logging

from tv_schedule.config import settings
from tv_schedule.services.channel_manager import ChannelManager
from tv_schedule.services.schedule_item_manager import ScheduleItemManager
from tv_schedule.services.schedule_pruner import SchedulePrunerWorker
from tv_schedule.services.scheduler_service import SyncScheduler
from tv_schedule.services.sync_coordinator import SyncCoordinator, get_sync_coordinator, reset_sync_coordinator
from tv_schedule.services.tvss_client import TvssClient


logger = logging.getLogger(__name__)

_client: TvssClient | None = None
_channel_manager: ChannelManager | None = None
_schedule_item_manager: ScheduleItemManager | None = None
_pruner: SchedulePrunerWorker | None = None
_scheduler: SyncScheduler | None = None


def get_tvss_client() -> TvssClient:
    global _client
    if _client is None:
        _client = TvssClient.from_settings()
    return _client


def get_channel_manager() -> ChannelManager:
    global _channel_manager
    if _channel_manager is None:
        _channel_manager = ChannelManager(get_tvss_client())
    return _channel_manager


def get_schedule_item_manager() -> ScheduleItemManager:
    global _schedule_item_manager
    if _schedule_item_manager is None:
        _schedule_item_manager = ScheduleItemManager(
            get_tvss_client(),
            get_channel_manager(),
            prune_batch_size=settings.prune_batch_size,
        )
    return _schedule_item_manager


def get_schedule_pruner() -> SchedulePrunerWorker:
    global _pruner
    if _pruner is None:
        _pruner = SchedulePrunerWorker(time_limit=settings.prune_worker_time_limit_sec)
    return _pruner


def get_coordinator() -> SyncCoordinator:
    return get_sync_coordinator()


def get_sync_scheduler() -> SyncScheduler:
    global _scheduler
    if _scheduler is None:
        _scheduler = SyncScheduler(
            get_schedule_item_manager(),
            get_schedule_pruner(),
            get_sync_coordinator(),
        )
    return _scheduler


def reset_dependencies() -> None:
    """
    Drop all shared instances (mainly for testing).

    WARNING: Only use this in test environments!
    """
    global _client, _channel_manager, _schedule_item_manager, _pruner, _scheduler
    _client = None
    _channel_manager = None
    _schedule_item_manager = None
    _pruner = None
    _scheduler = None
    reset_sync_coordinator()
    logger.debug("Dependencies reset")
