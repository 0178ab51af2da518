"""
Services package for the TV Schedule sync service

This package contains the TVSS client and all sync business logic.
"""
from tv_schedule.services.channel_manager import ChannelManager
from tv_schedule.services.schedule_item_manager import ScheduleItemManager
from tv_schedule.services.schedule_pruner import SchedulePrunerWorker
from tv_schedule.services.scheduler_service import SyncScheduler
from tv_schedule.services.sync_coordinator import SyncCoordinator, get_sync_coordinator
from tv_schedule.services.tvss_client import TvssClient

__all__ = [
    'ChannelManager',
    'ScheduleItemManager',
    'SchedulePrunerWorker',
    'SyncScheduler',
    'SyncCoordinator',
    'get_sync_coordinator',
    'TvssClient',
]
