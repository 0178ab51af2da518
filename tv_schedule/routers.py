from datetime import timedelta
from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException
import logging

from tv_schedule.config import settings
from tv_schedule.dependencies import (
    get_channel_manager,
    get_coordinator,
    get_schedule_item_manager,
    get_sync_scheduler,
)
from tv_schedule.exceptions import ConfigurationError, RemoteFetchError, ScheduleSyncError
from tv_schedule.schemas import (
    ChannelResponse,
    ScheduleChannelsResponse,
    ScheduleItemResponse,
    UpdateDateRequest,
)
from tv_schedule.services import (
    ChannelManager,
    ScheduleItemManager,
    SyncCoordinator,
    SyncScheduler,
)


logger = logging.getLogger(__name__)

main_router = APIRouter()


async def _run_sync(coordinator: SyncCoordinator, operation: str, sync_func) -> dict:
    """Run a sync operation through the coordinator, mapping config errors to 500"""
    try:
        return await coordinator.execute(operation, sync_func)
    except ConfigurationError as e:
        logger.error(f"{operation} failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@main_router.get("/")
async def root(scheduler: Annotated[SyncScheduler, Depends(get_sync_scheduler)]) -> dict:
    """Root endpoint with service information"""
    next_run = scheduler.get_next_run_time()

    return {
        "service": "TV Schedule Sync",
        "version": "0.1.0",
        "next_scheduled_sync": next_run.isoformat() if next_run else None,
        "endpoints": {
            "channels_update": "/channels/update - Sync channels from TVSS (POST)",
            "channels_schedule": "/channels/schedule - Channels enabled for schedule display",
            "schedule_update": "/schedule/update - Sync listings for one date (POST)",
            "schedule_update_all": "/schedule/update-all - Sync listings from today forward (POST)",
            "schedule_prune": "/schedule/prune - Queue old schedule items for deletion (POST)",
            "schedule_item_refresh": "/schedule-items/{cid}/refresh - Re-sync one item (POST)",
            "health": "/health - Health check"
        }
    }


@main_router.get("/health")
async def health_check(
    scheduler: Annotated[SyncScheduler, Depends(get_sync_scheduler)],
    coordinator: Annotated[SyncCoordinator, Depends(get_coordinator)],
) -> dict:
    """Health check endpoint"""
    next_run = scheduler.get_next_run_time()
    return {
        "status": "ok",
        "scheduler_running": scheduler.is_running(),
        "sync_in_progress": coordinator.is_syncing(),
        "next_sync": next_run.isoformat() if next_run else None
    }


@main_router.post("/channels/update")
async def update_channels(
    channel_manager: Annotated[ChannelManager, Depends(get_channel_manager)],
    coordinator: Annotated[SyncCoordinator, Depends(get_coordinator)],
) -> dict:
    """Add and update all channels reported by TVSS"""
    logger.info("Manual channel update triggered via API")

    async def sync() -> dict:
        stored = await channel_manager.update()
        return {"status": "ok", "channels_stored": stored}

    return await _run_sync(coordinator, "channel update", sync)


@main_router.get("/channels/schedule", response_model=ScheduleChannelsResponse)
async def get_schedule_channels(
    channel_manager: Annotated[ChannelManager, Depends(get_channel_manager)],
) -> ScheduleChannelsResponse:
    """Channels enabled for schedule display, ordered by weight"""
    channels = await channel_manager.get_schedule_channels()
    default_channel = await channel_manager.get_schedule_default_channel()
    return ScheduleChannelsResponse(
        channels=[ChannelResponse.model_validate(channel) for channel in channels],
        default_channel=ChannelResponse.model_validate(default_channel) if default_channel else None,
    )


@main_router.post("/schedule/update")
async def update_schedule_by_date(
    request: UpdateDateRequest,
    manager: Annotated[ScheduleItemManager, Depends(get_schedule_item_manager)],
    coordinator: Annotated[SyncCoordinator, Depends(get_coordinator)],
) -> dict:
    """
    Sync listings for a single date

    The date is interpreted in each channel's own timezone.
    """
    logger.info(f"Manual schedule update for {request.date} triggered via API")

    async def sync() -> dict:
        updated = await manager.update_by_date(request.date)
        return {"status": "ok", "date": request.date, "updated": updated}

    return await _run_sync(coordinator, "schedule update", sync)


@main_router.post("/schedule/update-all")
async def update_schedule_from_today(
    manager: Annotated[ScheduleItemManager, Depends(get_schedule_item_manager)],
    coordinator: Annotated[SyncCoordinator, Depends(get_coordinator)],
) -> dict:
    """Sync listings from today until TVSS runs out of data"""
    logger.info("Manual full schedule update triggered via API")

    async def sync() -> dict:
        days = await manager.update_from_date()
        return {"status": "ok", "days_updated": days}

    return await _run_sync(coordinator, "full schedule update", sync)


@main_router.post("/schedule/prune")
async def prune_schedule(
    manager: Annotated[ScheduleItemManager, Depends(get_schedule_item_manager)],
    coordinator: Annotated[SyncCoordinator, Depends(get_coordinator)],
) -> dict:
    """Queue schedule items older than the configured age for deletion"""

    async def sync() -> dict:
        batches = await manager.queue_old_schedule_items_for_delete(
            timedelta(days=settings.prune_max_age_days)
        )
        return {"status": "ok", "batches_queued": batches}

    return await _run_sync(coordinator, "schedule prune", sync)


@main_router.post("/schedule-items/{cid}/refresh", response_model=ScheduleItemResponse)
async def refresh_schedule_item(
    cid: str,
    manager: Annotated[ScheduleItemManager, Depends(get_schedule_item_manager)],
) -> ScheduleItemResponse:
    """Re-sync one stored schedule item from TVSS"""
    try:
        item = await manager.refresh_item(cid)
    except ConfigurationError as e:
        raise HTTPException(status_code=500, detail=str(e))
    except RemoteFetchError as e:
        logger.error(f"Refresh of schedule item {cid} failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    except ScheduleSyncError as e:
        logger.error(f"Refresh of schedule item {cid} failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    if item is None:
        raise HTTPException(status_code=404, detail=f"Schedule item {cid} not found")
    return ScheduleItemResponse.model_validate(item)
