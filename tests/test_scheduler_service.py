"""
Tests for the periodic sync job and the sync coordinator
"""
import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from tv_schedule.services.scheduler_service import SyncScheduler
from tv_schedule.services.sync_coordinator import SyncCoordinator


def build_manager(last_run: datetime) -> MagicMock:
    manager = MagicMock()
    manager.get_last_prune_time = AsyncMock(return_value=last_run)
    manager.get_last_day_update = AsyncMock(return_value=last_run)
    manager.get_last_full_update = AsyncMock(return_value=last_run)
    manager.set_last_prune_time = AsyncMock()
    manager.set_last_day_update = AsyncMock()
    manager.set_last_full_update = AsyncMock()
    manager.queue_old_schedule_items_for_delete = AsyncMock(return_value=2)
    manager.update_by_date = AsyncMock(return_value=True)
    manager.update_from_date = AsyncMock(return_value=14)
    return manager


def build_pruner() -> MagicMock:
    pruner = MagicMock()
    pruner.run = AsyncMock(return_value={"batches": 2, "deleted": 100, "failed": 0})
    return pruner


@pytest.mark.asyncio
async def test_all_due_steps_run_and_record_state():
    manager = build_manager(datetime.now(timezone.utc) - timedelta(days=2))
    scheduler = SyncScheduler(manager, build_pruner(), SyncCoordinator())

    results = await scheduler.run_due_jobs()

    assert results["prune_queued"] == 2
    assert results["day_updated"] is True
    assert results["days_updated"] == 14
    manager.set_last_prune_time.assert_awaited_once()
    manager.set_last_day_update.assert_awaited_once()
    manager.set_last_full_update.assert_awaited_once()


@pytest.mark.asyncio
async def test_recent_runs_are_not_repeated():
    manager = build_manager(datetime.now(timezone.utc))
    pruner = build_pruner()
    scheduler = SyncScheduler(manager, pruner, SyncCoordinator())

    results = await scheduler.run_due_jobs()

    manager.queue_old_schedule_items_for_delete.assert_not_awaited()
    manager.update_by_date.assert_not_awaited()
    manager.update_from_date.assert_not_awaited()
    pruner.run.assert_awaited_once()
    assert results["pruned"]["deleted"] == 100


@pytest.mark.asyncio
async def test_failing_step_does_not_stop_later_steps():
    manager = build_manager(datetime.now(timezone.utc) - timedelta(days=2))
    manager.queue_old_schedule_items_for_delete.side_effect = RuntimeError("db locked")
    scheduler = SyncScheduler(manager, build_pruner(), SyncCoordinator())

    results = await scheduler.run_due_jobs()

    assert "prune_queued" not in results
    manager.set_last_prune_time.assert_not_awaited()
    manager.update_by_date.assert_awaited_once()
    manager.update_from_date.assert_awaited_once()


@pytest.mark.asyncio
async def test_day_update_without_listings_is_retried_next_run():
    manager = build_manager(datetime.now(timezone.utc) - timedelta(days=2))
    manager.update_by_date.return_value = False
    scheduler = SyncScheduler(manager, build_pruner(), SyncCoordinator())

    await scheduler.run_due_jobs()

    manager.set_last_day_update.assert_not_awaited()


@pytest.mark.asyncio
async def test_coordinator_skips_concurrent_sync():
    coordinator = SyncCoordinator()
    started = asyncio.Event()
    release = asyncio.Event()

    async def long_sync():
        started.set()
        await release.wait()
        return {"status": "ok"}

    first = asyncio.create_task(coordinator.execute("first", long_sync))
    await started.wait()

    assert coordinator.is_syncing() is True
    second = await coordinator.execute("second", AsyncMock(return_value={"status": "ok"}))
    assert second["status"] == "skipped"

    release.set()
    assert (await first) == {"status": "ok"}
    assert coordinator.is_syncing() is False


def test_scheduler_not_running_before_start():
    scheduler = SyncScheduler(build_manager(datetime.now(timezone.utc)), build_pruner(), SyncCoordinator())
    assert scheduler.is_running() is False
    assert scheduler.get_next_run_time() is None


@pytest.mark.asyncio
async def test_day_update_uses_utc_date(monkeypatch):
    # Late evening in the Americas is already the next day in UTC
    now = datetime(2024, 3, 11, 2, 30, tzinfo=timezone.utc)
    monkeypatch.setattr("tv_schedule.services.scheduler_service.utc_now", lambda: now)
    manager = build_manager(now - timedelta(days=2))
    scheduler = SyncScheduler(manager, build_pruner(), SyncCoordinator())

    await scheduler.run_due_jobs()

    manager.update_by_date.assert_awaited_once_with("2024-03-11")
