"""
Tests for queueing old schedule items and the pruner worker
"""
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from tv_schedule.database import session_scope
from tv_schedule.models import QueueItem, ScheduleItem
from tv_schedule.services.channel_manager import ChannelManager
from tv_schedule.services.job_queue import SCHEDULE_PRUNER_QUEUE, SqlJobQueue
from tv_schedule.services.schedule_item_manager import ScheduleItemManager
from tv_schedule.services.schedule_pruner import SchedulePrunerWorker


@pytest.fixture
def manager(db, mock_client):
    return ScheduleItemManager(mock_client, ChannelManager(mock_client))


async def seed_items(add_channel, add_item, old: int, recent: int) -> list[int]:
    channel = await add_channel()
    now = datetime.now(timezone.utc)
    old_ids = []
    for index in range(old):
        item = await add_item(channel, f"old-{index}", now - timedelta(days=60, minutes=index))
        old_ids.append(item.id)
    for index in range(recent):
        await add_item(channel, f"new-{index}", now + timedelta(hours=index))
    return old_ids


async def queued_payloads() -> list[list[int]]:
    async with session_scope() as session:
        result = await session.execute(
            select(QueueItem).where(QueueItem.queue_name == SCHEDULE_PRUNER_QUEUE).order_by(QueueItem.id)
        )
        return [list(item.payload) for item in result.scalars().all()]


@pytest.mark.asyncio
async def test_old_items_queued_in_batches(manager, add_channel, add_item):
    old_ids = await seed_items(add_channel, add_item, old=120, recent=5)

    assert await manager.queue_old_schedule_items_for_delete(timedelta(days=30)) == 3

    payloads = await queued_payloads()
    assert [len(payload) for payload in payloads] == [50, 50, 20]
    flattened = [item_id for payload in payloads for item_id in payload]
    assert len(flattened) == len(set(flattened))
    assert set(flattened) == set(old_ids)


@pytest.mark.asyncio
async def test_oldest_items_queued_first(manager, add_channel, add_item):
    old_ids = await seed_items(add_channel, add_item, old=3, recent=0)

    await manager.queue_old_schedule_items_for_delete()

    # Later index means an earlier start time
    assert (await queued_payloads()) == [list(reversed(old_ids))]


@pytest.mark.asyncio
async def test_nothing_to_queue(manager, add_channel, add_item):
    await seed_items(add_channel, add_item, old=0, recent=3)
    assert await manager.queue_old_schedule_items_for_delete() == 0
    assert await queued_payloads() == []


@pytest.mark.asyncio
async def test_worker_deletes_queued_items(manager, add_channel, add_item):
    await seed_items(add_channel, add_item, old=120, recent=5)
    await manager.queue_old_schedule_items_for_delete()

    result = await SchedulePrunerWorker(time_limit=30).run()

    assert result == {"batches": 3, "deleted": 120, "failed": 0}
    async with session_scope() as session:
        remaining = (await session.execute(select(ScheduleItem.cid))).scalars().all()
    assert sorted(remaining) == [f"new-{index}" for index in range(5)]
    assert await SqlJobQueue(SCHEDULE_PRUNER_QUEUE).number_of_items() == 0


@pytest.mark.asyncio
async def test_worker_ignores_missing_ids(db):
    queue = SqlJobQueue(SCHEDULE_PRUNER_QUEUE)
    await queue.enqueue([9998, 9999])

    result = await SchedulePrunerWorker(queue).run()

    assert result["batches"] == 1
    assert result["deleted"] == 0


@pytest.mark.asyncio
async def test_worker_releases_failed_batch(db, monkeypatch):
    queue = SqlJobQueue(SCHEDULE_PRUNER_QUEUE)
    await queue.enqueue([1, 2])
    worker = SchedulePrunerWorker(queue)

    async def broken(ids):
        raise RuntimeError("disk full")

    monkeypatch.setattr(worker, "process_item", broken)

    result = await worker.run()

    assert result["failed"] == 1
    assert await queue.number_of_items() == 1
    assert await queue.claim() is not None


@pytest.mark.asyncio
async def test_queued_items_are_not_queued_twice(manager, add_channel, add_item):
    await seed_items(add_channel, add_item, old=60, recent=2)

    assert await manager.queue_old_schedule_items_for_delete() == 2
    assert await manager.queue_old_schedule_items_for_delete() == 0

    assert [len(payload) for payload in await queued_payloads()] == [50, 10]
