"""
Pytest Fixtures

Temporary database, mocked TVSS client and feed record factories.
"""
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from tv_schedule.database import close_db, init_db, session_scope
from tv_schedule.dependencies import reset_dependencies
from tv_schedule.models import Channel, ScheduleItem
from tv_schedule.schemas import FeedListing, FeedListingBatch


@pytest_asyncio.fixture
async def db(tmp_path):
    """Initialize a fresh SQLite database file for one test."""
    await init_db(str(tmp_path / "tv_schedule_test.db"))
    yield
    await close_db()


@pytest.fixture(autouse=True)
def clean_dependencies():
    reset_dependencies()
    yield
    reset_dependencies()


@pytest.fixture
def mock_client():
    """TVSS client returning no data unless a test says otherwise."""
    client = MagicMock()
    client.get_feeds = AsyncMock(return_value=[])
    client.get_listings = AsyncMock(return_value=[])
    return client


@pytest.fixture
def make_listing():
    def _make(cid: str, start_time: str = "1930", minutes: int = 60, **fields) -> FeedListing:
        data = {"cid": cid, "title": f"Program {cid}", "start_time": start_time, "minutes": minutes}
        data.update(fields)
        return FeedListing.model_validate(data)
    return _make


@pytest.fixture
def make_batch():
    def _make(
        listings: list[FeedListing],
        cid: str = "TESTV",
        timezone: str | None = "America/Los_Angeles",
        **fields,
    ) -> FeedListingBatch:
        data = {
            "cid": cid,
            "full_name": f"{cid} Channel",
            "short_name": cid,
            "timezone": timezone,
            "listings": [listing.model_dump() for listing in listings],
        }
        data.update(fields)
        return FeedListingBatch.model_validate(data)
    return _make


@pytest.fixture
def add_channel(db):
    async def _add(cid: str = "TESTV", tz: str = "America/Los_Angeles", **fields) -> Channel:
        async with session_scope() as session:
            channel = Channel(cid=cid, name=f"{cid} Channel", timezone=tz, **fields)
            session.add(channel)
            await session.flush()
        return channel
    return _add


@pytest.fixture
def add_item(db):
    async def _add(channel: Channel, cid: str, start_time: datetime, minutes: int = 30) -> ScheduleItem:
        async with session_scope() as session:
            item = ScheduleItem(
                cid=cid,
                title=f"Program {cid}",
                channel_id=channel.id,
                start_time=start_time,
                end_time=start_time,
                minutes=minutes,
            )
            session.add(item)
            await session.flush()
        return item
    return _add
