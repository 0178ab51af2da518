"""
Schedule Item Manager

Reconciles local schedule items with TVSS listings one calendar day at a time.
For each channel in a day's feed this will:
 - add any newly discovered listings as schedule items;
 - update every matching existing item (the API offers no change markers);
 - remove items for that channel/day that the API no longer lists.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tv_schedule.database import session_scope
from tv_schedule.exceptions import ConfigurationError, MissingTimezoneError, RemoteFetchError
from tv_schedule.models import Channel, ScheduleItem
from tv_schedule.schemas import FeedImage, FeedListing, FeedListingBatch
from tv_schedule.services.channel_manager import ChannelManager
from tv_schedule.services.content_manager import ContentManager
from tv_schedule.services.job_queue import SCHEDULE_PRUNER_QUEUE, JobQueue, SqlJobQueue
from tv_schedule.services.show_catalog import ShowCatalog, SqlShowCatalog
from tv_schedule.services.sync_state import (
    LAST_DAY_UPDATE_KEY,
    LAST_FULL_UPDATE_KEY,
    LAST_PRUNE_KEY,
    SqlSyncState,
    SyncState,
)
from tv_schedule.services.tvss_client import TvssClient
from tv_schedule.utils.logging_helpers import log_channel_summary, log_section_end, log_section_start
from tv_schedule.utils.timezone import (
    DateFormatError,
    compute_day_window,
    compute_storage_instant,
    local_date_for,
    parse_feed_date,
    resolve_timezone,
    utc_now,
    yesterday,
)


logger = logging.getLogger(__name__)

SHOW_IMAGE_RATIO = "16:9"
SHOW_IMAGE_PROFILE = "Banner-L2"
SHOW_IMAGE_FALLBACK_PROFILE = "Banner-L1"
EPISODE_IMAGE_RATIO = "16:9"


@dataclass(slots=True)
class ChannelDaySummary:
    channel_cid: str
    date: str
    listings: int = 0
    stored: int = 0
    failed: int = 0
    deleted: int = 0
    skipped: str | None = None


class ScheduleItemManager(ContentManager[ScheduleItem]):
    """Adds, updates and removes ScheduleItem records from TVSS listings."""

    model = ScheduleItem

    def __init__(
        self,
        client: TvssClient,
        channel_manager: ChannelManager,
        *,
        show_catalog: ShowCatalog | None = None,
        state: SyncState | None = None,
        prune_queue: JobQueue | None = None,
        prune_batch_size: int = 50,
    ) -> None:
        self.client = client
        self.channel_manager = channel_manager
        self.show_catalog = show_catalog or SqlShowCatalog()
        self.state = state or SqlSyncState()
        self.prune_queue = prune_queue or SqlJobQueue(SCHEDULE_PRUNER_QUEUE)
        self.prune_batch_size = prune_batch_size

    # Last-run timestamps. Each defaults to yesterday when never recorded.

    async def get_last_prune_time(self) -> datetime:
        return await self.state.get(LAST_PRUNE_KEY) or yesterday()

    async def set_last_prune_time(self, value: datetime) -> None:
        await self.state.set(LAST_PRUNE_KEY, value)

    async def get_last_day_update(self) -> datetime:
        return await self.state.get(LAST_DAY_UPDATE_KEY) or yesterday()

    async def set_last_day_update(self, value: datetime) -> None:
        await self.state.set(LAST_DAY_UPDATE_KEY, value)

    async def get_last_full_update(self) -> datetime:
        return await self.state.get(LAST_FULL_UPDATE_KEY) or yesterday()

    async def set_last_full_update(self, value: datetime) -> None:
        await self.state.set(LAST_FULL_UPDATE_KEY, value)

    async def update_from_date(self, start: date | None = None, *, max_days: int | None = None) -> int:
        """
        Updates as much as possible from the TVSS from a date forward.

        The TVSS API generally provides about two weeks of future listings, but
        this keeps going until it reaches a date with no listing data (or
        max_days dates have been visited).

        Args:
            start: First calendar date to update (defaults to today)
            max_days: Optional cap on the number of dates requested

        Returns:
            Number of dates that yielded listings
        """
        current = start or utc_now().date()
        log_section_start(logger, f"schedule update from {current.isoformat()}")

        days_updated = 0
        visited = 0
        while max_days is None or visited < max_days:
            visited += 1
            if not await self.update_by_date(current.isoformat()):
                break
            days_updated += 1
            current += timedelta(days=1)
        else:
            logger.warning("Stopped schedule update after %s days (limit reached)", max_days)

        logger.info("Updated %s days of listings", days_updated)
        log_section_end(logger, "schedule update")
        return days_updated

    async def update_by_date(self, date_str: str) -> bool:
        """
        Update all schedule items from the TVSS API for a date.

        Args:
            date_str: Date in the format YYYY-MM-DD. The date is interpreted
                in each channel's own timezone.

        Returns:
            True if at least one listing was found and processed
        """
        try:
            day = parse_feed_date(date_str)
        except DateFormatError as exc:
            logger.error("Schedule update skipped: %s", exc)
            return False

        try:
            feeds = await self.client.get_listings(day)
        except ConfigurationError:
            raise
        except Exception as exc:
            logger.error("Unable to fetch TVSS listings for %s: %s", date_str, exc, exc_info=True)
            return False

        if not feeds:
            logger.info("No listings found for %s", date_str)
            return False

        updated = False
        for feed in feeds:
            summary = await self._update_channel_listings(feed, day)
            log_channel_summary(logger, summary)
            if summary.listings:
                updated = True

        return updated

    async def _update_channel_listings(self, feed: FeedListingBatch, day: date) -> ChannelDaySummary:
        summary = ChannelDaySummary(channel_cid=feed.cid, date=day.isoformat())

        try:
            channel = await self.channel_manager.add_or_update_content(feed)
        except ConfigurationError:
            raise
        except Exception as exc:
            logger.critical(
                "Unable to add/update channel for TVSS feed %s on %s: %s",
                feed.cid,
                summary.date,
                exc,
                exc_info=True,
            )
            summary.skipped = "channel update failed"
            return summary

        try:
            resolve_timezone(channel.timezone)
        except MissingTimezoneError as exc:
            logger.critical(
                "Could not determine timezone for channel %s (%s): %s. Listing import abandoned!",
                channel.name,
                channel.cid,
                exc,
            )
            summary.skipped = "missing timezone"
            return summary

        cids: set[str] = set()
        for listing in feed.listings:
            try:
                await self.add_or_update_content(listing, channel, day)
                summary.stored += 1
            except ConfigurationError:
                raise
            except Exception as exc:
                summary.failed += 1
                logger.critical(
                    "Unable to add/update schedule item for TVSS listing %s (channel %s, %s): %s",
                    listing.cid,
                    channel.cid,
                    summary.date,
                    exc,
                    exc_info=True,
                )
            # Recorded even on failure so the existing item is not deleted below
            cids.add(listing.cid)
            summary.listings += 1

        for cid in feed.malformed_cids:
            summary.failed += 1
            summary.listings += 1
            cids.add(cid)

        summary.deleted = await self.remove_unmatched_content(channel, day, cids)
        return summary

    async def get_items_for_date_and_channel(
        self,
        db: AsyncSession,
        local_date: date,
        channel: Channel,
    ) -> list[ScheduleItem]:
        """Gets all items starting within a channel-local day for a channel."""
        window_start, window_end = compute_day_window(local_date, channel.timezone)
        stmt = (
            select(ScheduleItem)
            .where(
                ScheduleItem.channel_id == channel.id,
                ScheduleItem.start_time >= window_start,
                ScheduleItem.start_time < window_end,
            )
            .order_by(ScheduleItem.start_time, ScheduleItem.id)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def remove_unmatched_content(
        self,
        channel: Channel,
        local_date: date,
        expected_cids: set[str],
    ) -> int:
        """
        Deletes items for a channel/day whose CIDs are not in expected_cids.

        An entry can be deleted and replaced with something else in the TVSS
        API. The old items must go to prevent time overlaps in the schedule.
        Failures are logged and the cleanup abandoned; a missed deletion is
        repaired by the next run.

        Returns:
            Number of items deleted
        """
        try:
            async with session_scope() as db:
                items = await self.get_items_for_date_and_channel(db, local_date, channel)
                unmatched = [item for item in items if item.cid not in expected_cids]
                if not unmatched:
                    return 0
                deleted = await self.delete(db, unmatched)
        except ConfigurationError:
            raise
        except Exception as exc:
            logger.error(
                "Unable to remove unmatched schedule items for channel %s on %s: %s",
                channel.cid,
                local_date.isoformat(),
                exc,
                exc_info=True,
            )
            return 0

        logger.info(
            "Removed %s unmatched schedule items for channel %s on %s: %s",
            deleted,
            channel.cid,
            local_date.isoformat(),
            ", ".join(sorted(item.cid for item in unmatched)),
        )
        return deleted

    async def add_or_update_content(
        self,
        listing: FeedListing,
        channel: Channel,
        local_date: date,
    ) -> ScheduleItem:
        """
        Creates or updates the schedule item for a TVSS listing.

        Args:
            listing: Listing from the API
            channel: Channel the listing airs on
            local_date: Listing's run date in the channel's timezone

        Raises:
            InvalidTimeFormatError: If the listing start time is not HHMM
            RemoteFetchError: If the listing has no title or duration
        """
        start_time = compute_storage_instant(local_date, listing.start_time or "", channel.timezone)
        if listing.minutes is None:
            raise RemoteFetchError(f"Listing {listing.cid} has no duration")
        end_time = start_time + timedelta(minutes=listing.minutes)

        title = listing.episode_title if listing.has("episode_title") else listing.title
        if not title:
            raise RemoteFetchError(f"Listing {listing.cid} has no title")

        async with session_scope() as db:
            item = await self.get_content_by_cid(db, listing.cid)
            if item is None:
                item = ScheduleItem(cid=listing.cid)

            # Required fields
            item.title = title
            item.show_title = listing.title
            if listing.has("episode_description"):
                item.description = listing.episode_description
            else:
                item.description = listing.description
            item.channel_id = channel.id
            item.start_time = start_time
            item.minutes = listing.minutes
            item.end_time = end_time

            # Optional fields are only ever set, never cleared
            if listing.has("program_external_id"):
                item.program_external_id = listing.program_external_id
                show_id = await self.show_catalog.get_show_id_by_tms_id(db, listing.program_external_id)
                if show_id is not None:
                    item.show_id = show_id

            # TVSS refers to episodes as "shows"
            if listing.has("show_external_id"):
                item.episode_external_id = listing.show_external_id

            if listing.has("airing_type"):
                item.airing_type = listing.airing_type

            if listing.has("program_id"):
                item.program_id = listing.program_id

            if listing.has("images"):
                item.show_image_uri = get_show_image_uri(listing.images)

            if listing.has("episode_images"):
                item.episode_image_uri = get_episode_image_uri(listing.episode_images)

            await self.save(db, item)

        return item

    async def get_listing(self, day: date, cid: str) -> FeedListing | None:
        """
        Gets a specific listing for a date by CID.

        Raises:
            RemoteFetchError: If the listings cannot be fetched
        """
        for feed in await self.client.get_listings(day):
            for listing in feed.listings:
                if listing.cid == cid:
                    return listing
        return None

    async def refresh_item(self, cid: str) -> ScheduleItem | None:
        """
        Re-sync a single stored schedule item from the TVSS API.

        Returns:
            The updated item, or None if the item or its listing is not found
        """
        async with session_scope() as db:
            item = await self.get_content_by_cid(db, cid)
            channel = await db.get(Channel, item.channel_id) if item is not None else None

        if item is None or channel is None:
            logger.warning("Schedule item %s not found locally", cid)
            return None

        local_date = local_date_for(item.start_time, channel.timezone)
        listing = await self.get_listing(local_date, cid)
        if listing is None:
            logger.warning(
                "Schedule item %s not found in TVSS listings for %s; update not possible",
                cid,
                local_date.isoformat(),
            )
            return None

        return await self.add_or_update_content(listing, channel, local_date)

    async def queue_old_schedule_items_for_delete(self, max_age: timedelta = timedelta(days=30)) -> int:
        """
        Queues items older than max_age to be deleted.

        Items are queued in groups of prune_batch_size IDs, oldest first.
        IDs already waiting in the queue are skipped.

        Returns:
            Number of queue items created
        """
        cutoff = utc_now() - max_age
        try:
            async with session_scope() as db:
                result = await db.execute(
                    select(ScheduleItem.id)
                    .where(ScheduleItem.start_time <= cutoff)
                    .order_by(ScheduleItem.start_time, ScheduleItem.id)
                )
                ids = list(result.scalars().all())
            # Batches still waiting for the pruner worker are not queued twice
            pending = await self.prune_queue.pending_ids()
            ids = [item_id for item_id in ids if item_id not in pending]
        except ConfigurationError:
            raise
        except Exception as exc:
            logger.error("Unable to query schedule items older than %s: %s", cutoff.isoformat(), exc, exc_info=True)
            return 0

        batches = 0
        for start_index in range(0, len(ids), self.prune_batch_size):
            await self.prune_queue.enqueue(ids[start_index:start_index + self.prune_batch_size])
            batches += 1

        logger.info(
            "Queued %s schedule items older than %s for deletion in %s batches",
            len(ids),
            cutoff.isoformat(),
            batches,
        )
        return batches


def get_show_image_uri(images: list[FeedImage]) -> str | None:
    """
    Gets a show image from a listing's images.

    A 16:9 "Banner-L2" image is preferred and returned immediately if found;
    otherwise a 16:9 "Banner-L1" image is used. These properties come from
    Gracenote image metadata.
    """
    uri = None
    for image in images:
        if image.ratio != SHOW_IMAGE_RATIO:
            continue
        if image.external_profile == SHOW_IMAGE_PROFILE:
            return image.image
        if image.external_profile == SHOW_IMAGE_FALLBACK_PROFILE:
            uri = image.image
    return uri


def get_episode_image_uri(images: list[FeedImage]) -> str | None:
    """Gets the first 16:9 image from a listing's episode images."""
    for image in images:
        if image.ratio == EPISODE_IMAGE_RATIO:
            return image.image
    return None
