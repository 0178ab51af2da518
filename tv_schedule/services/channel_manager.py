"""
Channel Manager

Keeps local Channel records in sync with the channel feeds reported by the
TV Schedules Service. Channels are durable reference data: they are created
and updated here but never deleted.
"""
import logging

from tv_schedule.database import session_scope
from tv_schedule.exceptions import ConfigurationError
from tv_schedule.models import Channel
from tv_schedule.schemas import FeedChannel
from tv_schedule.services.content_manager import ContentManager
from tv_schedule.services.tvss_client import TvssClient


logger = logging.getLogger(__name__)


class ChannelManager(ContentManager[Channel]):
    """Adds, updates and looks up Channel records."""

    model = Channel

    def __init__(self, client: TvssClient) -> None:
        self.client = client

    async def update(self) -> int:
        """
        Add and/or update all channels from the TVSS API.

        Returns:
            Number of channels stored
        """
        try:
            feeds = await self.client.get_feeds()
        except ConfigurationError:
            raise
        except Exception as exc:
            logger.error("Unable to fetch channel feeds: %s", exc, exc_info=True)
            return 0

        stored = 0
        for feed in feeds:
            try:
                await self.add_or_update_content(feed)
                stored += 1
            except ConfigurationError:
                raise
            except Exception as exc:
                logger.critical(
                    "Unable to add/update channel %s (%s): %s",
                    feed.cid,
                    feed.full_name,
                    exc,
                    exc_info=True,
                )

        logger.info("Channel update complete: %s/%s channels stored", stored, len(feeds))
        return stored

    async def add_or_update_content(self, feed: FeedChannel) -> Channel:
        """
        Creates or updates the Channel for a TVSS feed.

        Local display settings (schedule flags and weight) are left untouched.
        """
        async with session_scope() as db:
            channel = await self.get_content_by_cid(db, feed.cid)
            if channel is None:
                channel = Channel(cid=feed.cid)
                logger.info("Creating channel %s (%s)", feed.cid, feed.full_name)

            channel.name = feed.full_name
            channel.external_id = feed.external_id
            channel.short_name = feed.short_name
            channel.timezone = feed.timezone
            await self.save(db, channel)

        return channel

    async def get_schedule_channels(self) -> list[Channel]:
        """Gets all channels enabled for schedule display, ordered by weight."""
        async with session_scope() as db:
            channels = await self.get_content_by_properties(
                db,
                {"schedule_enabled": True},
                sort_by="weight",
            )
        return channels

    async def get_schedule_default_channel(self) -> Channel | None:
        """Gets the default channel for schedule display, if any."""
        async with session_scope() as db:
            channels = await self.get_content_by_properties(
                db,
                {"schedule_enabled": True, "is_default": True},
                sort_by="weight",
                range_length=1,
            )
        return channels[0] if channels else None

    async def get_channel(self, channel_id: int) -> Channel | None:
        async with session_scope() as db:
            channels = await self.get_content_by_properties(db, {"id": channel_id})
        return channels[0] if channels else None
