from datetime import datetime
from typing import Annotated

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator

from tv_schedule.utils.timezone import DateFormatError, parse_feed_date


class FeedRecord(BaseModel):
    """Base for records read from the TV Schedules Service.

    Unknown keys are ignored; absent optional attributes are None.
    """
    model_config = ConfigDict(extra="ignore")

    def has(self, name: str) -> bool:
        """Check whether an attribute is present and non-empty."""
        value = getattr(self, name, None)
        if value is None:
            return False
        if isinstance(value, (str, list)):
            return len(value) > 0
        return True


def _coerce_id(value):
    """Feed identifiers sometimes arrive as numbers."""
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


FeedId = Annotated[str, BeforeValidator(_coerce_id)]


class FeedImage(FeedRecord):
    """Image metadata attached to a listing"""
    image: str | None = None
    ratio: str | None = None
    external_profile: str | None = None


class FeedChannel(FeedRecord):
    """Channel ("feed") definition"""
    cid: FeedId
    full_name: str | None = None
    short_name: str | None = None
    external_id: FeedId | None = None
    timezone: str | None = None


class FeedListing(FeedRecord):
    """Single listing within a channel's day of programming"""
    cid: FeedId
    title: str | None = None
    episode_title: str | None = None
    description: str | None = None
    episode_description: str | None = None
    start_time: FeedId | None = None
    minutes: int | None = None
    program_external_id: FeedId | None = None
    show_external_id: FeedId | None = None
    airing_type: str | None = None
    program_id: FeedId | None = None
    images: list[FeedImage] | None = None
    episode_images: list[FeedImage] | None = None


class FeedListingBatch(FeedChannel):
    """A channel and its listings for a single date"""
    listings: list[FeedListing] = Field(default_factory=list)
    # CIDs of listings that were present but failed validation
    malformed_cids: list[str] = Field(default_factory=list, exclude=True)


class UpdateDateRequest(BaseModel):
    """Single date schedule update request"""
    date: str = Field(..., description="Calendar date to update (YYYY-MM-DD)")

    @field_validator("date")
    @classmethod
    def validate_date_format(cls, v: str) -> str:
        try:
            parse_feed_date(v)
            return v
        except DateFormatError:
            raise ValueError(f"Invalid date format: {v}. Must be YYYY-MM-DD")


class ChannelResponse(BaseModel):
    """Channel data"""
    model_config = ConfigDict(from_attributes=True)

    cid: str
    name: str | None
    short_name: str | None
    external_id: str | None
    timezone: str | None
    weight: int
    is_default: bool


class ScheduleChannelsResponse(BaseModel):
    """Channels enabled for schedule display"""
    channels: list[ChannelResponse]
    default_channel: ChannelResponse | None = None


class ScheduleItemResponse(BaseModel):
    """Stored schedule item"""
    model_config = ConfigDict(from_attributes=True)

    cid: str
    title: str
    show_title: str | None
    description: str | None
    start_time: datetime
    end_time: datetime
    minutes: int
