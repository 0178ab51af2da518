"""
Date and Time utilities

This module handles conversion of channel-local listing times into the storage
timezone and the calculation of per-channel day windows. All instants are
persisted in UTC regardless of the channel's own timezone.
"""
import re
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import logging

from tv_schedule.exceptions import InvalidTimeFormatError, MissingTimezoneError

logger = logging.getLogger(__name__)

STORAGE_TIMEZONE = timezone.utc
FEED_DATE_FORMAT = "%Y-%m-%d"

_TIME_OF_DAY_PATTERN = re.compile(r"^(?P<hour>[01]\d|2[0-3])(?P<minute>[0-5]\d)$")


class DateFormatError(ValueError):
    """Raised when date format is invalid"""
    pass


def parse_feed_date(date_str: str) -> date:
    """
    Parse a calendar date string in YYYY-MM-DD format.

    The date carries no timezone: it is interpreted per channel.

    Raises:
        DateFormatError: If the date string format is invalid
    """
    try:
        return datetime.strptime(date_str, FEED_DATE_FORMAT).date()
    except (TypeError, ValueError) as e:
        raise DateFormatError(f"Invalid date format: '{date_str}' (expected YYYY-MM-DD)") from e


def resolve_timezone(name: str | None) -> ZoneInfo:
    """
    Resolve an IANA timezone name.

    Raises:
        MissingTimezoneError: If the name is empty or unknown
    """
    if not name or not name.strip():
        raise MissingTimezoneError("No timezone set")
    try:
        return ZoneInfo(name.strip())
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise MissingTimezoneError(f"Unknown timezone: '{name}'") from e


def parse_time_of_day(value: str) -> time:
    """
    Parse a four digit HHMM time of day.

    Three digit values ("930") are rejected rather than guessed at.

    Raises:
        InvalidTimeFormatError: If value is not a valid HHMM string
    """
    match = _TIME_OF_DAY_PATTERN.match(value.strip()) if isinstance(value, str) else None
    if match is None:
        raise InvalidTimeFormatError(f"Invalid time of day: {value!r} (expected HHMM)")
    return time(int(match.group("hour")), int(match.group("minute")))


def compute_storage_instant(local_date: date, time_of_day: str, channel_timezone: str) -> datetime:
    """
    Convert a channel-local date and HHMM time of day to a storage instant.

    Args:
        local_date: Listing's run date in the channel's timezone
        time_of_day: Time in the format HHMM
        channel_timezone: IANA timezone of the channel

    Returns:
        Timezone-aware datetime in the storage timezone (UTC)
    """
    zone = resolve_timezone(channel_timezone)
    local_time = parse_time_of_day(time_of_day)
    local_dt = datetime.combine(local_date, local_time, tzinfo=zone)
    return local_dt.astimezone(STORAGE_TIMEZONE)


def compute_day_window(local_date: date, channel_timezone: str) -> tuple[datetime, datetime]:
    """
    Calculate the storage-timezone window covering one channel-local day.

    The window runs from local midnight to the following local midnight and is
    half-open: [start, end). On DST transition days it is 23 or 25 hours long.

    Returns:
        Tuple of (window_start, window_end) in UTC
    """
    zone = resolve_timezone(channel_timezone)
    start = datetime.combine(local_date, time.min, tzinfo=zone)
    end = datetime.combine(local_date + timedelta(days=1), time.min, tzinfo=zone)
    return start.astimezone(STORAGE_TIMEZONE), end.astimezone(STORAGE_TIMEZONE)


def local_date_for(instant: datetime, channel_timezone: str) -> date:
    """Get the calendar date of a stored instant in the channel's timezone."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=STORAGE_TIMEZONE)
    return instant.astimezone(resolve_timezone(channel_timezone)).date()


def utc_now() -> datetime:
    return datetime.now(STORAGE_TIMEZONE)


def yesterday() -> datetime:
    """Midnight UTC of the previous day."""
    today = utc_now().replace(hour=0, minute=0, second=0, microsecond=0)
    return today - timedelta(days=1)
