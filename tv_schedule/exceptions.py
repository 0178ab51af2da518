"""
Schedule sync errors

Failures are isolated to the smallest unit possible (one listing, one
channel/day). Only ConfigurationError is allowed to escape a sync call.
"""


class ScheduleSyncError(Exception):
    """Base exception for schedule sync errors."""
    pass


class ConfigurationError(ScheduleSyncError):
    """Raised when storage or API configuration is missing or invalid."""
    pass


class RemoteFetchError(ScheduleSyncError):
    """Raised when the TV Schedules Service is unreachable or returns bad data."""

    def __init__(self, message: str, *, url: str | None = None, status_code: int | None = None):
        self.url = url
        self.status_code = status_code
        super().__init__(message)


class MissingTimezoneError(ScheduleSyncError):
    """Raised when a channel has no usable timezone."""
    pass


class InvalidTimeFormatError(ScheduleSyncError, ValueError):
    """Raised when a listing time of day is not in HHMM format."""
    pass


class StorageError(ScheduleSyncError):
    """Raised when a create/update/delete/query against the store fails."""

    def __init__(self, message: str, *, cid: str | None = None):
        self.cid = cid
        super().__init__(message)
