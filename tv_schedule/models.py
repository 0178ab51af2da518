"""
SQLAlchemy ORM Models for the TV Schedule service

This module defines the database models for channels, schedule items, the
show catalog, sync state and the deferred delete queue.
"""
from datetime import datetime, timezone
from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Stores datetimes as naive UTC and always returns aware UTC values.

    SQLite has no timezone support, so values are normalized on the way in.
    """
    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime not allowed for storage: {value!r}")
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


class Base(DeclarativeBase):
    """Base class for all ORM models"""
    pass


class Channel(Base):
    """Channel from the TV Schedules Service feed"""
    __tablename__ = "channels"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cid: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    name: Mapped[str | None] = mapped_column(String, nullable=True)
    short_name: Mapped[str | None] = mapped_column(String, nullable=True)
    external_id: Mapped[str | None] = mapped_column(String, nullable=True)
    timezone: Mapped[str | None] = mapped_column(String, nullable=True)

    # Local display settings, never touched by the feed sync
    schedule_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    weight: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=_utcnow, onupdate=_utcnow)

    def __repr__(self) -> str:
        return f"<Channel(id={self.id}, cid={self.cid}, name={self.name})>"


class Show(Base):
    """Show catalog entry, matched to listings by TMS ID"""
    __tablename__ = "shows"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tms_id: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String, nullable=False)

    def __repr__(self) -> str:
        return f"<Show(id={self.id}, tms_id={self.tms_id}, title={self.title})>"


class ScheduleItem(Base):
    """A single scheduled airing on a channel"""
    __tablename__ = "schedule_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cid: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String, nullable=False)
    show_title: Mapped[str | None] = mapped_column(String, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    channel_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("channels.id"),
        nullable=False
    )
    start_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    end_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    minutes: Mapped[int] = mapped_column(Integer, nullable=False)

    program_external_id: Mapped[str | None] = mapped_column(String, nullable=True)
    episode_external_id: Mapped[str | None] = mapped_column(String, nullable=True)
    airing_type: Mapped[str | None] = mapped_column(String, nullable=True)
    program_id: Mapped[str | None] = mapped_column(String, nullable=True)
    show_image_uri: Mapped[str | None] = mapped_column(String, nullable=True)
    episode_image_uri: Mapped[str | None] = mapped_column(String, nullable=True)
    show_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("shows.id", ondelete="SET NULL"),
        nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index("idx_schedule_items_channel_start", "channel_id", "start_time"),
        Index("idx_schedule_items_start", "start_time"),
    )

    def __repr__(self) -> str:
        return f"<ScheduleItem(id={self.id}, cid={self.cid}, title={self.title})>"


class SyncStateEntry(Base):
    """Key/value record of the last run of each sync job"""
    __tablename__ = "sync_state"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    value: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


class QueueItem(Base):
    """Deferred work item (a batch of schedule item IDs to delete)"""
    __tablename__ = "queue_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    queue_name: Mapped[str] = mapped_column(String, nullable=False)
    payload: Mapped[list[int]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=_utcnow)
    claimed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    __table_args__ = (
        Index("idx_queue_items_name_created", "queue_name", "created_at"),
    )
