"""
Content store access shared by the channel and schedule item managers

Local records are matched to TVSS items by their CID. All reads and writes go
through an AsyncSession supplied by the caller so each unit of work controls
its own transaction.
"""
import logging
from collections.abc import Iterable, Mapping
from typing import Any, ClassVar, Generic, TypeVar

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tv_schedule.exceptions import ConfigurationError, StorageError
from tv_schedule.models import Base


logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=Base)


class ContentManager(Generic[ModelT]):
    """Base class for managers of content synced from the TV Schedules Service."""

    CID_FIELD_NAME: ClassVar[str] = "cid"

    model: type[ModelT]

    def _column(self, name: str):
        """Get a mapped column of the managed model by name."""
        columns = self.model.__table__.columns
        if name not in columns:
            raise ConfigurationError(
                f"Unknown property '{name}' for {self.model.__name__} content"
            )
        return getattr(self.model, name)

    async def get_content_by_cid(self, db: AsyncSession, cid: str) -> ModelT | None:
        """
        Attempts to get a piece of content by a TVSS CID.

        Returns:
            The first matching record or None if none found
        """
        items = await self.get_content_by_properties(db, {self.CID_FIELD_NAME: cid})
        if not items:
            return None

        item = items[0]
        if len(items) > 1:
            logger.error(
                "Multiple %s records found for TVSS CID %s (IDs: %s). Using %s.",
                self.model.__name__,
                cid,
                ", ".join(str(entry.id) for entry in items),
                item.id,
            )
        return item

    async def get_content_by_properties(
        self,
        db: AsyncSession,
        properties: Mapping[str, Any],
        sort_by: str | None = None,
        sort_dir: str = "ASC",
        range_start: int | None = None,
        range_length: int | None = None,
    ) -> list[ModelT]:
        """
        Gets content using provided properties.

        Args:
            db: Database session
            properties: Column name -> required value
            sort_by: Column to sort by
            sort_dir: "ASC" or "DESC"
            range_start: Offset of the first record
            range_length: Maximum number of records

        Returns:
            Content matching the properties
        """
        stmt = select(self.model)
        for name, value in properties.items():
            stmt = stmt.where(self._column(name) == value)

        if sort_by:
            column = self._column(sort_by)
            stmt = stmt.order_by(column.desc() if sort_dir.upper() == "DESC" else column.asc())
        stmt = stmt.order_by(self.model.id)

        if range_start is not None:
            stmt = stmt.offset(range_start)
        if range_length is not None:
            stmt = stmt.limit(range_length)

        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def save(self, db: AsyncSession, entity: ModelT) -> ModelT:
        """Persist a new or modified record and flush to obtain its ID."""
        try:
            db.add(entity)
            await db.flush()
        except SQLAlchemyError as exc:
            cid = getattr(entity, self.CID_FIELD_NAME, None)
            raise StorageError(f"Unable to save {self.model.__name__} {cid}: {exc}", cid=cid) from exc
        return entity

    async def delete(self, db: AsyncSession, entities: Iterable[ModelT]) -> int:
        """Delete records, returning the number removed."""
        ids = [entity.id for entity in entities]
        if not ids:
            return 0
        try:
            await db.execute(delete(self.model).where(self.model.id.in_(ids)))
        except SQLAlchemyError as exc:
            raise StorageError(f"Unable to delete {self.model.__name__} records {ids}: {exc}") from exc
        return len(ids)
