"""Lookup of locally known shows by TMS ID."""
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tv_schedule.models import Show


class ShowCatalog(Protocol):
    async def get_show_id_by_tms_id(self, db: AsyncSession, tms_id: str) -> int | None: ...


class SqlShowCatalog:
    """ShowCatalog backed by the shows table."""

    async def get_show_id_by_tms_id(self, db: AsyncSession, tms_id: str) -> int | None:
        result = await db.execute(select(Show.id).where(Show.tms_id == tms_id).limit(1))
        return result.scalar_one_or_none()
