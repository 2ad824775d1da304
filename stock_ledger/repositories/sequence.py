from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stock_ledger.db.models.sequence import SequenceCounter
from .base import BaseRepository


class SequenceRepository(BaseRepository):
    """
    Race-free number series backed by one counter row per series.

    next_value increments with a single INSERT ... ON CONFLICT DO UPDATE, so two
    concurrent callers never read the same value. The increment belongs to the
    caller's transaction: a rollback gives the number back.
    """

    PRODUCTION = "production"

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)

    async def next_value(self, series: str) -> int:
        insert = self.dialect_insert(SequenceCounter)
        stmt = insert.values(name=series, current_value=1).on_conflict_do_update(
            index_elements=[SequenceCounter.name],
            set_={"current_value": SequenceCounter.current_value + 1},
        )
        await self.execute(stmt)
        value = await self.scalar_one_or_none(
            select(SequenceCounter.current_value).where(SequenceCounter.name == series)
        )
        return int(value)

    async def current_value(self, series: str) -> int:
        value = await self.scalar_one_or_none(
            select(SequenceCounter.current_value).where(SequenceCounter.name == series)
        )
        return int(value or 0)
