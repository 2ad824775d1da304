from __future__ import annotations

import datetime as dt
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from stock_ledger.db.models.production import ProductionRun
from .base import BaseRepository


class ProductionRunRepository(BaseRepository):
    """Repository for production run documents."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)

    def _filtered(
        self,
        stmt,
        *,
        search: Optional[str],
        date_from: Optional[dt.date],
        date_to: Optional[dt.date],
        include_cancelled: bool,
    ):
        if not include_cancelled:
            stmt = stmt.where(ProductionRun.status != "cancelled")
        if search:
            like = f"%{search}%"
            stmt = stmt.where(
                or_(ProductionRun.production_number.ilike(like), ProductionRun.remarks.ilike(like))
            )
        if date_from:
            stmt = stmt.where(ProductionRun.date >= date_from)
        if date_to:
            stmt = stmt.where(ProductionRun.date <= date_to)
        return stmt

    async def list_runs(
        self,
        *,
        search: Optional[str] = None,
        date_from: Optional[dt.date] = None,
        date_to: Optional[dt.date] = None,
        include_cancelled: bool = False,
        limit: int = 100,
        offset: int = 0,
    ) -> List[ProductionRun]:
        stmt = self._filtered(
            select(ProductionRun),
            search=search,
            date_from=date_from,
            date_to=date_to,
            include_cancelled=include_cancelled,
        )
        stmt = stmt.order_by(ProductionRun.date.desc(), ProductionRun.created_at.desc()).offset(offset).limit(limit)
        res = await self.scalars(stmt)
        return list(res)

    async def count_runs(
        self,
        *,
        search: Optional[str] = None,
        date_from: Optional[dt.date] = None,
        date_to: Optional[dt.date] = None,
        include_cancelled: bool = False,
    ) -> int:
        stmt = self._filtered(
            select(func.count(ProductionRun.id)),
            search=search,
            date_from=date_from,
            date_to=date_to,
            include_cancelled=include_cancelled,
        )
        return int((await self.execute(stmt)).scalar_one())

    async def get(self, production_id: UUID) -> Optional[ProductionRun]:
        stmt = select(ProductionRun).where(ProductionRun.id == production_id).execution_options(populate_existing=True)
        return await self.scalar_one_or_none(stmt)

    async def number_exists(self, production_number: str) -> bool:
        stmt = select(ProductionRun.id).where(ProductionRun.production_number == production_number)
        return (await self.scalar_one_or_none(stmt)) is not None
