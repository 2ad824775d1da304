from __future__ import annotations

import datetime as dt
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from stock_ledger.core.deps import get_db_session
from stock_ledger.core.enums import CostMode, RateBasis
from stock_ledger.schemas.valuation import ValuationPage, ValuationTotals
from stock_ledger.services.valuation import ValuationService

# PUBLIC_INTERFACE
router = APIRouter(
    prefix="/reports",
    tags=["Reports"],
)


# PUBLIC_INTERFACE
@router.get(
    "/inventory-valuation",
    response_model=ValuationPage,
    summary="Inventory valuation",
    description=(
        "Current balances valued at the latest or weighted-average cost, per packet or per kg. "
        "`from`/`to` bound the purchase and production entries the cost is taken from. "
        "Totals cover the whole filtered set, not just the page."
    ),
)
async def inventory_valuation(
    cost: CostMode = Query(CostMode.LATEST, description="latest or wac"),
    basis: RateBasis = Query(RateBasis.QUANTITY, description="Quantity (per packet) or Weight (per kg)"),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1, description="Page size; server default when omitted"),
    date_from: Optional[dt.date] = Query(None, alias="from"),
    date_to: Optional[dt.date] = Query(None, alias="to"),
    store: Optional[UUID] = Query(None, description="Only this store"),
    product: Optional[str] = Query(None, description="Substring of item code or description"),
    session: AsyncSession = Depends(get_db_session),
) -> ValuationPage:
    return await ValuationService(session).valuate(
        cost=cost,
        basis=basis,
        page=page,
        limit=limit,
        date_from=date_from,
        date_to=date_to,
        store_id=store,
        product=product,
    )


# PUBLIC_INTERFACE
@router.get(
    "/inventory-valuation/totals",
    response_model=ValuationTotals,
    summary="Inventory valuation totals",
    description="Totals over the same filter as the valuation report, without rows.",
)
async def inventory_valuation_totals(
    cost: CostMode = Query(CostMode.LATEST),
    basis: RateBasis = Query(RateBasis.QUANTITY),
    date_from: Optional[dt.date] = Query(None, alias="from"),
    date_to: Optional[dt.date] = Query(None, alias="to"),
    store: Optional[UUID] = Query(None),
    product: Optional[str] = Query(None),
    session: AsyncSession = Depends(get_db_session),
) -> ValuationTotals:
    return await ValuationService(session).aggregate_totals(
        cost=cost,
        basis=basis,
        date_from=date_from,
        date_to=date_to,
        store_id=store,
        product=product,
    )
