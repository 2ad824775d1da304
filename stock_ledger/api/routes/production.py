from __future__ import annotations

import datetime as dt
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from stock_ledger.core.deps import get_db_session
from stock_ledger.schemas.production import (
    ProductionList,
    ProductionResult,
    ProductionRunCreate,
    ProductionRunRead,
    ProductionRunUpdate,
)
from stock_ledger.services.production import ProductionOutcome, ProductionService
from .stock import balance_reads

router = APIRouter(prefix="/production", tags=["Production"])


def _result(outcome: ProductionOutcome) -> ProductionResult:
    return ProductionResult(
        production_number=outcome.production_number,
        production=ProductionRunRead.model_validate(outcome.run),
        transaction_ids=outcome.transaction_ids,
        resulting_balances=balance_reads(outcome.balances),
    )


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=ProductionList,
    summary="List production runs",
    description="Production runs newest first, filtered by number/remarks text and date range.",
)
async def list_production(
    search: Optional[str] = Query(None, description="Substring of production number or remarks"),
    date_from: Optional[dt.date] = Query(None, alias="from"),
    date_to: Optional[dt.date] = Query(None, alias="to"),
    include_cancelled: bool = Query(False),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_db_session),
) -> ProductionList:
    items, total = await ProductionService(session).list_runs(
        search=search,
        date_from=date_from,
        date_to=date_to,
        include_cancelled=include_cancelled,
        limit=limit,
        offset=offset,
    )
    return ProductionList(
        items=[ProductionRunRead.model_validate(r) for r in items],
        total=total,
        limit=limit,
        offset=offset,
    )


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=ProductionResult,
    status_code=status.HTTP_201_CREATED,
    summary="Execute a production run",
    description=(
        "Consume material from its stores and receive the produced items into the output store "
        "in one atomic unit of work."
    ),
)
async def create_production(
    payload: ProductionRunCreate,
    session: AsyncSession = Depends(get_db_session),
) -> ProductionResult:
    outcome = await ProductionService(session).execute(payload)
    return _result(outcome)


# PUBLIC_INTERFACE
@router.get(
    "/{production_id}",
    response_model=ProductionRunRead,
    summary="Get a production run",
)
async def get_production(
    production_id: UUID = Path(...),
    session: AsyncSession = Depends(get_db_session),
) -> ProductionRunRead:
    run = await ProductionService(session).get(production_id)
    return ProductionRunRead.model_validate(run)


# PUBLIC_INTERFACE
@router.put(
    "/{production_id}",
    response_model=ProductionResult,
    summary="Edit a production run",
    description="Reverse the run's posted entries and post the edited lines, atomically.",
)
async def update_production(
    payload: ProductionRunUpdate,
    production_id: UUID = Path(...),
    session: AsyncSession = Depends(get_db_session),
) -> ProductionResult:
    outcome = await ProductionService(session).update(production_id, payload)
    return _result(outcome)


# PUBLIC_INTERFACE
@router.delete(
    "/{production_id}",
    response_model=ProductionResult,
    summary="Delete a production run",
    description="Reverse the run's stock effect and mark it cancelled. Its ledger history is kept.",
)
async def delete_production(
    production_id: UUID = Path(...),
    session: AsyncSession = Depends(get_db_session),
) -> ProductionResult:
    outcome = await ProductionService(session).delete(production_id)
    return _result(outcome)
