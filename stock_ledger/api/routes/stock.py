from __future__ import annotations

import base64
import datetime as dt
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from stock_ledger.core.deps import get_db_session
from stock_ledger.core.errors import LedgerValidationError, UnknownReferenceError
from stock_ledger.repositories.inventory import StockTransactionRepository
from stock_ledger.repositories.master_data import StoreRepository
from stock_ledger.schemas.inventory import (
    BalanceRead,
    PostingResult,
    ReconciliationReport,
    StockDocumentCreate,
    StockDocumentRead,
    StockDocumentResult,
    StockEntryCreate,
    StockTransactionPage,
    StockTransactionRead,
    UnitWeightPreview,
)
from stock_ledger.services.balances import Balance, BalanceKey, StockBalanceStore, balance_key
from stock_ledger.services.ledger import business_time
from stock_ledger.services.masters import MasterDataReader
from stock_ledger.services.movements import MovementOutcome, StockMovementService
from stock_ledger.services.reconciliation import ReconciliationService
from stock_ledger.services.units import row_weight, unit_weight

router = APIRouter(prefix="/stock", tags=["Stock"])


def balance_reads(balances: Dict[BalanceKey, Balance]) -> List[BalanceRead]:
    """Resulting balances of a posting, in key order."""
    return [
        BalanceRead(
            store_id=key[0],
            product_id=key[1],
            lot_no=key[2],
            quantity_packets=float(balance.quantity),
            weight_kg=float(balance.weight),
        )
        for key, balance in balances.items()
    ]


def _document_result(outcome: MovementOutcome) -> StockDocumentResult:
    return StockDocumentResult(
        source_document=outcome.source_document,
        transaction_ids=outcome.transaction_ids,
        balances=balance_reads(outcome.balances),
        document=StockDocumentRead.model_validate(outcome.document),
    )


def encode_cursor(occurred_at: datetime, transaction_id: int) -> str:
    raw = f"{occurred_at.isoformat()}|{transaction_id}".encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii")


def decode_cursor(cursor: str) -> Tuple[datetime, int]:
    try:
        raw = base64.urlsafe_b64decode(cursor.encode("ascii")).decode("utf-8")
        at, _, ident = raw.rpartition("|")
        return datetime.fromisoformat(at), int(ident)
    except (ValueError, UnicodeError):
        raise LedgerValidationError("cursor", "cursor is not valid")


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=PostingResult,
    status_code=status.HTTP_201_CREATED,
    summary="Manual store-in",
    description="Receive one product into a store. Weight is derived from the product dimensions unless given.",
)
async def store_in(
    payload: StockEntryCreate,
    session: AsyncSession = Depends(get_db_session),
) -> PostingResult:
    outcome = await StockMovementService(session).store_in(payload)
    return PostingResult(transaction_ids=outcome.transaction_ids, balances=balance_reads(outcome.balances))


# PUBLIC_INTERFACE
@router.get(
    "/store-stock",
    response_model=List[BalanceRead],
    summary="Store stock preview",
    description="Current balances of one store, for previews. Takes no locks, so values may be momentarily stale.",
)
async def store_stock(
    store: UUID = Query(..., description="Store ID"),
    product_id: Optional[UUID] = Query(None, description="Only this product"),
    limit: int = Query(500, ge=1, le=5000),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_db_session),
) -> List[BalanceRead]:
    if await StoreRepository(session).get(store) is None:
        raise UnknownReferenceError("store", store)
    rows = await StockBalanceStore(session).list_for_store(store, product_id=product_id, limit=limit, offset=offset)
    return [BalanceRead.model_validate(r) for r in rows]


# PUBLIC_INTERFACE
@router.get(
    "/balance",
    response_model=BalanceRead,
    summary="Balance of one key",
    description="Quantity and weight for a (store, product, lot). A key never written reads as zero.",
)
async def get_balance(
    store: UUID = Query(..., description="Store ID"),
    product: UUID = Query(..., description="Product ID"),
    lot: Optional[str] = Query(None, description="Lot / reel number"),
    session: AsyncSession = Depends(get_db_session),
) -> BalanceRead:
    balance = await StockBalanceStore(session).get_balance(store, product, lot)
    key = balance_key(store, product, lot)
    return balance_reads({key: balance})[0]


# PUBLIC_INTERFACE
@router.get(
    "/unit-weight",
    response_model=UnitWeightPreview,
    summary="Unit weight preview",
    description="Weight per packet of a product and the weight of a given packet count.",
)
async def unit_weight_preview(
    product_id: UUID = Query(..., description="Product ID"),
    quantity: Decimal = Query(Decimal("1"), ge=0, description="Packets"),
    session: AsyncSession = Depends(get_db_session),
) -> UnitWeightPreview:
    product = await MasterDataReader(session).product(product_id)
    return UnitWeightPreview(
        product_id=product.id,
        type=product.type,
        unit_weight=float(unit_weight(product)),
        quantity_packets=float(quantity),
        row_weight=float(row_weight(quantity, product)),
    )


# PUBLIC_INTERFACE
@router.get(
    "/transactions",
    response_model=StockTransactionPage,
    summary="Browse the stock ledger",
    description="Ledger entries in (occurred_at, id) order with store/product/date filters and a continuation cursor.",
)
async def list_transactions(
    store: Optional[UUID] = Query(None, description="Store ID"),
    product: Optional[UUID] = Query(None, description="Product ID"),
    date_from: Optional[dt.date] = Query(None, alias="from", description="First business date (inclusive)"),
    date_to: Optional[dt.date] = Query(None, alias="to", description="Last business date (inclusive)"),
    cursor: Optional[str] = Query(None, description="next_cursor of the previous page"),
    limit: int = Query(100, ge=1, le=1000),
    session: AsyncSession = Depends(get_db_session),
) -> StockTransactionPage:
    rows = await StockTransactionRepository(session).list_page(
        store_id=store,
        product_id=product,
        date_from=business_time(date_from) if date_from else None,
        date_to=business_time(date_to + dt.timedelta(days=1)) if date_to else None,
        after=decode_cursor(cursor) if cursor else None,
        limit=limit + 1,
    )
    next_cursor = None
    if len(rows) > limit:
        rows = rows[:limit]
        last = rows[-1]
        next_cursor = encode_cursor(last.occurred_at, last.id)
    return StockTransactionPage(
        items=[StockTransactionRead.model_validate(r) for r in rows],
        next_cursor=next_cursor,
    )


# PUBLIC_INTERFACE
@router.post(
    "/documents",
    response_model=StockDocumentResult,
    status_code=status.HTTP_201_CREATED,
    summary="Post a stock document",
    description=(
        "Post a purchase receipt, store-in, sale issue, purchase return or sale return. "
        "All lines are applied atomically; the number is allocated from the kind's series when omitted."
    ),
)
async def post_document(
    payload: StockDocumentCreate,
    session: AsyncSession = Depends(get_db_session),
) -> StockDocumentResult:
    outcome = await StockMovementService(session).post_document(payload)
    return _document_result(outcome)


# PUBLIC_INTERFACE
@router.get(
    "/documents/{document_id}",
    response_model=StockDocumentRead,
    summary="Get a stock document",
)
async def get_document(
    document_id: UUID = Path(...),
    session: AsyncSession = Depends(get_db_session),
) -> StockDocumentRead:
    document = await StockMovementService(session).get_document(document_id)
    return StockDocumentRead.model_validate(document)


# PUBLIC_INTERFACE
@router.delete(
    "/documents/{document_id}",
    response_model=StockDocumentResult,
    summary="Cancel a stock document",
    description="Reverse the document's ledger entries and mark it cancelled.",
)
async def cancel_document(
    document_id: UUID = Path(...),
    session: AsyncSession = Depends(get_db_session),
) -> StockDocumentResult:
    outcome = await StockMovementService(session).cancel_document(document_id)
    return _document_result(outcome)


# PUBLIC_INTERFACE
@router.get(
    "/reconciliation",
    response_model=ReconciliationReport,
    summary="Reconcile balances with the ledger",
    description="Compare every balance with the sum of its ledger deltas. Mismatches are reported, not corrected.",
)
async def reconciliation(session: AsyncSession = Depends(get_db_session)) -> ReconciliationReport:
    return await ReconciliationService(session).audit()
