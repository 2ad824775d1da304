from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from stock_ledger.core.enums import DOCUMENT_KINDS, DOCUMENT_PREFIXES, RateBasis, SourceType, TransactionKind
from stock_ledger.core.errors import DocumentNotFoundError, DuplicateError, LedgerValidationError
from stock_ledger.core.settings import AppSettings
from stock_ledger.db.models.inventory import StockDocument
from stock_ledger.db.models.master_data import Product
from stock_ledger.repositories.inventory import StockDocumentRepository
from stock_ledger.repositories.sequence import SequenceRepository
from stock_ledger.schemas.inventory import StockDocumentCreate, StockEntryCreate
from stock_ledger.services.balances import Balance, BalanceKey
from stock_ledger.services.base import BaseService
from stock_ledger.services.ledger import LedgerEntry, TransactionLedger, business_time
from stock_ledger.services.masters import MasterDataReader
from stock_ledger.services.posting import PostingPlan, StockPostingService, Written, keys_of
from stock_ledger.services.units import round_money, round_weight, row_weight

logger = logging.getLogger(__name__)

CANCELLED = "cancelled"


@dataclass
class MovementOutcome:
    transaction_ids: List[int] = field(default_factory=list)
    balances: Dict[BalanceKey, Balance] = field(default_factory=dict)
    document: Optional[StockDocument] = None
    source_document: Optional[str] = None


def document_series(kind: TransactionKind) -> str:
    return f"document:{kind.value}"


class StockMovementService(BaseService):
    """
    Writers other than production: manual store-in and multi-line
    purchase/sale/store-in/return documents. Every write goes through
    StockPostingService, so each document is all-or-nothing.
    """

    def __init__(
        self,
        session: AsyncSession,
        settings: Optional[AppSettings] = None,
        *,
        posting: Optional[StockPostingService] = None,
    ) -> None:
        super().__init__(session, settings)
        self.documents = StockDocumentRepository(session)
        self.sequences = SequenceRepository(session)
        self.ledger = TransactionLedger(session, self.settings)
        self.masters = MasterDataReader(session)
        self.posting = posting or StockPostingService(session, self.settings)

    # PUBLIC_INTERFACE
    async def store_in(self, payload: StockEntryCreate) -> MovementOutcome:
        """
        Manual store-in of one product: a single ManualStoreIn entry and its
        balance delta. An explicit weight is kept as entered, otherwise it is
        derived from the product dimensions.
        """
        if payload.date is None:
            raise LedgerValidationError("date")
        if payload.store_id is None:
            raise LedgerValidationError("store_id")
        if payload.product_id is None:
            raise LedgerValidationError("product_id")

        async def prepare() -> PostingPlan:
            _, products = await self.masters.resolve([payload.store_id], [payload.product_id])
            product = products[payload.product_id]
            weight = round_weight(payload.weight_kg) if payload.weight_kg is not None else row_weight(payload.quantity_packets, product)
            entry = LedgerEntry(
                kind=TransactionKind.MANUAL_STORE_IN,
                store_id=payload.store_id,
                product_id=payload.product_id,
                lot_no=payload.lot_no or "",
                quantity_delta=payload.quantity_packets,
                weight_delta=weight,
                occurred_at=business_time(payload.date),
                source_type=SourceType.MANUAL.value,
                notes=payload.notes,
            )

            async def write() -> Written:
                return Written(entries=[entry])

            return PostingPlan(keys={entry.key}, write=write)

        outcome = await self.posting.post(prepare)
        return MovementOutcome(transaction_ids=outcome.transaction_ids, balances=outcome.balances)

    def _validate_document(self, payload: StockDocumentCreate) -> None:
        if payload.kind not in DOCUMENT_KINDS:
            raise LedgerValidationError("kind", f"{payload.kind.value} cannot be posted as a stock document")
        if payload.date is None:
            raise LedgerValidationError("date")
        if not payload.lines:
            raise LedgerValidationError("lines", "At least one line is required")
        for i, line in enumerate(payload.lines):
            if line.store_id is None:
                raise LedgerValidationError(f"lines[{i}].store_id")
            if line.product_id is None:
                raise LedgerValidationError(f"lines[{i}].product_id")

    def _build_entries(
        self, payload: StockDocumentCreate, products: Dict[UUID, Product]
    ) -> tuple[List[LedgerEntry], List[dict]]:
        kind = payload.kind
        sign = kind.direction
        occurred_at = business_time(payload.date)
        entries: List[LedgerEntry] = []
        snapshots: List[dict] = []
        for line in payload.lines:
            product = products[line.product_id]
            quantity = round_weight(line.quantity_packets)
            weight = round_weight(line.weight_kg) if line.weight_kg is not None else row_weight(quantity, product)
            rate_on: Optional[RateBasis] = None
            value = line.value
            if line.rate is not None:
                rate_on = line.rate_on or RateBasis.WEIGHT
                extent = quantity if rate_on == RateBasis.QUANTITY else weight
                if value is None:
                    value = round_money(line.rate * extent)
            entries.append(
                LedgerEntry(
                    kind=kind,
                    store_id=line.store_id,
                    product_id=line.product_id,
                    lot_no=line.lot_no or "",
                    quantity_delta=quantity * sign,
                    weight_delta=weight * sign,
                    occurred_at=occurred_at,
                    unit_rate=line.rate,
                    rate_basis=rate_on,
                    value=value,
                    source_type=SourceType.DOCUMENT.value,
                )
            )
            snapshots.append(line.model_copy(update={"quantity_packets": quantity, "weight_kg": weight, "rate_on": rate_on, "value": value}).model_dump(mode="json"))
        return entries, snapshots

    async def _allocate_number(self, kind: TransactionKind) -> str:
        prefix = DOCUMENT_PREFIXES[kind]
        width = self.settings.DOCUMENT_NUMBER_WIDTH
        while True:
            value = await self.sequences.next_value(document_series(kind))
            number = f"{prefix}{value:0{width}d}"
            if not await self.documents.exists(kind.value, number):
                return number

    # PUBLIC_INTERFACE
    async def post_document(self, payload: StockDocumentCreate) -> MovementOutcome:
        """Post a purchase receipt, sale issue, return or store-in document atomically."""
        self._validate_document(payload)
        kind = payload.kind

        async def prepare() -> PostingPlan:
            store_ids = [line.store_id for line in payload.lines]
            product_ids = [line.product_id for line in payload.lines]
            _, products = await self.masters.resolve(store_ids, product_ids)
            if payload.document_no and await self.documents.exists(kind.value, payload.document_no):
                raise DuplicateError("document_no", payload.document_no)
            entries, snapshots = self._build_entries(payload, products)

            async def write() -> Written:
                number = payload.document_no or await self._allocate_number(kind)
                document = StockDocument(
                    id=uuid4(),
                    kind=kind.value,
                    document_no=number,
                    date=payload.date,
                    remarks=payload.remarks,
                    status="posted",
                    lines=snapshots,
                )
                await self.documents.add(document)
                await self.documents.flush()
                stamped = [e.stamped(source_id=document.id, source_document=number) for e in entries]
                return Written(entries=stamped, result=document, source_document=number)

            return PostingPlan(keys=keys_of(entries), write=write, label=payload.document_no)

        outcome = await self.posting.post(prepare)
        logger.info("%s %s posted with %d lines", kind.value, outcome.source_document, len(outcome.transaction_ids))
        return MovementOutcome(
            transaction_ids=outcome.transaction_ids,
            balances=outcome.balances,
            document=outcome.result,
            source_document=outcome.source_document,
        )

    # PUBLIC_INTERFACE
    async def cancel_document(self, document_id: UUID) -> MovementOutcome:
        """Reverse a document's entries and mark it cancelled; cancelling twice changes nothing."""

        async def prepare() -> PostingPlan:
            document = await self.documents.get(document_id)
            if document is None:
                raise DocumentNotFoundError(document_id)
            reversals: List[LedgerEntry] = []
            if document.status != CANCELLED:
                reversals = await self.ledger.reverse_entries(
                    SourceType.DOCUMENT.value, document.id, notes=f"Cancellation of {document.document_no}"
                )

            async def write() -> Written:
                document.status = CANCELLED
                await self.documents.flush()
                return Written(entries=reversals, result=document, source_document=document.document_no)

            return PostingPlan(keys=keys_of(reversals), write=write, label=document.document_no)

        outcome = await self.posting.post(prepare)
        return MovementOutcome(
            transaction_ids=outcome.transaction_ids,
            balances=outcome.balances,
            document=outcome.result,
            source_document=outcome.source_document,
        )

    # PUBLIC_INTERFACE
    async def get_document(self, document_id: UUID) -> StockDocument:
        document = await self.documents.get(document_id)
        if document is None:
            raise DocumentNotFoundError(document_id)
        return document
