from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from stock_ledger.core.enums import RateBasis, SourceType, TransactionKind
from stock_ledger.core.errors import DuplicateError, LedgerValidationError, ProductionNotFoundError
from stock_ledger.core.settings import AppSettings
from stock_ledger.db.models.master_data import Product
from stock_ledger.db.models.production import ProductionRun
from stock_ledger.repositories.production import ProductionRunRepository
from stock_ledger.repositories.sequence import SequenceRepository
from stock_ledger.schemas.production import ProductionRunCreate, ProductionRunUpdate
from stock_ledger.services.balances import Balance, BalanceKey
from stock_ledger.services.base import BaseService
from stock_ledger.services.ledger import LedgerEntry, TransactionLedger, business_time
from stock_ledger.services.masters import MasterDataReader
from stock_ledger.services.posting import PostingPlan, StockPostingService, Written, keys_of
from stock_ledger.services.units import round_money, round_weight, row_weight

logger = logging.getLogger(__name__)

SOURCE = SourceType.PRODUCTION.value
CANCELLED = "cancelled"


@dataclass
class ProductionOutcome:
    run: ProductionRun
    transaction_ids: List[int] = field(default_factory=list)
    balances: Dict[BalanceKey, Balance] = field(default_factory=dict)

    @property
    def production_number(self) -> str:
        return self.run.production_number


@dataclass
class _BuiltRun:
    material_out: List[dict]
    items: List[dict]
    entries: List[LedgerEntry]


# PUBLIC_INTERFACE
def validate_run(payload: ProductionRunUpdate) -> None:
    """
    Fail fast on missing fields before anything is read or written.

    Raises LedgerValidationError naming the first missing field, e.g.
    `material_out[1].product_id`.
    """
    if payload.date is None:
        raise LedgerValidationError("date")
    if payload.output_store_id is None:
        raise LedgerValidationError("output_store_id")
    if not payload.material_out:
        raise LedgerValidationError("material_out", "At least one material out line is required")
    if not payload.items:
        raise LedgerValidationError("items", "At least one produced item line is required")
    for i, line in enumerate(payload.material_out):
        if line.store_id is None:
            raise LedgerValidationError(f"material_out[{i}].store_id")
        if line.product_id is None:
            raise LedgerValidationError(f"material_out[{i}].product_id")
    for i, item in enumerate(payload.items):
        if item.product_id is None:
            raise LedgerValidationError(f"items[{i}].product_id")


def build_run(payload: ProductionRunUpdate, products: Dict[UUID, Product]) -> _BuiltRun:
    """
    Turn validated lines into ledger entries and the line snapshots stored on
    the run. Weights not given are derived from the product dimensions.
    """
    occurred_at = business_time(payload.date)
    entries: List[LedgerEntry] = []
    material_out: List[dict] = []
    items: List[dict] = []

    for line in payload.material_out:
        product = products[line.product_id]
        quantity = round_weight(line.quantity_packets)
        weight = round_weight(line.weight_kg) if line.weight_kg is not None else row_weight(quantity, product)
        entries.append(
            LedgerEntry(
                kind=TransactionKind.PRODUCTION_CONSUME,
                store_id=line.store_id,
                product_id=line.product_id,
                lot_no=line.reel_no or "",
                quantity_delta=-quantity,
                weight_delta=-weight,
                occurred_at=occurred_at,
                source_type=SOURCE,
            )
        )
        snapshot = line.model_copy(
            update={
                "quantity_packets": quantity,
                "weight_kg": weight,
                "description": line.description or product.description,
                "brand": line.brand or product.brand,
                "length": line.length if line.length is not None else product.length,
                "width": line.width if line.width is not None else product.width,
                "grams": line.grams if line.grams is not None else product.grams,
            }
        )
        material_out.append(snapshot.model_dump(mode="json"))

    for item in payload.items:
        product = products[item.product_id]
        quantity = round_weight(item.quantity_packets)
        weight = round_weight(item.weight_kg) if item.weight_kg is not None else row_weight(quantity, product)
        rate_on: Optional[RateBasis] = None
        value: Optional[Decimal] = item.value
        if item.rate is not None:
            rate_on = item.rate_on or RateBasis.WEIGHT
            extent = quantity if rate_on == RateBasis.QUANTITY else weight
            if value is None:
                value = round_money(item.rate * extent)
        entries.append(
            LedgerEntry(
                kind=TransactionKind.PRODUCTION_PRODUCE,
                store_id=payload.output_store_id,
                product_id=item.product_id,
                lot_no=item.lot_no or "",
                quantity_delta=quantity,
                weight_delta=weight,
                occurred_at=occurred_at,
                unit_rate=item.rate,
                rate_basis=rate_on,
                value=value,
                source_type=SOURCE,
            )
        )
        items.append(item.model_copy(update={"quantity_packets": quantity, "weight_kg": weight, "rate_on": rate_on, "value": value}).model_dump(mode="json"))

    return _BuiltRun(material_out=material_out, items=items, entries=entries)


class ProductionService(BaseService):
    """
    Production Transformer: consumes material from one or more stores and
    receives the produced items into the output store, as one unit of work.

    Edits and deletes never touch posted ledger rows: the run's active entries
    are reversed and, for an edit, the new lines are posted in the same unit.
    """

    def __init__(
        self,
        session: AsyncSession,
        settings: Optional[AppSettings] = None,
        *,
        posting: Optional[StockPostingService] = None,
    ) -> None:
        super().__init__(session, settings)
        self.runs = ProductionRunRepository(session)
        self.sequences = SequenceRepository(session)
        self.ledger = TransactionLedger(session, self.settings)
        self.masters = MasterDataReader(session)
        self.posting = posting or StockPostingService(session, self.settings)

    async def _resolve(self, payload: ProductionRunUpdate) -> Dict[UUID, Product]:
        store_ids = [payload.output_store_id] + [line.store_id for line in payload.material_out]
        product_ids = [line.product_id for line in payload.material_out] + [item.product_id for item in payload.items]
        _, products = await self.masters.resolve(store_ids, product_ids)
        return products

    async def _allocate_number(self) -> str:
        prefix = self.settings.PRODUCTION_NUMBER_PREFIX
        width = self.settings.DOCUMENT_NUMBER_WIDTH
        while True:
            value = await self.sequences.next_value(SequenceRepository.PRODUCTION)
            number = f"{prefix}{value:0{width}d}"
            # Skip numbers already taken by manually numbered runs.
            if not await self.runs.number_exists(number):
                return number

    async def _load(self, production_id: UUID) -> ProductionRun:
        run = await self.runs.get(production_id)
        if run is None:
            raise ProductionNotFoundError(production_id)
        return run

    # PUBLIC_INTERFACE
    async def execute(self, payload: ProductionRunCreate) -> ProductionOutcome:
        """
        Post a new production run.

        Validation and reference checks happen before any write. The number is
        taken from the payload or allocated from the "production" series inside
        the same transaction, so a failed run does not consume a number.
        """
        validate_run(payload)

        async def prepare() -> PostingPlan:
            products = await self._resolve(payload)
            if payload.production_number and await self.runs.number_exists(payload.production_number):
                raise DuplicateError("production_number", payload.production_number)
            built = build_run(payload, products)

            async def write() -> Written:
                number = payload.production_number or await self._allocate_number()
                run = ProductionRun(
                    id=uuid4(),
                    production_number=number,
                    date=payload.date,
                    remarks=payload.remarks,
                    output_store_id=payload.output_store_id,
                    material_out=built.material_out,
                    items=built.items,
                    status="posted",
                )
                await self.runs.add(run)
                await self.runs.flush()
                entries = [e.stamped(source_id=run.id, source_document=number) for e in built.entries]
                return Written(entries=entries, result=run, source_document=number)

            return PostingPlan(keys=keys_of(built.entries), write=write, label=payload.production_number)

        outcome = await self.posting.post(prepare)
        logger.info("Production %s posted with %d entries", outcome.source_document, len(outcome.transaction_ids))
        return ProductionOutcome(run=outcome.result, transaction_ids=outcome.transaction_ids, balances=outcome.balances)

    # PUBLIC_INTERFACE
    async def update(self, production_id: UUID, payload: ProductionRunUpdate) -> ProductionOutcome:
        """Reverse the run's active entries and post the edited lines in one unit of work."""
        validate_run(payload)

        async def prepare() -> PostingPlan:
            run = await self._load(production_id)
            if run.status == CANCELLED:
                raise LedgerValidationError("status", f"Production {run.production_number} is cancelled")
            products = await self._resolve(payload)
            reversals = await self.ledger.reverse_entries(SOURCE, run.id, notes=f"Edit of {run.production_number}")
            built = build_run(payload, products)
            new_entries = [e.stamped(source_id=run.id, source_document=run.production_number) for e in built.entries]

            async def write() -> Written:
                run.date = payload.date
                run.remarks = payload.remarks
                run.output_store_id = payload.output_store_id
                run.material_out = built.material_out
                run.items = built.items
                await self.runs.flush()
                return Written(entries=reversals + new_entries, result=run, source_document=run.production_number)

            return PostingPlan(
                keys=keys_of(reversals) | keys_of(new_entries), write=write, label=run.production_number
            )

        outcome = await self.posting.post(prepare)
        return ProductionOutcome(run=outcome.result, transaction_ids=outcome.transaction_ids, balances=outcome.balances)

    # PUBLIC_INTERFACE
    async def delete(self, production_id: UUID) -> ProductionOutcome:
        """
        Reverse the run's stock effect and mark it cancelled. The run row and
        its ledger history are kept; deleting a cancelled run changes nothing.
        """

        async def prepare() -> PostingPlan:
            run = await self._load(production_id)
            reversals: List[LedgerEntry] = []
            if run.status != CANCELLED:
                reversals = await self.ledger.reverse_entries(
                    SOURCE, run.id, notes=f"Cancellation of {run.production_number}"
                )

            async def write() -> Written:
                run.status = CANCELLED
                await self.runs.flush()
                return Written(entries=reversals, result=run, source_document=run.production_number)

            return PostingPlan(keys=keys_of(reversals), write=write, label=run.production_number)

        outcome = await self.posting.post(prepare)
        return ProductionOutcome(run=outcome.result, transaction_ids=outcome.transaction_ids, balances=outcome.balances)

    # PUBLIC_INTERFACE
    async def get(self, production_id: UUID) -> ProductionRun:
        return await self._load(production_id)

    # PUBLIC_INTERFACE
    async def list_runs(
        self,
        *,
        search: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        include_cancelled: bool = False,
        limit: int = 100,
        offset: int = 0,
    ) -> Tuple[List[ProductionRun], int]:
        """Newest first; returns the page and the total matching count."""
        filters: Dict[str, Any] = dict(
            search=search, date_from=date_from, date_to=date_to, include_cancelled=include_cancelled
        )
        items = await self.runs.list_runs(limit=limit, offset=offset, **filters)
        total = await self.runs.count_runs(**filters)
        return items, total
