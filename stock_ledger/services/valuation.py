"""
Inventory valuation.

The cost functions at the top are pure and work on Decimal without rounding;
ValuationService loads balances and cost-bearing ledger entries, applies them,
and rounds to 2 places only when building the response rows.

Cost-bearing entries are purchase receipts and production output carrying a
rate, or failing that a value read as value / extent, excluding reversals
and entries that have been reversed. Unit cost is per product across stores:

    latest   rate of the most recent cost-bearing entry in the window
    wac      sum(rate_i x extent_i) / sum(extent_i)

with rates converted to the requested basis through the product's unit weight
(or, when that cannot be derived, the entry's own weight per packet).
Products without cost-bearing entries fall back to `cost_rate_qty`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from stock_ledger.core.enums import CostMode, RateBasis
from stock_ledger.core.errors import LedgerValidationError
from stock_ledger.core.settings import AppSettings
from stock_ledger.db.models.inventory import StockBalance, StockTransaction
from stock_ledger.db.models.master_data import Product, Store
from stock_ledger.repositories.inventory import StockBalanceRepository, StockTransactionRepository
from stock_ledger.repositories.master_data import ProductRepository
from stock_ledger.schemas.valuation import ValuationPage, ValuationRow, ValuationTotals
from stock_ledger.services.base import BaseService
from stock_ledger.services.ledger import business_time
from stock_ledger.services.units import round_money, to_decimal, unit_weight

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass(frozen=True)
class CostEntry:
    """The cost-relevant part of a ledger entry."""

    quantity: Decimal
    weight: Decimal
    unit_rate: Optional[Decimal]
    rate_basis: RateBasis
    value: Optional[Decimal] = None

    @classmethod
    def from_transaction(cls, row: StockTransaction) -> "CostEntry":
        return cls(
            quantity=abs(to_decimal(row.quantity_delta)),
            weight=abs(to_decimal(row.weight_delta)),
            unit_rate=to_decimal(row.unit_rate),
            rate_basis=RateBasis(row.rate_basis or RateBasis.WEIGHT.value),
            value=to_decimal(row.value),
        )

    def extent(self, basis: RateBasis) -> Decimal:
        return self.quantity if basis == RateBasis.QUANTITY else self.weight


def weight_per_packet(unit_wt: Decimal, quantity: Decimal, weight: Decimal) -> Optional[Decimal]:
    """Unit weight when derivable, else the observed weight / quantity ratio."""
    if unit_wt > 0:
        return unit_wt
    if quantity > 0 and weight > 0:
        return weight / quantity
    return None


def convert_rate(
    rate: Decimal, from_basis: RateBasis, to_basis: RateBasis, per_packet: Optional[Decimal]
) -> Optional[Decimal]:
    """Convert a per-kg rate to per-packet or back; None when no weight per packet is known."""
    if from_basis == to_basis:
        return rate
    if per_packet is None or per_packet <= 0:
        return None
    if from_basis == RateBasis.QUANTITY:
        return rate / per_packet
    return rate * per_packet


def _rate_in(entry: CostEntry, basis: RateBasis, unit_wt: Decimal) -> Optional[Decimal]:
    if entry.unit_rate is None:
        # value-only entry: value per unit of the requested extent
        extent = entry.extent(basis)
        if entry.value is None or extent <= 0:
            return None
        return entry.value / extent
    per_packet = weight_per_packet(unit_wt, entry.quantity, entry.weight)
    return convert_rate(entry.unit_rate, entry.rate_basis, basis, per_packet)


# PUBLIC_INTERFACE
def latest_unit_cost(entries: Sequence[CostEntry], basis: RateBasis, unit_wt: Decimal = ZERO) -> Optional[Decimal]:
    """Rate of the last convertible entry; `entries` are in ledger order."""
    for entry in reversed(entries):
        rate = _rate_in(entry, basis, unit_wt)
        if rate is not None:
            return rate
    return None


# PUBLIC_INTERFACE
def weighted_average_cost(entries: Iterable[CostEntry], basis: RateBasis, unit_wt: Decimal = ZERO) -> Optional[Decimal]:
    """sum(rate x extent) / sum(extent) over convertible entries; None when the extent sums to 0."""
    total_value = ZERO
    total_extent = ZERO
    for entry in entries:
        rate = _rate_in(entry, basis, unit_wt)
        if rate is None:
            continue
        extent = entry.extent(basis)
        total_value += rate * extent
        total_extent += extent
    if total_extent == 0:
        return None
    return total_value / total_extent


# PUBLIC_INTERFACE
def fallback_unit_cost(product: Product, basis: RateBasis, quantity: Decimal, weight: Decimal) -> Optional[Decimal]:
    """
    Per-packet master cost of the product, converted to per-kg with the row's
    own weight per packet, or the unit weight when the row has none.
    """
    cost = to_decimal(product.cost_rate_qty)
    if cost is None:
        return None
    if basis == RateBasis.QUANTITY:
        return cost
    per_packet: Optional[Decimal] = None
    if quantity > 0 and weight > 0:
        per_packet = weight / quantity
    else:
        unit_wt = unit_weight(product)
        if unit_wt > 0:
            per_packet = unit_wt
    return convert_rate(cost, RateBasis.QUANTITY, RateBasis.WEIGHT, per_packet)


@dataclass
class ValuedRow:
    balance: StockBalance
    product: Product
    store: Store
    unit_cost: Optional[Decimal]
    total_value: Decimal
    cost_source: str


class ValuationService(BaseService):
    """Valuation Engine: values current balances with latest or weighted-average cost."""

    def __init__(self, session: AsyncSession, settings: Optional[AppSettings] = None) -> None:
        super().__init__(session, settings)
        self.balances = StockBalanceRepository(session)
        self.transactions = StockTransactionRepository(session)
        self.products = ProductRepository(session)

    async def _filters(
        self, store_id: Optional[UUID], product: Optional[str]
    ) -> Tuple[Optional[List[UUID]], Optional[List[UUID]]]:
        store_ids = [store_id] if store_id else None
        product_ids = await self.products.search_ids(product) if product else None
        return store_ids, product_ids

    async def _unit_costs(
        self,
        products: Dict[UUID, Product],
        cost: CostMode,
        basis: RateBasis,
        date_from: Optional[date],
        date_to: Optional[date],
    ) -> Dict[UUID, Decimal]:
        rows = await self.transactions.list_cost_bearing(
            list(products),
            date_from=business_time(date_from) if date_from else None,
            date_to=business_time(date_to + timedelta(days=1)) if date_to else None,
        )
        by_product: Dict[UUID, List[CostEntry]] = {}
        for row in rows:
            by_product.setdefault(row.product_id, []).append(CostEntry.from_transaction(row))

        costs: Dict[UUID, Decimal] = {}
        for product_id, entries in by_product.items():
            unit_wt = unit_weight(products[product_id])
            if cost == CostMode.LATEST:
                value = latest_unit_cost(entries, basis, unit_wt)
            else:
                value = weighted_average_cost(entries, basis, unit_wt)
            if value is not None:
                costs[product_id] = value
        return costs

    async def _value(
        self,
        rows: Sequence[Tuple[StockBalance, Product, Store]],
        cost: CostMode,
        basis: RateBasis,
        date_from: Optional[date],
        date_to: Optional[date],
    ) -> List[ValuedRow]:
        products = {product.id: product for _, product, _ in rows}
        costs = await self._unit_costs(products, cost, basis, date_from, date_to)
        valued: List[ValuedRow] = []
        for balance, product, store in rows:
            quantity = to_decimal(balance.quantity_packets)
            weight = to_decimal(balance.weight_kg)
            unit_cost = costs.get(product.id)
            source = cost.value
            if unit_cost is None:
                unit_cost = fallback_unit_cost(product, basis, quantity, weight)
                source = "fallback" if unit_cost is not None else "none"
            extent = quantity if basis == RateBasis.QUANTITY else weight
            total = unit_cost * extent if unit_cost is not None else ZERO
            valued.append(ValuedRow(balance, product, store, unit_cost, total, source))
        return valued

    def _page_bounds(self, page: int, limit: Optional[int]) -> Tuple[int, int]:
        if limit is None:
            limit = self.settings.VALUATION_DEFAULT_PAGE_SIZE
        if page < 1:
            raise LedgerValidationError("page", "page must be 1 or greater")
        if limit < 1 or limit > self.settings.VALUATION_MAX_PAGE_SIZE:
            raise LedgerValidationError(
                "limit", f"limit must be between 1 and {self.settings.VALUATION_MAX_PAGE_SIZE}"
            )
        return limit, (page - 1) * limit

    # PUBLIC_INTERFACE
    async def valuate(
        self,
        *,
        cost: CostMode = CostMode.LATEST,
        basis: RateBasis = RateBasis.QUANTITY,
        page: int = 1,
        limit: Optional[int] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        store_id: Optional[UUID] = None,
        product: Optional[str] = None,
    ) -> ValuationPage:
        """
        One page of valued balance rows plus totals over the whole filtered set.

        `date_from`/`date_to` (inclusive) bound the cost-bearing entries used
        for unit cost; balances are always current.
        """
        limit, offset = self._page_bounds(page, limit)
        store_ids, product_ids = await self._filters(store_id, product)
        rows = await self.balances.list_for_valuation(
            store_ids=store_ids, product_ids=product_ids, limit=limit, offset=offset
        )
        valued = await self._value(rows, cost, basis, date_from, date_to)
        logger.debug("Valuation cost=%s basis=%s page=%d rows=%d", cost.value, basis.value, page, len(valued))
        totals = await self.aggregate_totals(
            cost=cost, basis=basis, date_from=date_from, date_to=date_to, store_id=store_id, product=product
        )
        return ValuationPage(
            cost=cost,
            basis=basis,
            page=page,
            limit=limit,
            rows=[self._present(v) for v in valued],
            totals=totals,
        )

    # PUBLIC_INTERFACE
    async def aggregate_totals(
        self,
        *,
        cost: CostMode = CostMode.LATEST,
        basis: RateBasis = RateBasis.QUANTITY,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        store_id: Optional[UUID] = None,
        product: Optional[str] = None,
    ) -> ValuationTotals:
        """Totals over every row matching the filter, summed before rounding."""
        store_ids, product_ids = await self._filters(store_id, product)
        rows = await self.balances.list_for_valuation(
            store_ids=store_ids, product_ids=product_ids, limit=None, offset=0
        )
        valued = await self._value(rows, cost, basis, date_from, date_to)
        quantity = sum((to_decimal(v.balance.quantity_packets) for v in valued), ZERO)
        weight = sum((to_decimal(v.balance.weight_kg) for v in valued), ZERO)
        value = sum((v.total_value for v in valued), ZERO)
        return ValuationTotals(
            rows=len(valued),
            quantity_packets=float(round_money(quantity)),
            weight_kg=float(round_money(weight)),
            total_value=float(round_money(value)),
        )

    @staticmethod
    def _present(row: ValuedRow) -> ValuationRow:
        return ValuationRow(
            store_id=row.store.id,
            store_name=row.store.name,
            product_id=row.product.id,
            item=row.product.item,
            description=row.product.description,
            type=row.product.type,
            lot_no=row.balance.lot_no or None,
            quantity_packets=float(round_money(row.balance.quantity_packets)),
            weight_kg=float(round_money(row.balance.weight_kg)),
            unit_cost=float(round_money(row.unit_cost)) if row.unit_cost is not None else None,
            total_value=float(round_money(row.total_value)),
            cost_source=row.cost_source,
        )
