from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from stock_ledger.core.errors import InsufficientStockError
from stock_ledger.core.settings import AppSettings
from stock_ledger.db.models.inventory import StockBalance
from stock_ledger.repositories.inventory import StockBalanceRepository
from stock_ledger.services.base import BaseService
from stock_ledger.services.units import round_weight

logger = logging.getLogger(__name__)

BalanceKey = Tuple[UUID, UUID, str]

ZERO = Decimal("0")


def balance_key(store_id: UUID, product_id: UUID, lot_no: Optional[str] = None) -> BalanceKey:
    """Normalized key; an absent lot is stored as ''."""
    return (store_id, product_id, lot_no or "")


@dataclass(frozen=True)
class Balance:
    """Quantity and weight of one key. A key never written reads as zero."""

    quantity: Decimal = ZERO
    weight: Decimal = ZERO

    @property
    def is_negative(self) -> bool:
        return self.quantity < 0 or self.weight < 0


@dataclass(frozen=True)
class BalanceDelta:
    store_id: UUID
    product_id: UUID
    lot_no: str
    quantity: Decimal
    weight: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "quantity", round_weight(self.quantity))
        object.__setattr__(self, "weight", round_weight(self.weight))

    @property
    def key(self) -> BalanceKey:
        return balance_key(self.store_id, self.product_id, self.lot_no)


class StockBalanceStore(BaseService):
    """
    Current quantity and weight per (store, product, lot).

    apply_delta/apply_deltas run inside the caller's transaction and never
    commit. Each increment is a single atomic upsert, so concurrent writers to
    one key cannot lose updates; StockPostingService additionally serializes
    writers per key and owns commit/rollback, which makes a batch all-or-nothing.

    Negative results are allowed and logged unless REJECT_NEGATIVE_BALANCE is
    set, in which case InsufficientStockError aborts the batch.
    """

    def __init__(self, session: AsyncSession, settings: Optional[AppSettings] = None) -> None:
        super().__init__(session, settings)
        self.repo = StockBalanceRepository(session)

    # PUBLIC_INTERFACE
    async def get_balance(self, store_id: UUID, product_id: UUID, lot_no: Optional[str] = None) -> Balance:
        """Current balance of one key; a missing key is a zero balance. Takes no locks."""
        amounts = await self.repo.get_amounts(*balance_key(store_id, product_id, lot_no))
        if amounts is None:
            return Balance()
        return Balance(quantity=amounts[0], weight=amounts[1])

    # PUBLIC_INTERFACE
    async def list_for_store(
        self, store_id: UUID, *, product_id: Optional[UUID] = None, limit: int = 500, offset: int = 0
    ) -> List[StockBalance]:
        """Balances of a store for the stock preview. Takes no locks; may be stale."""
        return await self.repo.list_for_store(store_id, product_id=product_id, limit=limit, offset=offset)

    # PUBLIC_INTERFACE
    async def apply_delta(
        self,
        store_id: UUID,
        product_id: UUID,
        lot_no: Optional[str],
        quantity_delta: Decimal,
        weight_delta: Decimal,
    ) -> Balance:
        """Add signed deltas to one key and return the new balance."""
        delta = BalanceDelta(store_id, product_id, lot_no or "", quantity_delta, weight_delta)
        result = await self.apply_deltas([delta])
        return result[delta.key]

    # PUBLIC_INTERFACE
    async def apply_deltas(self, deltas: Iterable[BalanceDelta]) -> Dict[BalanceKey, Balance]:
        """
        Apply a batch of deltas, netted per key and written in sorted key
        order. Returns the resulting balance of every touched key.
        """
        netted: "OrderedDict[BalanceKey, List[Decimal]]" = OrderedDict()
        for delta in deltas:
            acc = netted.setdefault(delta.key, [ZERO, ZERO])
            acc[0] += delta.quantity
            acc[1] += delta.weight

        results: Dict[BalanceKey, Balance] = {}
        for key in sorted(netted, key=lambda k: (str(k[0]), str(k[1]), k[2])):
            quantity, weight = netted[key]
            new_quantity, new_weight = await self.repo.increment(*key, quantity, weight)
            balance = Balance(quantity=new_quantity, weight=new_weight)
            if balance.is_negative:
                self._on_negative(key, balance)
            results[key] = balance
        return results

    def _on_negative(self, key: BalanceKey, balance: Balance) -> None:
        store_id, product_id, lot_no = key
        if self.settings.REJECT_NEGATIVE_BALANCE:
            raise InsufficientStockError(store_id, product_id, lot_no, balance.quantity, balance.weight)
        logger.warning(
            "Negative stock store=%s product=%s lot=%s quantity=%s weight=%s",
            store_id,
            product_id,
            lot_no or "-",
            balance.quantity,
            balance.weight,
        )
