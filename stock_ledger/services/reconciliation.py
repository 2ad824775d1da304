from __future__ import annotations

import logging
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from stock_ledger.core.errors import LedgerIntegrityError
from stock_ledger.core.settings import AppSettings
from stock_ledger.repositories.inventory import StockBalanceRepository, StockTransactionRepository
from stock_ledger.schemas.inventory import ReconciliationMismatch, ReconciliationReport
from stock_ledger.services.balances import BalanceKey
from stock_ledger.services.base import BaseService
from stock_ledger.services.units import round_weight, to_decimal

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class ReconciliationService(BaseService):
    """
    Audit of the conservation rule: every balance equals the sum of the
    ledger deltas of its key. Mismatches are reported and logged, never fixed.
    """

    def __init__(self, session: AsyncSession, settings: Optional[AppSettings] = None) -> None:
        super().__init__(session, settings)
        self.balances = StockBalanceRepository(session)
        self.transactions = StockTransactionRepository(session)

    # PUBLIC_INTERFACE
    async def audit(self) -> ReconciliationReport:
        """Compare all balances with the ledger and report the keys that disagree."""
        ledger: Dict[BalanceKey, Tuple[Decimal, Decimal]] = {}
        for store_id, product_id, lot_no, quantity, weight in await self.transactions.sum_by_key():
            ledger[(store_id, product_id, lot_no)] = (round_weight(to_decimal(quantity or 0)), round_weight(to_decimal(weight or 0)))

        balances: Dict[BalanceKey, Tuple[Decimal, Decimal]] = {}
        for store_id, product_id, lot_no, quantity, weight in await self.balances.list_all_amounts():
            balances[(store_id, product_id, lot_no)] = (round_weight(to_decimal(quantity)), round_weight(to_decimal(weight)))

        mismatches: List[ReconciliationMismatch] = []
        keys = set(ledger) | set(balances)
        for key in sorted(keys, key=lambda k: (str(k[0]), str(k[1]), k[2])):
            expected = ledger.get(key, (ZERO, ZERO))
            actual = balances.get(key, (ZERO, ZERO))
            if expected == actual:
                continue
            store_id, product_id, lot_no = key
            mismatch = ReconciliationMismatch(
                store_id=store_id,
                product_id=product_id,
                lot_no=lot_no or None,
                ledger_quantity=float(expected[0]),
                ledger_weight=float(expected[1]),
                balance_quantity=float(actual[0]),
                balance_weight=float(actual[1]),
            )
            logger.error(
                "Balance disagrees with ledger store=%s product=%s lot=%s ledger=(%s, %s) balance=(%s, %s)",
                store_id,
                product_id,
                lot_no or "-",
                expected[0],
                expected[1],
                actual[0],
                actual[1],
            )
            mismatches.append(mismatch)

        return ReconciliationReport(checked_keys=len(keys), consistent=not mismatches, mismatches=mismatches)

    # PUBLIC_INTERFACE
    async def assert_consistent(self) -> ReconciliationReport:
        """Run the audit and raise LedgerIntegrityError when anything disagrees."""
        report = await self.audit()
        if not report.consistent:
            raise LedgerIntegrityError([m.model_dump(mode="json") for m in report.mismatches])
        return report
