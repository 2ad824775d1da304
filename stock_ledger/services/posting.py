"""
Unit of work for every stock write.

A write is described by a PostingPlan: the balance keys it touches and a
`write` coroutine that performs the document-level writes (header rows,
number allocation) and returns the ledger entries. StockPostingService.post
then, per attempt:

    1. runs `prepare` (validation and reads; raises domain errors before any write)
    2. takes the per-key locks in sorted order, with a timeout
    3. runs `write`, appends the ledger entries, applies the balance deltas
    4. commits, or rolls everything back on any error
    5. after the commit, publishes balance-changed events

Lock timeouts and transient database errors (locked SQLite file, PostgreSQL
serialization failure or deadlock, unique-key races) are retried with
exponential backoff; when the attempts are used up ConcurrencyError is raised.
Domain errors are never retried.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from stock_ledger.core.errors import ConcurrencyError
from stock_ledger.core.logging import source_document_var
from stock_ledger.core.settings import AppSettings
from stock_ledger.schemas.realtime import BalanceChangedEvent
from stock_ledger.services.balances import Balance, BalanceKey, StockBalanceStore
from stock_ledger.services.base import BaseService
from stock_ledger.services.ledger import LedgerEntry, TransactionLedger
from stock_ledger.services.locking import KeyLockManager, balance_locks
from stock_ledger.services.realtime import StockEventHub, stock_events

logger = logging.getLogger(__name__)

# PostgreSQL serialization_failure / deadlock_detected
_RETRYABLE_SQLSTATES = {"40001", "40P01"}


@dataclass
class Written:
    """What a plan's write step produced."""

    entries: List[LedgerEntry]
    result: Any = None
    source_document: Optional[str] = None


@dataclass
class PostingPlan:
    keys: Set[BalanceKey]
    write: Callable[[], Awaitable[Written]]
    label: Optional[str] = None


@dataclass
class PostingOutcome:
    entries: List[LedgerEntry]
    transaction_ids: List[int]
    balances: Dict[BalanceKey, Balance]
    result: Any = None
    source_document: Optional[str] = None
    attempts: int = 1
    events: List[BalanceChangedEvent] = field(default_factory=list)


class StalePlanError(Exception):
    """The write step touched balance keys the plan did not lock."""


def is_transient(exc: BaseException) -> bool:
    """True for failures that a fresh attempt of the same unit of work may clear."""
    if isinstance(exc, (asyncio.TimeoutError, StalePlanError)):
        return True
    if isinstance(exc, (OperationalError, IntegrityError)):
        return True
    if isinstance(exc, DBAPIError):
        orig = exc.orig
        code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
        return code in _RETRYABLE_SQLSTATES
    return False


def keys_of(entries: Iterable[LedgerEntry]) -> Set[BalanceKey]:
    return {entry.key for entry in entries}


class StockPostingService(BaseService):
    """Runs PostingPlans as locked, retried, all-or-nothing units of work."""

    def __init__(
        self,
        session: AsyncSession,
        settings: Optional[AppSettings] = None,
        *,
        locks: Optional[KeyLockManager] = None,
        events: Optional[StockEventHub] = None,
    ) -> None:
        super().__init__(session, settings)
        self.locks = locks or balance_locks
        self.events = events or stock_events
        self.ledger = TransactionLedger(session, self.settings)
        self.balances = StockBalanceStore(session, self.settings)

    # PUBLIC_INTERFACE
    async def post(self, prepare: Callable[[], Awaitable[PostingPlan]]) -> PostingOutcome:
        """
        Run the plan built by `prepare` as one unit of work and return what was
        committed. `prepare` is called again on every retry so it always
        validates against fresh data.
        """
        attempts = self.settings.WRITE_RETRY_ATTEMPTS
        backoff = self.settings.WRITE_RETRY_BACKOFF_SECONDS
        last_error: Optional[BaseException] = None

        for attempt in range(1, attempts + 1):
            token = source_document_var.set(None)
            try:
                try:
                    outcome = await self._attempt(prepare)
                except Exception as exc:
                    await self.session.rollback()
                    if not is_transient(exc):
                        raise
                    last_error = exc
                    logger.warning(
                        "Stock posting attempt %d/%d failed: %s", attempt, attempts, exc.__class__.__name__
                    )
                    if attempt < attempts and backoff > 0:
                        await asyncio.sleep(backoff * (2 ** (attempt - 1)))
                    continue

                outcome.attempts = attempt
                logger.info(
                    "Posted %d ledger entries across %d balance keys",
                    len(outcome.transaction_ids),
                    len(outcome.balances),
                )
                outcome.events = await self._notify(outcome)
                return outcome
            finally:
                source_document_var.reset(token)

        cause = repr(last_error) if last_error is not None else None
        logger.error("Stock posting gave up after %d attempts: %s", attempts, cause)
        raise ConcurrencyError(attempts, cause=cause)

    async def _attempt(self, prepare: Callable[[], Awaitable[PostingPlan]]) -> PostingOutcome:
        plan = await prepare()
        if plan.label:
            source_document_var.set(plan.label)
        async with self.locks.hold(plan.keys, self.settings.LOCK_TIMEOUT_SECONDS):
            written = await plan.write()
            if written.source_document:
                source_document_var.set(written.source_document)
            stray = keys_of(written.entries) - plan.keys
            if stray:
                raise StalePlanError(f"{len(stray)} balance key(s) not locked by the plan")
            ids = await self.ledger.append_many(written.entries)
            balances = await self.balances.apply_deltas(e.as_delta() for e in written.entries)
            await self.session.commit()
        return PostingOutcome(
            entries=written.entries,
            transaction_ids=ids,
            balances=balances,
            result=written.result,
            source_document=written.source_document,
        )

    async def _notify(self, outcome: PostingOutcome) -> List[BalanceChangedEvent]:
        events = [
            BalanceChangedEvent(
                store_id=key[0],
                product_id=key[1],
                lot_no=key[2] or None,
                quantity_packets=float(balance.quantity),
                weight_kg=float(balance.weight),
                source_document=outcome.source_document,
            )
            for key, balance in outcome.balances.items()
        ]
        await self.events.publish(events)
        return events
