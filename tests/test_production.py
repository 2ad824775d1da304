"""ProductionService: atomic consume/produce runs, edits by reverse-then-reapply, cancellation."""

import datetime as dt
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from stock_ledger.core.enums import TransactionKind
from stock_ledger.core.errors import (
    DuplicateError,
    LedgerValidationError,
    ProductionNotFoundError,
    UnknownReferenceError,
)
from stock_ledger.db.models.inventory import StockBalance, StockTransaction
from stock_ledger.repositories.sequence import SequenceRepository
from stock_ledger.schemas.inventory import StockEntryCreate
from stock_ledger.schemas.production import (
    MaterialOutLine,
    ProductionItemLine,
    ProductionRunCreate,
    ProductionRunUpdate,
)
from stock_ledger.services.balances import StockBalanceStore
from stock_ledger.services.movements import StockMovementService
from stock_ledger.services.posting import StockPostingService
from stock_ledger.services.production import ProductionService
from stock_ledger.services.reconciliation import ReconciliationService

DAY = dt.date(2026, 3, 14)


@pytest.fixture
def posting(session, settings, locks, events):
    return StockPostingService(session, settings, locks=locks, events=events)


@pytest.fixture
def service(session, settings, posting):
    return ProductionService(session, settings, posting=posting)


@pytest.fixture
async def stocked(session, settings, posting, stores, products):
    """20 packets of reel in the main store."""
    movements = StockMovementService(session, settings, posting=posting)
    await movements.store_in(
        StockEntryCreate(date=DAY, store_id=stores["main"].id, product_id=products["reel"].id, quantity_packets=20)
    )


def run_payload(stores, products, *, consume="10", produce="3", remarks=None, number=None, **overrides):
    payload = ProductionRunCreate(
        production_number=number,
        date=DAY,
        output_store_id=stores["floor"].id,
        remarks=remarks,
        material_out=[
            MaterialOutLine(
                store_id=stores["main"].id,
                product_id=products["reel"].id,
                quantity_packets=Decimal(consume),
            )
        ],
        items=[
            ProductionItemLine(
                product_id=products["board"].id,
                quantity_packets=Decimal(produce),
                rate=Decimal("40"),
            )
        ],
    )
    return payload.model_copy(update=overrides)


async def _balance(session, settings, store, product, lot=None):
    return await StockBalanceStore(session, settings).get_balance(store.id, product.id, lot)


async def _count(session, model):
    return (await session.execute(select(func.count()).select_from(model))).scalar_one()


class TestExecute:
    async def test_consumes_and_produces_in_one_unit(self, session, settings, service, stocked, stores, products):
        outcome = await service.execute(run_payload(stores, products))

        assert outcome.production_number == "PR-000001"
        assert len(outcome.transaction_ids) == 2
        reel = await _balance(session, settings, stores["main"], products["reel"])
        board = await _balance(session, settings, stores["floor"], products["board"])
        assert reel.quantity == Decimal("10")
        assert reel.weight == Decimal("720")
        assert board.quantity == Decimal("3")
        assert board.weight == Decimal("3.8710")

    async def test_lines_are_stored_with_derived_values(self, service, stocked, stores, products):
        outcome = await service.execute(run_payload(stores, products, remarks="first shift"))
        run = await service.get(outcome.run.id)

        assert run.remarks == "first shift"
        assert run.status == "posted"
        assert Decimal(run.material_out[0]["weight_kg"]) == Decimal("720")
        assert run.material_out[0]["description"] == "Kraft reel 120 gsm"
        item = run.items[0]
        assert item["rate_on"] == "Weight"
        assert Decimal(item["value"]) == Decimal("154.84")

    async def test_ledger_entries_carry_the_run(self, session, service, stocked, stores, products):
        outcome = await service.execute(run_payload(stores, products))
        rows = (
            await session.execute(
                select(StockTransaction).where(StockTransaction.id.in_(outcome.transaction_ids))
            )
        ).scalars().all()

        kinds = {r.kind for r in rows}
        assert kinds == {TransactionKind.PRODUCTION_CONSUME.value, TransactionKind.PRODUCTION_PRODUCE.value}
        assert all(r.source_document == "PR-000001" for r in rows)
        assert all(r.source_id == outcome.run.id for r in rows)

    async def test_events_are_published_after_commit(self, service, events, stocked, stores, products):
        received = []

        async def collect(batch):
            received.extend(batch)

        events.subscribe(collect)
        await service.execute(run_payload(stores, products))

        assert {(e.store_id, e.product_id) for e in received} == {
            (stores["main"].id, products["reel"].id),
            (stores["floor"].id, products["board"].id),
        }
        assert all(e.source_document == "PR-000001" for e in received)

    async def test_unknown_product_leaves_nothing_behind(self, session, settings, service, stocked, stores, products):
        ledger_before = await _count(session, StockTransaction)
        balances_before = await _count(session, StockBalance)
        payload = run_payload(stores, products)
        payload.items.append(ProductionItemLine(product_id=uuid4(), quantity_packets=Decimal("1")))

        with pytest.raises(UnknownReferenceError) as info:
            await service.execute(payload)

        assert info.value.entity == "product"
        assert await _count(session, StockTransaction) == ledger_before
        assert await _count(session, StockBalance) == balances_before
        assert (await _balance(session, settings, stores["main"], products["reel"])).quantity == Decimal("20")
        assert await SequenceRepository(session).current_value(SequenceRepository.PRODUCTION) == 0

    async def test_invalid_second_material_line_leaves_nothing_behind(self, session, settings, service, stocked, stores, products):
        ledger_before = await _count(session, StockTransaction)
        balances_before = await _count(session, StockBalance)
        payload = run_payload(stores, products)
        payload.material_out.append(
            MaterialOutLine(store_id=stores["main"].id, product_id=uuid4(), quantity_packets=Decimal("2"))
        )

        with pytest.raises(UnknownReferenceError) as info:
            await service.execute(payload)

        assert info.value.entity == "product"
        assert await _count(session, StockTransaction) == ledger_before
        assert await _count(session, StockBalance) == balances_before
        assert (await _balance(session, settings, stores["main"], products["reel"])).quantity == Decimal("20")
        assert await SequenceRepository(session).current_value(SequenceRepository.PRODUCTION) == 0

    async def test_inactive_store_is_rejected(self, service, stores, products):
        payload = run_payload(stores, products, output_store_id=stores["old"].id)
        with pytest.raises(UnknownReferenceError) as info:
            await service.execute(payload)
        assert "inactive" in info.value.message

    async def test_inactive_product_is_rejected(self, service, stores, products):
        payload = run_payload(stores, products)
        payload.material_out[0].product_id = products["retired"].id
        with pytest.raises(UnknownReferenceError):
            await service.execute(payload)

    @pytest.mark.parametrize(
        "mutate, field",
        [
            (lambda p: setattr(p, "date", None), "date"),
            (lambda p: setattr(p, "output_store_id", None), "output_store_id"),
            (lambda p: setattr(p, "material_out", []), "material_out"),
            (lambda p: setattr(p, "items", []), "items"),
            (lambda p: setattr(p.material_out[0], "store_id", None), "material_out[0].store_id"),
            (lambda p: setattr(p.material_out[0], "product_id", None), "material_out[0].product_id"),
            (lambda p: setattr(p.items[0], "product_id", None), "items[0].product_id"),
        ],
    )
    async def test_missing_field_is_named(self, session, service, stores, products, mutate, field):
        payload = run_payload(stores, products)
        mutate(payload)
        with pytest.raises(LedgerValidationError) as info:
            await service.execute(payload)
        assert info.value.field == field
        assert await _count(session, StockTransaction) == 0


class TestNumbering:
    async def test_numbers_are_sequential(self, service, stocked, stores, products):
        first = await service.execute(run_payload(stores, products, consume="1", produce="1"))
        second = await service.execute(run_payload(stores, products, consume="1", produce="1"))
        assert (first.production_number, second.production_number) == ("PR-000001", "PR-000002")

    async def test_manual_number_is_skipped_by_the_series(self, service, stocked, stores, products):
        await service.execute(run_payload(stores, products, consume="1", produce="1", number="PR-000001"))
        auto = await service.execute(run_payload(stores, products, consume="1", produce="1"))
        assert auto.production_number == "PR-000002"

    async def test_duplicate_number_is_rejected(self, session, service, stocked, stores, products):
        await service.execute(run_payload(stores, products, consume="1", produce="1", number="PR-777"))
        ledger_before = await _count(session, StockTransaction)

        with pytest.raises(DuplicateError) as info:
            await service.execute(run_payload(stores, products, consume="1", produce="1", number="PR-777"))

        assert info.value.field == "production_number"
        assert await _count(session, StockTransaction) == ledger_before


class TestUpdate:
    async def test_remarks_only_edit_leaves_balances_unchanged(self, session, settings, service, stocked, stores, products):
        outcome = await service.execute(run_payload(stores, products))
        before = {
            key: await _balance(session, settings, *key)
            for key in [(stores["main"], products["reel"]), (stores["floor"], products["board"])]
        }

        edited = run_payload(stores, products, remarks="corrected remarks")
        result = await service.update(outcome.run.id, ProductionRunUpdate(**edited.model_dump(exclude={"production_number"})))

        for (store, product), balance in before.items():
            assert await _balance(session, settings, store, product) == balance
        assert result.run.remarks == "corrected remarks"
        assert result.production_number == "PR-000001"
        # two reversals and two new entries
        assert len(result.transaction_ids) == 4

    async def test_remarks_only_edit_with_fine_weight_is_idempotent(self, session, settings, service, stocked, stores, products):
        payload = run_payload(stores, products)
        payload.items[0].weight_kg = Decimal("1.23456")
        outcome = await service.execute(payload)
        board = await _balance(session, settings, stores["floor"], products["board"])
        assert board.weight == Decimal("1.2346")

        edited = payload.model_copy(update={"remarks": "corrected remarks"})
        await service.update(outcome.run.id, ProductionRunUpdate(**edited.model_dump(exclude={"production_number"})))
        await service.update(outcome.run.id, ProductionRunUpdate(**edited.model_dump(exclude={"production_number"})))

        assert await _balance(session, settings, stores["floor"], products["board"]) == board
        assert (await ReconciliationService(session, settings).audit()).consistent

    async def test_quantity_edit_reapplies_new_lines(self, session, settings, service, stocked, stores, products):
        outcome = await service.execute(run_payload(stores, products))
        edited = run_payload(stores, products, consume="4", produce="5")

        await service.update(outcome.run.id, edited)

        assert (await _balance(session, settings, stores["main"], products["reel"])).quantity == Decimal("16")
        assert (await _balance(session, settings, stores["floor"], products["board"])).quantity == Decimal("5")

    async def test_second_edit_reverses_only_the_current_lines(self, session, settings, service, stocked, stores, products):
        outcome = await service.execute(run_payload(stores, products))
        await service.update(outcome.run.id, run_payload(stores, products, consume="4", produce="5"))
        await service.update(outcome.run.id, run_payload(stores, products, consume="2", produce="1"))

        assert (await _balance(session, settings, stores["main"], products["reel"])).quantity == Decimal("18")
        assert (await _balance(session, settings, stores["floor"], products["board"])).quantity == Decimal("1")

    async def test_unknown_run(self, service, stores, products):
        with pytest.raises(ProductionNotFoundError):
            await service.update(uuid4(), run_payload(stores, products))

    async def test_cancelled_run_cannot_be_edited(self, service, stocked, stores, products):
        outcome = await service.execute(run_payload(stores, products))
        await service.delete(outcome.run.id)
        with pytest.raises(LedgerValidationError) as info:
            await service.update(outcome.run.id, run_payload(stores, products))
        assert info.value.field == "status"


class TestDelete:
    async def test_delete_restores_balances_and_keeps_history(self, session, settings, service, stocked, stores, products):
        outcome = await service.execute(run_payload(stores, products))
        result = await service.delete(outcome.run.id)

        assert result.run.status == "cancelled"
        assert (await _balance(session, settings, stores["main"], products["reel"])).quantity == Decimal("20")
        assert (await _balance(session, settings, stores["floor"], products["board"])).quantity == Decimal("0")
        # store-in + 2 originals + 2 reversals
        assert await _count(session, StockTransaction) == 5

    async def test_delete_twice_changes_nothing(self, session, service, stocked, stores, products):
        outcome = await service.execute(run_payload(stores, products))
        await service.delete(outcome.run.id)
        again = await service.delete(outcome.run.id)

        assert again.transaction_ids == []
        assert await _count(session, StockTransaction) == 5


class TestListRuns:
    async def test_newest_first_and_cancelled_hidden(self, service, stocked, stores, products):
        older = await service.execute(run_payload(stores, products, consume="1", produce="1", date=DAY - dt.timedelta(days=2)))
        newer = await service.execute(run_payload(stores, products, consume="1", produce="1", remarks="night shift"))
        cancelled = await service.execute(run_payload(stores, products, consume="1", produce="1"))
        await service.delete(cancelled.run.id)

        items, total = await service.list_runs()
        assert [r.id for r in items] == [newer.run.id, older.run.id]
        assert total == 2

        items, total = await service.list_runs(include_cancelled=True)
        assert total == 3

        items, _ = await service.list_runs(search="night")
        assert [r.id for r in items] == [newer.run.id]

        items, _ = await service.list_runs(date_to=DAY - dt.timedelta(days=1))
        assert [r.id for r in items] == [older.run.id]
