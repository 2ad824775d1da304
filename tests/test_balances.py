"""StockBalanceStore: per-key balances updated by atomic upserts."""

import logging
from decimal import Decimal

import pytest

from stock_ledger.core.errors import InsufficientStockError
from stock_ledger.services.balances import Balance, BalanceDelta, StockBalanceStore, balance_key


class TestGetBalance:
    async def test_unknown_key_reads_as_zero(self, session, settings, stores, products):
        store = StockBalanceStore(session, settings)
        balance = await store.get_balance(stores["main"].id, products["reel"].id)
        assert balance == Balance(Decimal("0"), Decimal("0"))
        assert not balance.is_negative

    async def test_none_and_blank_lot_are_the_same_key(self, stores, products):
        assert balance_key(stores["main"].id, products["reel"].id, None) == balance_key(
            stores["main"].id, products["reel"].id, ""
        )


class TestApplyDelta:
    async def test_first_delta_creates_the_row(self, session, settings, stores, products):
        store = StockBalanceStore(session, settings)
        result = await store.apply_delta(stores["main"].id, products["reel"].id, None, Decimal("10"), Decimal("720"))
        await session.commit()

        assert result == Balance(Decimal("10"), Decimal("720"))
        assert await store.get_balance(stores["main"].id, products["reel"].id) == result

    async def test_deltas_accumulate(self, session, settings, stores, products):
        store = StockBalanceStore(session, settings)
        s, p = stores["main"].id, products["reel"].id
        await store.apply_delta(s, p, None, Decimal("10"), Decimal("720"))
        result = await store.apply_delta(s, p, None, Decimal("-4"), Decimal("-288"))
        await session.commit()
        assert result == Balance(Decimal("6"), Decimal("432"))

    async def test_lots_are_separate_balances(self, session, settings, stores, products):
        store = StockBalanceStore(session, settings)
        s, p = stores["main"].id, products["reel"].id
        await store.apply_delta(s, p, "R-1", Decimal("2"), Decimal("144"))
        await store.apply_delta(s, p, "R-2", Decimal("3"), Decimal("216"))
        await session.commit()

        assert (await store.get_balance(s, p, "R-1")).quantity == Decimal("2")
        assert (await store.get_balance(s, p, "R-2")).quantity == Decimal("3")
        assert (await store.get_balance(s, p)).quantity == Decimal("0")

    async def test_rollback_discards_the_increment(self, session, settings, stores, products):
        store = StockBalanceStore(session, settings)
        s, p = stores["main"].id, products["reel"].id
        await store.apply_delta(s, p, None, Decimal("5"), Decimal("360"))
        await session.rollback()
        assert await store.get_balance(s, p) == Balance()

    async def test_result_is_the_row_this_statement_wrote(self, session, settings, stores, products):
        store = StockBalanceStore(session, settings)
        s, p = stores["main"].id, products["reel"].id
        await store.apply_delta(s, p, None, Decimal("10"), Decimal("720"))
        # a read between upserts must not mask the second result
        assert (await store.get_balance(s, p)).quantity == Decimal("10")

        result = await store.apply_delta(s, p, None, Decimal("2.5"), Decimal("180"))

        assert result == Balance(Decimal("12.5"), Decimal("900"))


class TestApplyDeltas:
    async def test_batch_is_netted_per_key(self, session, settings, stores, products):
        store = StockBalanceStore(session, settings)
        s, p = stores["main"].id, products["reel"].id
        other = products["board"].id
        result = await store.apply_deltas(
            [
                BalanceDelta(s, p, "", Decimal("10"), Decimal("720")),
                BalanceDelta(s, other, "", Decimal("1"), Decimal("1.2903")),
                BalanceDelta(s, p, "", Decimal("-3"), Decimal("-216")),
            ]
        )
        await session.commit()

        assert result[balance_key(s, p)] == Balance(Decimal("7"), Decimal("504"))
        assert result[balance_key(s, other)] == Balance(Decimal("1"), Decimal("1.2903"))

    async def test_negative_result_is_allowed_and_logged(self, session, settings, stores, products, caplog):
        store = StockBalanceStore(session, settings)
        with caplog.at_level(logging.WARNING, logger="stock_ledger.services.balances"):
            result = await store.apply_delta(
                stores["main"].id, products["reel"].id, None, Decimal("-2"), Decimal("-144")
            )
        assert result.is_negative
        assert any("Negative stock" in r.getMessage() for r in caplog.records)

    async def test_strict_mode_rejects_negative_result(self, session, settings, stores, products):
        strict = settings.model_copy(update={"REJECT_NEGATIVE_BALANCE": True})
        store = StockBalanceStore(session, strict)
        with pytest.raises(InsufficientStockError) as info:
            await store.apply_delta(stores["main"].id, products["reel"].id, None, Decimal("-1"), Decimal("0"))
        assert info.value.code == "INSUFFICIENT_STOCK"
        assert info.value.http_status == 400

    async def test_deltas_are_rounded_to_four_places(self, session, settings, stores, products):
        delta = BalanceDelta(stores["main"].id, products["board"].id, "", Decimal("1"), Decimal("1.23456"))
        assert delta.weight == Decimal("1.2346")

        result = await StockBalanceStore(session, settings).apply_deltas([delta, delta])

        assert result[delta.key] == Balance(Decimal("2"), Decimal("2.4692"))
