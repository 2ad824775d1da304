"""Unit weight and rounding helpers."""

from decimal import Decimal
from types import SimpleNamespace

import pytest

from stock_ledger.services.units import (
    BOARD_FACTOR,
    is_board,
    round_money,
    round_weight,
    row_weight,
    to_decimal,
    unit_weight,
)


def _product(type_, length, width, grams):
    return SimpleNamespace(type=type_, length=length, width=width, grams=grams)


class TestUnitWeight:
    def test_board_divides_by_ream_factor(self):
        board = _product("Board", Decimal("1"), Decimal("1"), Decimal("20000"))
        weight = unit_weight(board)
        assert weight == Decimal("20000") / BOARD_FACTOR
        assert round_weight(weight) == Decimal("1.2903")

    def test_reel_is_plain_product(self):
        reel = _product("Reel", Decimal("1"), Decimal("1"), Decimal("20000"))
        assert unit_weight(reel) == Decimal("20000")

    def test_type_compare_is_case_insensitive(self):
        lower = _product("board", 1, 1, 20000)
        upper = _product("BOARD ", 1, 1, 20000)
        assert unit_weight(lower) == unit_weight(upper) == Decimal("20000") / BOARD_FACTOR

    @pytest.mark.parametrize("type_", [None, "", "Sheet"])
    def test_other_types_use_reel_formula(self, type_):
        assert unit_weight(_product(type_, 2, 3, 4)) == Decimal("24")

    @pytest.mark.parametrize(
        "dims",
        [
            (None, 1, 1),
            (1, None, 1),
            (1, 1, None),
            (0, 1, 1),
            (1, -2, 1),
        ],
    )
    def test_missing_or_non_positive_dimension_gives_zero(self, dims):
        assert unit_weight(_product("Board", *dims)) == Decimal("0")

    def test_float_dimensions_do_not_leak_binary_noise(self):
        reel = _product("Reel", 0.1, 0.2, 100)
        assert unit_weight(reel) == Decimal("2.000")


class TestRowWeight:
    def test_quantity_times_unit_weight_rounded_to_four_places(self):
        board = _product("Board", 1, 1, 20000)
        assert row_weight(Decimal("3"), board) == Decimal("3.8710")

    def test_zero_when_dimensions_missing(self):
        assert row_weight(10, _product("Reel", None, None, None)) == Decimal("0.0000")

    def test_none_quantity_is_zero(self):
        assert row_weight(None, _product("Reel", 1, 1, 1)) == Decimal("0.0000")


class TestRounding:
    def test_money_rounds_half_up(self):
        assert round_money(Decimal("2.345")) == Decimal("2.35")
        assert round_money(Decimal("-2.345")) == Decimal("-2.35")

    def test_weight_keeps_four_places(self):
        assert round_weight(Decimal("1.23456")) == Decimal("1.2346")

    def test_to_decimal(self):
        assert to_decimal(None) is None
        assert to_decimal(1.1) == Decimal("1.1")
        assert to_decimal("7") == Decimal("7")

    def test_is_board(self):
        assert is_board("Board")
        assert not is_board(None)
        assert not is_board("Reel")
