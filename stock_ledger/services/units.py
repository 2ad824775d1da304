"""
Unit conversion for paper products.

Pure functions; nothing here touches the database. A packet's weight comes
from the product dimensions:

    Board:        length x width x grams / 15500
    Reel / other: length x width x grams

Missing or non-positive dimensions give 0, meaning "cannot derive, leave the
weight to the user" rather than an error.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from stock_ledger.core.enums import ProductType

# Ream-sheet convention for board sizes.
BOARD_FACTOR = Decimal("15500")

WEIGHT_QUANTUM = Decimal("0.0001")
MONEY_QUANTUM = Decimal("0.01")

ZERO = Decimal("0")


def to_decimal(value: Any) -> Optional[Decimal]:
    """Decimal view of a number; floats go through str() to avoid binary noise."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def _dimension(product: Any, name: str) -> Optional[Decimal]:
    value = to_decimal(getattr(product, name, None))
    if value is None or value <= 0:
        return None
    return value


def is_board(product_type: Optional[str]) -> bool:
    return (product_type or "").strip().lower() == ProductType.BOARD.value.lower()


# PUBLIC_INTERFACE
def unit_weight(product: Any) -> Decimal:
    """
    Weight of one packet of `product` in kg, unrounded.

    `product` is anything with length/width/grams/type attributes (an ORM
    Product, a line snapshot). Type comparison is case-insensitive and any
    type other than Board, including empty, uses the reel formula.
    """
    length = _dimension(product, "length")
    width = _dimension(product, "width")
    grams = _dimension(product, "grams")
    if length is None or width is None or grams is None:
        return ZERO
    weight = length * width * grams
    if is_board(getattr(product, "type", None)):
        weight = weight / BOARD_FACTOR
    return weight


# PUBLIC_INTERFACE
def row_weight(quantity_packets: Any, product: Any) -> Decimal:
    """quantity x unit weight, rounded to 4 places for storage."""
    quantity = to_decimal(quantity_packets) or ZERO
    return round_weight(quantity * unit_weight(product))


def round_weight(value: Any) -> Decimal:
    return to_decimal(value).quantize(WEIGHT_QUANTUM, rounding=ROUND_HALF_UP)


def round_money(value: Any) -> Decimal:
    """Round to 2 places; used only at presentation boundaries and for line values."""
    return to_decimal(value).quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)
