"""Money and quantity primitives.

All balances, prices and totals are ``Decimal`` values quantized to two places
(paise); quantities are quantized to three places so loose goods sold by weight
(e.g. 1.250 kg) multiply without float drift.

    price × quantity → line total (rounded half-up to 0.01)
    sum(line totals) + delivery fee → order total
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Union

# ─── constants ───────────────────────────────────────────────────────────────

MONEY_PLACES = Decimal("0.01")
QUANTITY_PLACES = Decimal("0.001")
ZERO = Decimal("0.00")

Number = Union[Decimal, int, float, str]


# ─── conversion helpers ──────────────────────────────────────────────────────


def to_money(value: Number | None) -> Decimal:
    """Coerce to a 2-place Decimal (round half-up). ``None`` → 0.00.

    Floats are routed through ``str`` so 0.1 stays 0.10 rather than
    0.1000000000000000055511151231257827.
    """
    if value is None:
        return ZERO
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


def to_quantity(value: Number) -> Decimal:
    """Coerce to a 3-place Decimal quantity."""
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(QUANTITY_PLACES, rounding=ROUND_HALF_UP)


def line_total(unit_price: Number, quantity: Number) -> Decimal:
    """Price × quantity, rounded to money precision."""
    return to_money(to_money(unit_price) * to_quantity(quantity))


def sum_money(values: Iterable[Number]) -> Decimal:
    total = ZERO
    for value in values:
        total += to_money(value)
    return to_money(total)


def format_money(amount: Number, symbol: str = "₹") -> str:
    """Human display, e.g. ``₹1,250.00``."""
    return f"{symbol}{to_money(amount):,.2f}"
