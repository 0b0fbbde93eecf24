# Overview: Decimal helpers for money columns (Numeric(12, 2)).

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def to_money_str(value: Optional[Decimal]) -> Optional[str]:
    """Serialize a money value as a fixed two-decimal string ("12.50")."""
    if value is None:
        return None
    return str(Decimal(value).quantize(CENT))


def percent_str(value: Optional[Decimal]) -> Optional[str]:
    if value is None:
        return None
    return str(Decimal(value).quantize(CENT))


def line_total(
    quantity: int,
    unit_price: Decimal,
    markup_percent: Decimal = ZERO,
    discount_percent: Decimal = ZERO,
) -> Decimal:
    """
    quantity x unit_price x (1 + markup/100) x (1 - discount/100), rounded to cents.

    Only used when a caller leaves total_price out; a supplied total_price is stored as given.
    """
    gross = Decimal(quantity) * Decimal(unit_price)
    marked_up = gross * (1 + Decimal(markup_percent) / HUNDRED)
    net = marked_up * (1 - Decimal(discount_percent) / HUNDRED)
    return net.quantize(CENT, rounding=ROUND_HALF_UP)


def sum_money(values: Iterable[Optional[Decimal]]) -> Decimal:
    total = ZERO
    for v in values:
        if v is not None:
            total += Decimal(v)
    return total.quantize(CENT)
