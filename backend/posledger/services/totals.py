"""
Cart arithmetic.

Pure functions over integer minor units. Line tax is rounded half-up to a
whole minor unit per line, and the cart tax is the sum of the rounded line
taxes, so line and cart figures always agree. The grand total is rounded
half-up to the nearest cash denomination; rounding_adjustment is the exact
difference, so

    subtotal + total_tax - total_discount + rounding_adjustment == grand_total

holds for every input. Callers reject negative or non-finite inputs before
calling in.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Protocol

DEFAULT_DENOMINATION_CENTS = 5


class LineLike(Protocol):
    unit_price_cents: int
    quantity: int
    tax_rate: Decimal
    discount_cents: int


@dataclass(frozen=True)
class LineInput:
    unit_price_cents: int
    quantity: int
    tax_rate: Decimal = Decimal("0")
    discount_cents: int = 0


@dataclass(frozen=True)
class LineTotals:
    line_total_cents: int
    line_tax_cents: int


@dataclass(frozen=True)
class CartTotals:
    subtotal_cents: int = 0
    total_tax_cents: int = 0
    total_discount_cents: int = 0
    grand_total_cents: int = 0
    rounding_adjustment_cents: int = 0

    def as_dict(self) -> dict:
        return {
            "subtotal_cents": self.subtotal_cents,
            "total_tax_cents": self.total_tax_cents,
            "total_discount_cents": self.total_discount_cents,
            "grand_total_cents": self.grand_total_cents,
            "rounding_adjustment_cents": self.rounding_adjustment_cents,
        }


def _round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def round_to_denomination(amount_cents: int, denomination: int = DEFAULT_DENOMINATION_CENTS) -> int:
    """Nearest multiple of denomination; halves round up."""
    if denomination <= 1:
        return amount_cents
    return _round_half_up(Decimal(amount_cents) / Decimal(denomination)) * denomination


def calculate_line(unit_price_cents: int, quantity: int, tax_rate) -> LineTotals:
    line_total = unit_price_cents * quantity
    line_tax = _round_half_up(Decimal(line_total) * Decimal(str(tax_rate)))
    return LineTotals(line_total_cents=line_total, line_tax_cents=line_tax)


def calculate_cart_totals(items: Iterable[LineLike], denomination: int = DEFAULT_DENOMINATION_CENTS) -> CartTotals:
    subtotal = 0
    total_tax = 0
    total_discount = 0

    for item in items:
        line = calculate_line(item.unit_price_cents, item.quantity, item.tax_rate)
        subtotal += line.line_total_cents
        total_tax += line.line_tax_cents
        total_discount += item.discount_cents or 0

    unrounded = subtotal + total_tax - total_discount
    grand_total = round_to_denomination(unrounded, denomination)

    return CartTotals(
        subtotal_cents=subtotal,
        total_tax_cents=total_tax,
        total_discount_cents=total_discount,
        grand_total_cents=grand_total,
        rounding_adjustment_cents=grand_total - unrounded,
    )
