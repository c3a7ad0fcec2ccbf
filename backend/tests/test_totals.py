"""Cart arithmetic: per-line tax rounding and cash-denomination rounding."""

from decimal import Decimal
import random

import pytest

from posledger.services.totals import (
    CartTotals,
    LineInput,
    calculate_cart_totals,
    calculate_line,
    round_to_denomination,
)


def test_line_example():
    line = calculate_line(300, 2, Decimal("0.075"))
    assert line.line_total_cents == 600
    assert line.line_tax_cents == 45


def test_single_line_cart_example():
    totals = calculate_cart_totals([LineInput(300, 2, Decimal("0.075"))])
    assert totals == CartTotals(
        subtotal_cents=600,
        total_tax_cents=45,
        total_discount_cents=0,
        grand_total_cents=645,
        rounding_adjustment_cents=0,
    )


def test_empty_cart_is_all_zero():
    assert calculate_cart_totals([]) == CartTotals()


@pytest.mark.parametrize("amount,expected", [
    (640, 640),
    (641, 640),
    (642, 640),
    (643, 645),
    (647, 645),
    (648, 650),
    (0, 0),
])
def test_round_to_denomination(amount, expected):
    assert round_to_denomination(amount, 5) == expected


def test_round_half_up_on_exact_half():
    # 25 / 10 = 2.5 -> 3
    assert round_to_denomination(25, 10) == 30


def test_denomination_of_one_is_identity():
    assert round_to_denomination(643, 1) == 643


def test_line_tax_rounds_half_up_per_line():
    # 150 * 0.05 = 7.5 -> 8 on each line; cart tax is the sum of rounded lines
    totals = calculate_cart_totals([
        LineInput(150, 1, Decimal("0.05")),
        LineInput(150, 1, Decimal("0.05")),
    ], denomination=1)
    assert totals.total_tax_cents == 16


def test_discount_reduces_grand_total():
    totals = calculate_cart_totals([LineInput(1000, 1, Decimal("0"), discount_cents=120)])
    assert totals.total_discount_cents == 120
    assert totals.grand_total_cents == 880
    assert totals.rounding_adjustment_cents == 0


def test_rounding_adjustment_reconciles():
    totals = calculate_cart_totals([LineInput(199, 1, Decimal("0.075"))])
    # 199 + 15 = 214 -> 215
    assert totals.total_tax_cents == 15
    assert totals.grand_total_cents == 215
    assert totals.rounding_adjustment_cents == 1


def _random_lines(rng):
    return [
        LineInput(
            unit_price_cents=rng.randint(0, 50_000),
            quantity=rng.randint(1, 20),
            tax_rate=Decimal(rng.choice(["0", "0.05", "0.075", "0.15", "0.2", "1"])),
            discount_cents=rng.choice([0, 0, 10, 99]),
        )
        for _ in range(rng.randint(0, 8))
    ]


@pytest.mark.parametrize("denomination", [1, 5, 10, 25])
def test_grand_total_is_multiple_of_denomination_and_reconciles(denomination):
    rng = random.Random(denomination)
    for _ in range(200):
        totals = calculate_cart_totals(_random_lines(rng), denomination)
        assert totals.grand_total_cents % denomination == 0
        assert (
            totals.subtotal_cents
            + totals.total_tax_cents
            - totals.total_discount_cents
            + totals.rounding_adjustment_cents
            == totals.grand_total_cents
        )
        assert abs(totals.rounding_adjustment_cents) <= denomination // 2


def test_recomputing_is_deterministic():
    rng = random.Random(7)
    for _ in range(50):
        lines = _random_lines(rng)
        first = calculate_cart_totals(lines)
        second = calculate_cart_totals(list(lines))
        assert first == second
        assert first.as_dict() == second.as_dict()
