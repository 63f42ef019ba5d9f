"""
Tests for procure_engines.totals.

Validates:
- subtotal == round2(sum(quantity * unit_price))
- tax_amount == round2(subtotal * tax_rate)
- total_amount == subtotal + tax_amount
- Floats and negative rates are rejected
"""

from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from procure_engines.totals import (
    DEFAULT_TAX_RATE,
    OrderTotals,
    PricedQuantity,
    compute_order_totals,
)


class TestComputeOrderTotals:

    def test_single_line_default_rate(self):
        totals = compute_order_totals(
            lines=[PricedQuantity(quantity=10, unit_price=Decimal("8.50"))],
        )
        assert totals == OrderTotals(
            subtotal=Decimal("85.00"),
            tax_amount=Decimal("15.30"),
            total_amount=Decimal("100.30"),
        )

    def test_default_rate_is_eighteen_percent(self):
        assert DEFAULT_TAX_RATE == Decimal("0.18")

    def test_multiple_lines(self):
        totals = compute_order_totals(
            lines=[
                PricedQuantity(10, Decimal("4.00")),
                PricedQuantity(5, Decimal("2.50")),
                PricedQuantity(2, Decimal("1.25")),
            ],
            tax_rate=Decimal("0.18"),
        )
        assert totals.subtotal == Decimal("55.00")
        assert totals.tax_amount == Decimal("9.90")
        assert totals.total_amount == Decimal("64.90")

    def test_subtotal_rounds_half_up(self):
        totals = compute_order_totals(
            lines=[PricedQuantity(3, Decimal("0.335"))],
            tax_rate=Decimal("0.18"),
        )
        assert totals.subtotal == Decimal("1.01")
        assert totals.tax_amount == Decimal("0.18")
        assert totals.total_amount == Decimal("1.19")

    def test_zero_rate(self):
        totals = compute_order_totals(
            lines=[PricedQuantity(4, Decimal("12.25"))],
            tax_rate=Decimal("0"),
        )
        assert totals.tax_amount == Decimal("0.00")
        assert totals.total_amount == totals.subtotal == Decimal("49.00")

    def test_no_lines_is_zero(self):
        totals = compute_order_totals(lines=[], tax_rate=Decimal("0.18"))
        assert totals.total_amount == Decimal("0.00")

    def test_negative_rate_rejected(self):
        with pytest.raises(ValueError, match="non-negative"):
            compute_order_totals(lines=[], tax_rate=Decimal("-0.01"))

    def test_float_price_rejected(self):
        with pytest.raises(TypeError, match="float"):
            PricedQuantity(1, 9.99)


class TestTotalsProperties:

    @given(
        lines=st.lists(
            st.tuples(
                st.integers(min_value=1, max_value=10_000),
                st.decimals(
                    min_value=Decimal("0"), max_value=Decimal("100000"),
                    places=2, allow_nan=False, allow_infinity=False,
                ),
            ),
            max_size=20,
        ),
        rate=st.decimals(
            min_value=Decimal("0"), max_value=Decimal("0.5"),
            places=4, allow_nan=False, allow_infinity=False,
        ),
    )
    @settings(max_examples=150, deadline=None)
    def test_total_is_subtotal_plus_tax(self, lines, rate):
        totals = compute_order_totals(
            lines=[PricedQuantity(q, p) for q, p in lines],
            tax_rate=rate,
        )
        assert totals.total_amount == totals.subtotal + totals.tax_amount
        assert totals.subtotal == sum((Decimal(q) * p for q, p in lines), Decimal("0"))
        assert totals.tax_amount >= Decimal("0")
