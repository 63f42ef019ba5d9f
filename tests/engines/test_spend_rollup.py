"""
Tests for procure_engines.spend.

Validates:
- Total, count, and average over the given orders
- Vendor rollups ordered by spend, then vendor id
- Category and month rollups reconcile exactly to total spend
- Tax apportionment puts the rounding remainder on the last line
"""

from datetime import date
from decimal import Decimal

from hypothesis import given, settings
from hypothesis import strategies as st

from procure_engines.spend import (
    UNCATEGORIZED,
    LineSpendInput,
    OrderSpendInput,
    apportion_tax,
    summarize_spend,
)

D = Decimal


def _order(order_id, vendor_id, order_date, lines, tax, vendor_category=None):
    subtotal = sum((line.line_total for line in lines), D("0"))
    return OrderSpendInput(
        order_id=order_id,
        vendor_id=vendor_id,
        vendor_name=f"Vendor {vendor_id}",
        vendor_category=vendor_category,
        order_date=order_date,
        total_amount=subtotal + tax,
        tax_amount=tax,
        lines=tuple(lines),
    )


def _sample_orders():
    return [
        _order(
            "A", "V-1", date(2024, 1, 10),
            [
                LineSpendInput(None, D("40.00"), D("40.00")),
                LineSpendInput("electrical", D("15.00"), D("0")),
            ],
            tax=D("9.90"),
            vendor_category="materials",
        ),
        _order(
            "B", "V-2", date(2024, 2, 3),
            [LineSpendInput(None, D("100.00"), D("0"))],
            tax=D("18.00"),
        ),
        _order(
            "C", "V-1", date(2024, 2, 20),
            [LineSpendInput("materials", D("10.00"), D("10.00"))],
            tax=D("1.80"),
            vendor_category="materials",
        ),
    ]


class TestSummarizeSpend:

    def test_totals(self):
        rollup = summarize_spend(orders=_sample_orders())
        assert rollup.total_spend == D("194.70")
        assert rollup.order_count == 3
        assert rollup.average_order_value == D("64.90")

    def test_vendors_sorted_by_spend(self):
        rollup = summarize_spend(orders=_sample_orders())
        assert [(v.vendor_id, v.spend, v.order_count) for v in rollup.by_vendor] == [
            ("V-2", D("118.00"), 1),
            ("V-1", D("76.70"), 2),
        ]
        v1 = rollup.by_vendor[1]
        assert v1.vendor_name == "Vendor V-1"
        assert v1.received_value == D("50.00")

    def test_vendor_tie_broken_by_id(self):
        orders = [
            _order("X", "V-b", date(2024, 1, 1), [LineSpendInput(None, D("5"), D("0"))], D("0")),
            _order("Y", "V-a", date(2024, 1, 1), [LineSpendInput(None, D("5"), D("0"))], D("0")),
        ]
        rollup = summarize_spend(orders=orders)
        assert [v.vendor_id for v in rollup.by_vendor] == ["V-a", "V-b"]

    def test_category_fallbacks_and_reconciliation(self):
        rollup = summarize_spend(orders=_sample_orders())
        categories = {c.category: c.spend for c in rollup.by_category}
        assert categories == {
            "materials": D("59.00"),
            "electrical": D("17.70"),
            UNCATEGORIZED: D("118.00"),
        }
        assert sum(categories.values()) == rollup.total_spend

    def test_months(self):
        rollup = summarize_spend(orders=_sample_orders())
        assert [(m.month, m.spend) for m in rollup.by_month] == [
            ("2024-01", D("64.90")),
            ("2024-02", D("129.80")),
        ]

    def test_no_orders(self):
        rollup = summarize_spend(orders=[])
        assert rollup.total_spend == D("0")
        assert rollup.order_count == 0
        assert rollup.average_order_value == D("0")
        assert rollup.by_vendor == rollup.by_category == rollup.by_month == ()


class TestApportionTax:

    def test_remainder_on_last_line(self):
        shares = apportion_tax([D("1.00"), D("1.00"), D("1.00")], D("0.10"))
        assert shares == [D("0.03"), D("0.03"), D("0.04")]

    def test_proportional(self):
        assert apportion_tax([D("40"), D("15")], D("9.90")) == [D("7.20"), D("2.70")]

    def test_zero_value_lines(self):
        assert apportion_tax([D("0"), D("0")], D("0")) == [D("0"), D("0")]

    def test_empty(self):
        assert apportion_tax([], D("1.00")) == []


_money = st.decimals(
    min_value=D("0"), max_value=D("50000"), places=2,
    allow_nan=False, allow_infinity=False,
)


class TestSpendProperties:

    @given(
        data=st.lists(
            st.tuples(
                st.lists(
                    st.tuples(st.sampled_from([None, "a", "b"]), _money),
                    min_size=1, max_size=5,
                ),
                st.decimals(
                    min_value=D("0"), max_value=D("0.3"), places=2,
                    allow_nan=False, allow_infinity=False,
                ),
                st.integers(min_value=1, max_value=12),
            ),
            max_size=8,
        ),
    )
    @settings(max_examples=150, deadline=None)
    def test_rollups_reconcile(self, data):
        orders = []
        for i, (lines, rate, month) in enumerate(data):
            subtotal = sum((amount for _, amount in lines), D("0"))
            tax = (subtotal * rate).quantize(D("0.01"))
            orders.append(_order(
                f"O{i}", f"V-{i % 3}", date(2024, month, 1),
                [LineSpendInput(category, amount, D("0")) for category, amount in lines],
                tax=tax,
            ))
        rollup = summarize_spend(orders=orders)

        assert sum((c.spend for c in rollup.by_category), D("0")) == rollup.total_spend
        assert sum((m.spend for m in rollup.by_month), D("0")) == rollup.total_spend
        assert sum((v.spend for v in rollup.by_vendor), D("0")) == rollup.total_spend
        assert sum(v.order_count for v in rollup.by_vendor) == rollup.order_count
