"""
procure_engines.spend -- Spend rollups over purchase orders.

Responsibility:
    Aggregate already-filtered purchase orders into total spend, per-vendor,
    per-category, and per-month figures.  Selection (date range, excluding
    cancelled orders) is the caller's job.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Reconciliation: total_spend == sum of order totals, and the category
      and month rollups each sum exactly to total_spend.  Order tax is
      apportioned to lines by line value; the rounding remainder goes to
      the order's last line.
    - Determinism: vendors are ordered by spend descending, then vendor id.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from procure_engines.tracer import traced_engine
from procure_kernel.db.types import ZERO, round_money

UNCATEGORIZED = "uncategorized"


@dataclass(frozen=True)
class LineSpendInput:
    category: str | None
    line_total: Decimal
    received_value: Decimal


@dataclass(frozen=True)
class OrderSpendInput:
    order_id: str
    vendor_id: str
    vendor_name: str
    vendor_category: str | None
    order_date: date
    total_amount: Decimal
    tax_amount: Decimal
    lines: tuple[LineSpendInput, ...]


@dataclass(frozen=True)
class VendorSpend:
    vendor_id: str
    vendor_name: str
    spend: Decimal
    order_count: int
    received_value: Decimal


@dataclass(frozen=True)
class CategorySpend:
    category: str
    spend: Decimal


@dataclass(frozen=True)
class MonthSpend:
    month: str
    spend: Decimal


@dataclass(frozen=True)
class SpendRollup:
    total_spend: Decimal
    order_count: int
    average_order_value: Decimal
    by_vendor: tuple[VendorSpend, ...]
    by_category: tuple[CategorySpend, ...]
    by_month: tuple[MonthSpend, ...]


def apportion_tax(line_totals: Sequence[Decimal], tax_amount: Decimal) -> list[Decimal]:
    """
    Split ``tax_amount`` across lines in proportion to their totals.

    Rounding differences go to the last line, so the shares always sum to
    ``tax_amount`` exactly.
    """
    if not line_totals:
        return []
    base = sum(line_totals, ZERO)
    shares: list[Decimal] = []
    allocated = ZERO
    for i, line_total in enumerate(line_totals):
        if i == len(line_totals) - 1:
            shares.append(tax_amount - allocated)
        elif base == ZERO:
            shares.append(ZERO)
        else:
            share = round_money(tax_amount * line_total / base)
            shares.append(share)
            allocated += share
    return shares


def _category_shares(order: OrderSpendInput) -> list[tuple[str, Decimal]]:
    fallback = order.vendor_category or UNCATEGORIZED
    if not order.lines:
        return [(fallback, order.total_amount)]

    taxes = apportion_tax([line.line_total for line in order.lines], order.tax_amount)
    shares: list[tuple[str, Decimal]] = []
    allocated = ZERO
    last = len(order.lines) - 1
    for i, (line, tax) in enumerate(zip(order.lines, taxes)):
        category = line.category or fallback
        if i == last:
            amount = order.total_amount - allocated
        else:
            amount = round_money(line.line_total + tax)
            allocated += amount
        shares.append((category, amount))
    return shares


@traced_engine("spend_rollup", "1.0", fingerprint_fields=("orders",))
def summarize_spend(*, orders: Sequence[OrderSpendInput]) -> SpendRollup:
    """Aggregate ``orders`` into a ``SpendRollup``."""
    total = sum((order.total_amount for order in orders), ZERO)
    count = len(orders)
    average = round_money(total / count) if count else ZERO

    vendors: dict[str, dict] = {}
    categories: dict[str, Decimal] = {}
    months: dict[str, Decimal] = {}

    for order in orders:
        bucket = vendors.setdefault(
            order.vendor_id,
            {"name": order.vendor_name, "spend": ZERO, "count": 0, "received": ZERO},
        )
        bucket["spend"] += order.total_amount
        bucket["count"] += 1
        bucket["received"] += sum((line.received_value for line in order.lines), ZERO)

        for category, amount in _category_shares(order):
            categories[category] = categories.get(category, ZERO) + amount

        month = order.order_date.strftime("%Y-%m")
        months[month] = months.get(month, ZERO) + order.total_amount

    by_vendor = tuple(sorted(
        (
            VendorSpend(
                vendor_id=vendor_id,
                vendor_name=data["name"],
                spend=data["spend"],
                order_count=data["count"],
                received_value=round_money(data["received"]),
            )
            for vendor_id, data in vendors.items()
        ),
        key=lambda v: (-v.spend, v.vendor_id),
    ))
    by_category = tuple(sorted(
        (CategorySpend(category=name, spend=spend) for name, spend in categories.items()),
        key=lambda c: (-c.spend, c.category),
    ))
    by_month = tuple(
        MonthSpend(month=month, spend=months[month]) for month in sorted(months)
    )

    return SpendRollup(
        total_spend=total,
        order_count=count,
        average_order_value=average,
        by_vendor=by_vendor,
        by_category=by_category,
        by_month=by_month,
    )
