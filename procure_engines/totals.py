"""
procure_engines.totals -- Purchase-order money totals.

Responsibility:
    Derive subtotal, tax, and total for a purchase order from its lines.
    These three amounts are never set independently: every line change goes
    back through ``compute_order_totals``.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - subtotal == round2(sum(ordered_quantity * unit_price))
    - tax_amount == round2(subtotal * tax_rate)
    - total_amount == subtotal + tax_amount
    - Decimal-only arithmetic; floats are rejected.

Usage:
    totals = compute_order_totals(
        lines=[PricedQuantity(quantity=10, unit_price=Decimal("12.50"))],
        tax_rate=Decimal("0.18"),
    )
    totals.total_amount  # Decimal("147.50")
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from procure_engines.tracer import traced_engine
from procure_kernel.db.types import ZERO, round_money

DEFAULT_TAX_RATE = Decimal("0.18")


@dataclass(frozen=True)
class PricedQuantity:
    """One priced line: whole quantity times unit price."""

    quantity: int
    unit_price: Decimal

    def __post_init__(self) -> None:
        if isinstance(self.unit_price, float):
            raise TypeError("unit_price must be Decimal, not float")

    @property
    def line_total(self) -> Decimal:
        return Decimal(self.quantity) * self.unit_price


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal


@traced_engine("order_totals", "1.0", fingerprint_fields=("lines", "tax_rate"))
def compute_order_totals(
    *,
    lines: Sequence[PricedQuantity],
    tax_rate: Decimal = DEFAULT_TAX_RATE,
) -> OrderTotals:
    """Compute subtotal, tax, and total for the given lines."""
    if tax_rate < ZERO:
        raise ValueError(f"tax_rate must be non-negative, got {tax_rate}")
    subtotal = round_money(sum((line.line_total for line in lines), ZERO))
    tax_amount = round_money(subtotal * tax_rate)
    return OrderTotals(
        subtotal=subtotal,
        tax_amount=tax_amount,
        total_amount=subtotal + tax_amount,
    )
