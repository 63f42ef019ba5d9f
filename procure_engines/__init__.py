"""
Module: procure_engines
Responsibility:
    Pure calculation engines for the procurement lifecycle: order totals,
    receipt planning with status derivation, and spend rollups.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May import procure_kernel (types, exceptions, logging) only.
    MUST NOT import procure_modules.

Invariants enforced:
    - Purity: engines never read the clock.  Dates are passed in.
    - Decimal-only arithmetic for money.
    - Determinism: identical inputs always produce identical outputs.
"""

from procure_engines.fulfillment import (
    COMPLETED,
    PARTIALLY_RECEIVED,
    LineIncrement,
    LineProgress,
    ReceiptPlan,
    RequestedQuantity,
    derive_order_status,
    plan_receipt,
)
from procure_engines.spend import (
    UNCATEGORIZED,
    CategorySpend,
    LineSpendInput,
    MonthSpend,
    OrderSpendInput,
    SpendRollup,
    VendorSpend,
    apportion_tax,
    summarize_spend,
)
from procure_engines.totals import (
    DEFAULT_TAX_RATE,
    OrderTotals,
    PricedQuantity,
    compute_order_totals,
)

__all__ = [
    "COMPLETED",
    "PARTIALLY_RECEIVED",
    "LineIncrement",
    "LineProgress",
    "ReceiptPlan",
    "RequestedQuantity",
    "derive_order_status",
    "plan_receipt",
    "UNCATEGORIZED",
    "CategorySpend",
    "LineSpendInput",
    "MonthSpend",
    "OrderSpendInput",
    "SpendRollup",
    "VendorSpend",
    "apportion_tax",
    "summarize_spend",
    "DEFAULT_TAX_RATE",
    "OrderTotals",
    "PricedQuantity",
    "compute_order_totals",
]
