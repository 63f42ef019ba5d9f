"""
procure_engines.fulfillment -- Receipt planning and order status derivation.

Responsibility:
    Decide, from a purchase order's current line quantities and a goods-
    receipt submission, exactly which lines move by how much and what the
    order status becomes.  The receiving engine applies the resulting
    ``ReceiptPlan`` verbatim; it does no arithmetic of its own.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Quantity bound: for every line, 0 <= received <= ordered after the
      plan is applied.  Over-receipt is rejected, never clamped.
    - Status purity: ``derive_order_status`` depends only on the current
      (ordered, received) pairs, so the result is the same whatever order
      the receipts were historically applied in.
    - Quantities for the same PO line within one submission are summed
      before the bound is checked.

Failure modes:
    - OrderLineNotFoundError if a request names a line not on the order.
    - ValidationError for non-integer or negative quantities, for a line
      whose summed quantity exceeds its remaining quantity, and for a
      submission that receives nothing.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from procure_engines.tracer import traced_engine
from procure_kernel.db.types import to_quantity
from procure_kernel.exceptions import OrderLineNotFoundError, ValidationError
from procure_kernel.logging_config import get_logger

logger = get_logger("engines.fulfillment")

# Derived statuses.  Values match the purchase-order status enum.
COMPLETED = "completed"
PARTIALLY_RECEIVED = "partially_received"


@dataclass(frozen=True)
class LineProgress:
    """Current delivery state of one purchase-order line."""

    line_id: str
    ordered_quantity: int
    received_quantity: int
    label: str = ""

    @property
    def remaining_quantity(self) -> int:
        return self.ordered_quantity - self.received_quantity

    @property
    def is_fully_received(self) -> bool:
        return self.received_quantity == self.ordered_quantity


@dataclass(frozen=True)
class RequestedQuantity:
    """One line of a goods-receipt submission, as supplied by the caller."""

    line_id: str
    quantity: Any


@dataclass(frozen=True)
class LineIncrement:
    line_id: str
    quantity: int
    received_before: int
    received_after: int


@dataclass(frozen=True)
class ReceiptPlan:
    """The complete, validated effect of one goods receipt."""

    increments: tuple[LineIncrement, ...]
    status_before: str
    status_after: str

    @property
    def total_quantity(self) -> int:
        return sum(inc.quantity for inc in self.increments)


def derive_order_status(
    lines: Iterable[tuple[int, int]],
    current_status: str,
) -> str:
    """
    Status implied by ``(ordered_quantity, received_quantity)`` pairs.

    Every line full -> completed; any line with receipts -> partially
    received; otherwise the current status is kept.
    """
    pairs = list(lines)
    if not pairs:
        return current_status
    if all(received == ordered for ordered, received in pairs):
        return COMPLETED
    if any(received > 0 for _, received in pairs):
        return PARTIALLY_RECEIVED
    return current_status


def _describe(line: LineProgress) -> str:
    return line.label or line.line_id


@traced_engine(
    "receipt_plan", "1.0",
    fingerprint_fields=("po_id", "status", "lines", "requests"),
)
def plan_receipt(
    *,
    po_id: str,
    status: str,
    lines: Sequence[LineProgress],
    requests: Sequence[RequestedQuantity],
) -> ReceiptPlan:
    """
    Validate a receipt submission against the order and plan its effect.

    Checks run in order: line references, quantity types and signs,
    remaining-quantity bounds (after summing duplicates), then the
    "nothing to receive" rule.  Every problem of one kind is reported
    together.
    """
    by_id = {line.line_id: line for line in lines}

    for request in requests:
        if str(request.line_id) not in by_id:
            raise OrderLineNotFoundError(str(request.line_id), po_id)

    errors: list[str] = []
    first_bad: str | None = None
    requested: dict[str, int] = {}
    for request in requests:
        line = by_id[str(request.line_id)]
        try:
            quantity = to_quantity(request.quantity)
        except ValueError:
            errors.append(
                f"Line {_describe(line)}: quantity must be a whole number, "
                f"got {request.quantity!r}"
            )
            first_bad = first_bad or line.line_id
            continue
        if quantity < 0:
            errors.append(f"Line {_describe(line)}: quantity cannot be negative")
            first_bad = first_bad or line.line_id
            continue
        requested[line.line_id] = requested.get(line.line_id, 0) + quantity
    if errors:
        raise ValidationError(errors, line_ref=first_bad)

    for line in lines:
        quantity = requested.get(line.line_id, 0)
        if quantity > line.remaining_quantity:
            errors.append(
                f"Line {_describe(line)}: cannot receive {quantity}, "
                f"only {line.remaining_quantity} of {line.ordered_quantity} remaining"
            )
            first_bad = first_bad or line.line_id
    if errors:
        logger.info(
            "receipt_over_receipt_rejected",
            extra={"po_id": po_id, "error_count": len(errors)},
        )
        raise ValidationError(errors, line_ref=first_bad)

    if sum(requested.values()) == 0:
        raise ValidationError("nothing to receive")

    increments = tuple(
        LineIncrement(
            line_id=line.line_id,
            quantity=requested[line.line_id],
            received_before=line.received_quantity,
            received_after=line.received_quantity + requested[line.line_id],
        )
        for line in lines
        if requested.get(line.line_id, 0) > 0
    )
    after = {inc.line_id: inc.received_after for inc in increments}
    status_after = derive_order_status(
        (
            (line.ordered_quantity, after.get(line.line_id, line.received_quantity))
            for line in lines
        ),
        status,
    )
    return ReceiptPlan(
        increments=increments,
        status_before=status,
        status_after=status_after,
    )
