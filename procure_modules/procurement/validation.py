"""
Line-level input validation for requisitions and purchase orders.

Every problem in a submission is collected and reported in one
``ValidationError`` so callers can fix a form in a single round trip.
Returned inputs are normalized: whole-number quantities as ``int``,
prices as ``Decimal``, units filled in.
"""

from collections.abc import Mapping, Sequence
from dataclasses import replace
from decimal import Decimal

from procure_kernel.db.types import ZERO, to_decimal, to_quantity
from procure_kernel.exceptions import ValidationError
from procure_modules.procurement.models import OrderLineInput, RequisitionLineInput


def _check_name(number: int, name: object, errors: list[str]) -> str:
    if not isinstance(name, str) or not name.strip():
        errors.append(f"Line {number}: item name is required")
        return ""
    return name.strip()


def _check_quantity(number: int, value: object, errors: list[str]) -> int:
    try:
        quantity = to_quantity(value)
    except ValueError:
        errors.append(f"Line {number}: quantity must be a positive whole number")
        return 0
    if quantity <= 0:
        errors.append(f"Line {number}: quantity must be greater than zero")
    return quantity


def _check_price(number: int, value: object, errors: list[str]) -> Decimal:
    if value is None or value == "":
        return ZERO
    try:
        price = to_decimal(value)
    except ValueError:
        errors.append(f"Line {number}: unit price must be a number")
        return ZERO
    if price < ZERO:
        errors.append(f"Line {number}: unit price cannot be negative")
    return price


def validate_requisition_lines(
    lines: Sequence[RequisitionLineInput | Mapping],
    default_unit: str,
) -> list[RequisitionLineInput]:
    """Validate and normalize requisition lines; missing prices become 0."""
    if not lines:
        raise ValidationError("At least one line item is required")

    errors: list[str] = []
    normalized: list[RequisitionLineInput] = []
    for number, raw in enumerate(lines, start=1):
        line = RequisitionLineInput.coerce(raw)
        normalized.append(replace(
            line,
            item_name=_check_name(number, line.item_name, errors),
            quantity=_check_quantity(number, line.quantity, errors),
            estimated_unit_price=_check_price(number, line.estimated_unit_price, errors),
            unit=line.unit or default_unit,
        ))
    if errors:
        raise ValidationError(errors)
    return normalized


def validate_order_lines(
    lines: Sequence[OrderLineInput | Mapping],
    default_unit: str,
) -> list[OrderLineInput]:
    """Validate and normalize purchase-order lines."""
    if not lines:
        raise ValidationError("At least one line item is required")

    errors: list[str] = []
    normalized: list[OrderLineInput] = []
    seen_ids: set[str] = set()
    for number, raw in enumerate(lines, start=1):
        line = OrderLineInput.coerce(raw)
        if line.line_id is not None:
            key = str(line.line_id)
            if key in seen_ids:
                errors.append(f"Line {number}: line {key} appears more than once")
            seen_ids.add(key)
        normalized.append(replace(
            line,
            item_name=_check_name(number, line.item_name, errors),
            ordered_quantity=_check_quantity(number, line.ordered_quantity, errors),
            unit_price=_check_price(number, line.unit_price, errors),
            unit=line.unit or default_unit,
        ))
    if errors:
        raise ValidationError(errors)
    return normalized
