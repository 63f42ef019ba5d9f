"""
Module: procure_kernel.db.types
Responsibility: Coercion and rounding helpers for money and quantities.
    Column precision itself lives in ``Base.type_annotation_map``.
Architecture position: Kernel > DB.  May be imported by every other layer.
    MUST NOT import from any of them.

Invariants enforced:
    - No floats for money.  All amounts are Decimal with explicit precision.
    - round_money() is the only sanctioned rounding function for monetary
      values (two decimal places, ROUND_HALF_UP).
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP
ZERO = Decimal("0")


def to_decimal(value: Any) -> Decimal:
    """
    Coerce a user-supplied amount into a Decimal.

    Floats are converted through ``str`` so ``0.1`` becomes ``Decimal("0.1")``.

    Raises:
        ValueError: If the value is not numeric (including NaN/Infinity).
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a numeric amount: {value!r}")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, TypeError) as exc:
            raise ValueError(f"Not a numeric amount: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Not a finite amount: {value!r}")
    return result


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given decimal places.

    This is the only sanctioned rounding function for money.  All other code
    must delegate rounding here.
    """
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def to_quantity(value: Any) -> int:
    """
    Coerce a user-supplied quantity into an ``int``.

    Accepts ints, and strings, Decimals, or floats that hold an integral
    value (``"4"``, ``Decimal("4")``, ``4.0``).

    Raises:
        ValueError: If the value is not a whole number.
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a whole quantity: {value!r}")
    if isinstance(value, int):
        return value
    try:
        amount = to_decimal(value)
    except ValueError as exc:
        raise ValueError(f"Not a whole quantity: {value!r}") from exc
    if amount != amount.to_integral_value():
        raise ValueError(f"Not a whole quantity: {value!r}")
    return int(amount)
