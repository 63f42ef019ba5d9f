"""
ORM-level append-only enforcement for goods-receipt audit records.

Goods receipts are the sole writer of ``received_quantity`` and form the
traceability trail for every delivery.  Once flushed, a receipt header or
receipt line can never be updated or deleted.  These mapper listeners
block both operations before SQL is emitted.

Call ``register_immutability_listeners()`` once at start-up (the
procurement facade does this lazily; it is idempotent).
"""

from sqlalchemy import event

from procure_kernel.exceptions import ImmutabilityViolationError
from procure_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _block(entity_type: str, target, operation: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    verb = "modified" if operation == "UPDATE" else "deleted"
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=f"Goods receipt records are append-only and cannot be {verb}",
    )


def _check_receipt_update(mapper, connection, target):
    _block("GoodsReceipt", target, "UPDATE")


def _check_receipt_delete(mapper, connection, target):
    _block("GoodsReceipt", target, "DELETE")


def _check_receipt_line_update(mapper, connection, target):
    _block("GoodsReceiptLine", target, "UPDATE")


def _check_receipt_line_delete(mapper, connection, target):
    _block("GoodsReceiptLine", target, "DELETE")


_LISTENERS = (
    ("GoodsReceiptModel", "before_update", _check_receipt_update),
    ("GoodsReceiptModel", "before_delete", _check_receipt_delete),
    ("GoodsReceiptLineModel", "before_update", _check_receipt_line_update),
    ("GoodsReceiptLineModel", "before_delete", _check_receipt_line_delete),
)


def _resolve(model_name: str):
    from procure_modules.procurement import orm

    return getattr(orm, model_name)


def register_immutability_listeners() -> None:
    """Register the append-only listeners (idempotent)."""
    for model_name, event_name, listener_fn in _LISTENERS:
        target = _resolve(model_name)
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)
