"""
ReceivingEngine -- goods-receipt reconciliation against a purchase order.

Responsibility:
    Accepts a goods-receipt submission, validates it against the order's
    remaining quantities, raises each line's ``received_quantity``,
    recomputes the order status, and appends an immutable receipt record.
    The goods receipt is the sole writer of ``received_quantity``.

Architecture position:
    Modules layer.  Validation and the status decision are delegated to the
    pure ``procure_engines.fulfillment.plan_receipt``; this class loads the
    order, applies the plan, and writes the audit record.  Flush-only:
    ``ProcurementService`` holds the per-PO lock and owns commit/rollback,
    so a rejected submission leaves every line untouched.

Invariants enforced:
    - 0 <= received_quantity <= ordered_quantity on every line (also a
      database CHECK constraint).
    - Over-receipt is rejected with ``ValidationError``, never clamped.
    - Completed and cancelled orders accept no receipts.
    - Every applied receipt bumps the order version (optimistic lock).
"""

from collections.abc import Mapping, Sequence
from datetime import date
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from procure_engines.fulfillment import LineProgress, RequestedQuantity, plan_receipt
from procure_kernel.db.types import to_quantity
from procure_kernel.domain.clock import Clock
from procure_kernel.exceptions import InvalidStateError, ValidationError
from procure_kernel.logging_config import get_logger
from procure_kernel.services.base import BaseService
from procure_kernel.services.sequence_service import SequenceService
from procure_modules.procurement.config import ProcurementConfig
from procure_modules.procurement.models import (
    GoodsReceipt,
    OutstandingLine,
    QualityStatus,
    ReceiptLineInput,
)
from procure_modules.procurement.orders import ENTITY, touch
from procure_modules.procurement.orm import (
    GoodsReceiptLineModel,
    GoodsReceiptModel,
    PurchaseOrderModel,
)
from procure_modules.procurement.stores import (
    GoodsReceiptStore,
    PurchaseOrderStore,
    as_uuid,
)
from procure_modules.procurement.workflows import PURCHASE_ORDER_WORKFLOW

logger = get_logger("modules.procurement.receiving")


def _quality_status(value: object, number: int, errors: list[str]) -> QualityStatus:
    if isinstance(value, QualityStatus):
        return value
    try:
        return QualityStatus(str(value).lower())
    except ValueError:
        errors.append(
            f"Receipt line {number}: unknown quality status {value!r}; expected one of "
            + ", ".join(status.value for status in QualityStatus)
        )
        return QualityStatus.ACCEPTED


class ReceivingEngine(BaseService[GoodsReceiptModel]):
    """Reconciles deliveries against purchase orders."""

    def __init__(
        self,
        session: Session,
        orders: PurchaseOrderStore,
        receipts: GoodsReceiptStore,
        sequences: SequenceService,
        clock: Clock,
        config: ProcurementConfig,
    ):
        super().__init__(session)
        self._orders = orders
        self._receipts = receipts
        self._sequences = sequences
        self._clock = clock
        self._config = config

    def receive(
        self,
        po_id: UUID,
        receipt_lines: Sequence[ReceiptLineInput | Mapping],
        actor_id: UUID,
        receipt_date: date | None = None,
        notes: str | None = None,
    ) -> GoodsReceiptModel:
        """
        Record one delivery against a purchase order.

        Preconditions, checked before anything changes:
            1. The order exists and is neither completed nor cancelled.
            2. Every line references a line of this order.
            3. Per order line, the summed quantity is a whole number between
               zero and the remaining quantity.
            4. At least one quantity is positive.

        Raises:
            PurchaseOrderNotFoundError, InvalidStateError,
            OrderLineNotFoundError, ValidationError.
        """
        model = self._orders.get_model(po_id, for_update=True)
        if "receive" not in PURCHASE_ORDER_WORKFLOW.actions_from(model.status):
            raise InvalidStateError(ENTITY, model.po_number, model.status, "receive against")

        inputs = [ReceiptLineInput.coerce(line) for line in receipt_lines]
        missing = [
            f"Receipt line {number}: po_line_id is required"
            for number, item in enumerate(inputs, start=1)
            if item.po_line_id is None or str(item.po_line_id).strip() == ""
        ]
        if missing:
            raise ValidationError(missing)
        plan = plan_receipt(
            po_id=str(model.id),
            status=model.status,
            lines=[
                LineProgress(
                    line_id=str(line.id),
                    ordered_quantity=line.ordered_quantity,
                    received_quantity=line.received_quantity,
                    label=f"{line.line_number} ({line.item_name})",
                )
                for line in model.lines
            ],
            requests=[
                RequestedQuantity(
                    line_id=str(as_uuid(item.po_line_id) or item.po_line_id),
                    quantity=item.quantity_received,
                )
                for item in inputs
            ],
        )

        errors: list[str] = []
        qualities = [
            _quality_status(item.quality_status, number, errors)
            for number, item in enumerate(inputs, start=1)
        ]
        if errors:
            raise ValidationError(errors)

        transition = PURCHASE_ORDER_WORKFLOW.find_transition(
            plan.status_before, "receive", plan.status_after,
        )
        if transition is None:
            raise InvalidStateError(ENTITY, model.po_number, model.status, "receive against")

        lines_by_id = {str(line.id): line for line in model.lines}
        for increment in plan.increments:
            lines_by_id[increment.line_id].received_quantity = increment.received_after
        model.status = transition.to_state
        touch(model, actor_id)

        receipt = GoodsReceiptModel(
            id=uuid4(),
            receipt_number=self._sequences.next_document_number(
                self._config.goods_receipt_prefix,
                str(self._clock.today().year),
                width=4,
            ),
            purchase_order_id=model.id,
            receipt_date=receipt_date or self._clock.today(),
            received_by=actor_id,
            status_before=plan.status_before,
            status_after=plan.status_after,
            notes=notes,
            recorded_at=self._clock.now(),
            created_by_id=actor_id,
        )
        for item, quality in zip(inputs, qualities):
            quantity = to_quantity(item.quantity_received)
            if quantity == 0:
                continue
            line = lines_by_id[str(as_uuid(item.po_line_id) or item.po_line_id)]
            receipt.lines.append(GoodsReceiptLineModel(
                id=uuid4(),
                po_line_id=line.id,
                quantity_received=quantity,
                quality_status=quality.value,
                notes=item.notes,
                created_by_id=actor_id,
            ))

        self._receipts.add(receipt)
        logger.info(
            "goods_receipt_recorded",
            extra={
                "po_id": str(model.id),
                "po_number": model.po_number,
                "receipt_number": receipt.receipt_number,
                "units_received": plan.total_quantity,
                "status_before": plan.status_before,
                "status_after": plan.status_after,
                "version": model.version,
            },
        )
        return receipt

    def get_receipt(self, receipt_id: UUID) -> GoodsReceipt:
        return self._receipts.get(receipt_id)

    def list_receipts(self, po_id: UUID | None = None) -> list[GoodsReceipt]:
        if po_id is not None:
            po_id = self._orders.get_model(po_id).id
        return self._receipts.find(po_id)

    def outstanding_lines(self, po_id: UUID) -> list[OutstandingLine]:
        """Remaining quantity for every line of the order."""
        model: PurchaseOrderModel = self._orders.get_model(po_id)
        return [
            OutstandingLine(
                po_line_id=line.id,
                line_number=line.line_number,
                item_name=line.item_name,
                ordered_quantity=line.ordered_quantity,
                received_quantity=line.received_quantity,
                remaining_quantity=line.ordered_quantity - line.received_quantity,
            )
            for line in model.lines
        ]
