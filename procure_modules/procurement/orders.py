"""
PurchaseOrderEditor -- purchase-order creation, editing, and manual status steps.

Responsibility:
    Creates purchase orders (ad hoc or derived from an approved requisition),
    edits their lines and terms while no goods have been received, and
    drives the manual pre-receipt steps (issue, confirm, start processing)
    plus cancellation through ``PURCHASE_ORDER_WORKFLOW``.

Architecture position:
    Modules layer.  Flush-only; ``ProcurementService`` owns commit/rollback
    and holds the per-PO lock around every call that touches an existing
    order.

Invariants enforced:
    - Totals are recomputed from the lines on every line change
      (``procure_engines.totals``); they are never accepted from callers.
    - Line edits only in draft/sent/confirmed.  Lines matched by id keep
      their received quantity; new lines start at zero; omitted lines are
      removed.
    - Cancellation keeps received quantities as they are.
    - A purchase order with goods receipts is never deleted.
"""

from collections.abc import Mapping, Sequence
from uuid import UUID, uuid4

from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified

from procure_engines.totals import PricedQuantity, compute_order_totals
from procure_kernel.domain.clock import Clock
from procure_kernel.exceptions import (
    InvalidStateError,
    OrderLineNotFoundError,
    ProjectNotFoundError,
    ReferencedEntityError,
    ValidationError,
    VendorNotFoundError,
)
from procure_kernel.logging_config import get_logger
from procure_kernel.services.base import BaseService
from procure_kernel.services.sequence_service import SequenceService
from procure_modules.procurement.config import ProcurementConfig
from procure_modules.procurement.models import (
    OrderLineInput,
    OrderTerms,
    POStatus,
)
from procure_modules.procurement.orm import PurchaseOrderLineModel, PurchaseOrderModel
from procure_modules.procurement.references import ReferenceDirectory
from procure_modules.procurement.stores import GoodsReceiptStore, PurchaseOrderStore
from procure_modules.procurement.validation import validate_order_lines
from procure_modules.procurement.workflows import (
    PO_EDITABLE_STATES,
    PURCHASE_ORDER_WORKFLOW,
)

logger = get_logger("modules.procurement.orders")

ENTITY = "purchase order"


def touch(model: PurchaseOrderModel, actor_id: UUID) -> None:
    """Mark the header changed so the flush bumps its version."""
    model.updated_by_id = actor_id
    flag_modified(model, "updated_by_id")


class PurchaseOrderEditor(BaseService[PurchaseOrderModel]):
    """Creates and edits purchase orders."""

    def __init__(
        self,
        session: Session,
        orders: PurchaseOrderStore,
        receipts: GoodsReceiptStore,
        sequences: SequenceService,
        clock: Clock,
        config: ProcurementConfig,
        directory: ReferenceDirectory,
    ):
        super().__init__(session)
        self._orders = orders
        self._receipts = receipts
        self._sequences = sequences
        self._clock = clock
        self._config = config
        self._directory = directory

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_order(
        self,
        vendor_id: str,
        project_id: str,
        lines: Sequence[OrderLineInput | Mapping],
        actor_id: UUID,
        terms: OrderTerms | Mapping | None = None,
        issue: bool = False,
        requisition_id: UUID | None = None,
    ) -> PurchaseOrderModel:
        """
        Create a purchase order in draft (or sent, when ``issue`` is true).

        Raises:
            VendorNotFoundError / ProjectNotFoundError: unknown reference.
            InvalidStateError: the vendor is inactive.
            ValidationError: any line is malformed.
        """
        self._require_vendor(vendor_id)
        if self._directory.get_project(project_id) is None:
            raise ProjectNotFoundError(str(project_id))
        validated = validate_order_lines(lines, self._config.default_unit)
        terms = OrderTerms.coerce(terms)

        po_number = self._sequences.next_document_number(
            self._config.purchase_order_prefix,
            self._clock.today().strftime("%Y%m%d"),
            width=3,
        )
        model = PurchaseOrderModel(
            id=uuid4(),
            po_number=po_number,
            requisition_id=requisition_id,
            vendor_id=str(vendor_id),
            project_id=str(project_id),
            order_date=terms.order_date or self._clock.today(),
            expected_delivery_date=terms.expected_delivery_date,
            shipping_address=terms.shipping_address,
            payment_terms=terms.payment_terms,
            notes=terms.notes,
            status=POStatus.DRAFT.value,
            created_by_id=actor_id,
        )
        model.lines = [
            self._new_line(number, line, actor_id)
            for number, line in enumerate(validated, start=1)
        ]
        self._apply_totals(model)
        if issue:
            self._transition(model, "issue")

        self._orders.add(model)
        logger.info(
            "purchase_order_created",
            extra={
                "po_id": str(model.id),
                "po_number": po_number,
                "vendor_id": str(vendor_id),
                "requisition_id": str(requisition_id) if requisition_id else None,
                "line_count": len(model.lines),
                "total_amount": str(model.total_amount),
                "status": model.status,
            },
        )
        return model

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def update_order(
        self,
        po_id: UUID,
        actor_id: UUID,
        lines: Sequence[OrderLineInput | Mapping] | None = None,
        terms: OrderTerms | Mapping | None = None,
    ) -> PurchaseOrderModel:
        """
        Replace lines and/or terms of an order that has not been received.

        ``lines=None`` keeps the current lines.  ``None`` fields in ``terms``
        keep their current values.

        Raises:
            InvalidStateError: status is not draft, sent, or confirmed.
            OrderLineNotFoundError: a ``line_id`` is not on this order.
            ValidationError: any line is malformed.
        """
        model = self._orders.get_model(po_id, for_update=True)
        if POStatus(model.status) not in PO_EDITABLE_STATES:
            raise InvalidStateError(ENTITY, model.po_number, model.status, "edit")
        terms = OrderTerms.coerce(terms)

        if lines is not None:
            self._replace_lines(model, validate_order_lines(lines, self._config.default_unit), actor_id)
            self._apply_totals(model)

        for name in ("order_date", "expected_delivery_date", "shipping_address",
                     "payment_terms", "notes"):
            value = getattr(terms, name)
            if value is not None:
                setattr(model, name, value)

        touch(model, actor_id)
        self.session.flush()
        logger.info(
            "purchase_order_updated",
            extra={
                "po_id": str(model.id),
                "po_number": model.po_number,
                "line_count": len(model.lines),
                "total_amount": str(model.total_amount),
                "version": model.version,
            },
        )
        return model

    def _replace_lines(
        self,
        model: PurchaseOrderModel,
        validated: list[OrderLineInput],
        actor_id: UUID,
    ) -> None:
        existing = {str(line.id): line for line in model.lines}
        for line in validated:
            if line.line_id is not None and str(line.line_id) not in existing:
                raise OrderLineNotFoundError(str(line.line_id), str(model.id))

        errors: list[str] = []
        replacement: list[PurchaseOrderLineModel] = []
        for number, line in enumerate(validated, start=1):
            if line.line_id is None:
                replacement.append(self._new_line(number, line, actor_id))
                continue
            current = existing[str(line.line_id)]
            if line.ordered_quantity < current.received_quantity:
                errors.append(
                    f"Line {number}: ordered quantity {line.ordered_quantity} is below "
                    f"the {current.received_quantity} already received"
                )
            current.line_number = number
            current.item_name = line.item_name
            current.description = line.description
            current.category = line.category
            current.ordered_quantity = line.ordered_quantity
            current.unit = line.unit
            current.unit_price = line.unit_price
            current.updated_by_id = actor_id
            replacement.append(current)
        if errors:
            raise ValidationError(errors)

        removed = len(existing) - sum(1 for line in validated if line.line_id is not None)
        model.lines = replacement
        logger.debug(
            "purchase_order_lines_replaced",
            extra={
                "po_id": str(model.id),
                "line_count": len(replacement),
                "removed_count": removed,
            },
        )

    # ------------------------------------------------------------------
    # Status steps
    # ------------------------------------------------------------------

    def issue_order(self, po_id: UUID, actor_id: UUID) -> PurchaseOrderModel:
        """draft -> sent."""
        return self._step(po_id, "issue", actor_id)

    def confirm_order(self, po_id: UUID, actor_id: UUID) -> PurchaseOrderModel:
        """sent -> confirmed (vendor acknowledged)."""
        return self._step(po_id, "confirm", actor_id)

    def start_processing(self, po_id: UUID, actor_id: UUID) -> PurchaseOrderModel:
        """confirmed -> processing (vendor fulfilling)."""
        return self._step(po_id, "start_processing", actor_id)

    def cancel_order(
        self,
        po_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
    ) -> PurchaseOrderModel:
        """Cancel from any non-terminal status.  Received quantities stay."""
        model = self._orders.get_model(po_id, for_update=True)
        self._transition(model, "cancel")
        model.cancellation_reason = reason
        touch(model, actor_id)
        self.session.flush()
        logger.info(
            "purchase_order_cancelled",
            extra={
                "po_id": str(model.id),
                "po_number": model.po_number,
                "received_units": sum(line.received_quantity for line in model.lines),
            },
        )
        return model

    def delete_order(self, po_id: UUID, actor_id: UUID) -> None:
        """
        Hard-delete an order that never received goods.

        Raises:
            ReferencedEntityError: goods receipts exist for the order.
        """
        model = self._orders.get_model(po_id, for_update=True)
        if self._receipts.exists_for_order(model.id):
            raise ReferencedEntityError(
                ENTITY, model.po_number,
                "goods receipts have been recorded against it",
            )
        self._orders.delete(model)
        logger.info(
            "purchase_order_deleted",
            extra={
                "po_id": str(model.id),
                "po_number": model.po_number,
                "deleted_by": str(actor_id),
            },
        )

    def _step(self, po_id: UUID, action: str, actor_id: UUID) -> PurchaseOrderModel:
        model = self._orders.get_model(po_id, for_update=True)
        previous = self._transition(model, action)
        touch(model, actor_id)
        self.session.flush()
        logger.info(
            "purchase_order_status_changed",
            extra={
                "po_id": str(model.id),
                "po_number": model.po_number,
                "action": action,
                "from_status": previous,
                "to_status": model.status,
            },
        )
        return model

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _transition(self, model: PurchaseOrderModel, action: str) -> str:
        transition = PURCHASE_ORDER_WORKFLOW.find_transition(model.status, action)
        if transition is None:
            raise InvalidStateError(ENTITY, model.po_number, model.status, action)
        previous = model.status
        model.status = transition.to_state
        return previous

    def _require_vendor(self, vendor_id: str) -> None:
        vendor = self._directory.get_vendor(vendor_id)
        if vendor is None:
            raise VendorNotFoundError(str(vendor_id))
        if self._config.require_active_vendor and not vendor.is_active:
            raise InvalidStateError("vendor", str(vendor_id), "inactive", "order from")

    def _apply_totals(self, model: PurchaseOrderModel) -> None:
        totals = compute_order_totals(
            lines=[
                PricedQuantity(quantity=line.ordered_quantity, unit_price=line.unit_price)
                for line in model.lines
            ],
            tax_rate=self._config.tax_rate,
        )
        model.subtotal = totals.subtotal
        model.tax_amount = totals.tax_amount
        model.total_amount = totals.total_amount

    @staticmethod
    def _new_line(number: int, line: OrderLineInput, actor_id: UUID) -> PurchaseOrderLineModel:
        return PurchaseOrderLineModel(
            id=uuid4(),
            line_number=number,
            item_name=line.item_name,
            description=line.description,
            category=line.category,
            ordered_quantity=line.ordered_quantity,
            unit=line.unit,
            unit_price=line.unit_price,
            received_quantity=0,
            requisition_line_id=line.requisition_line_id,
            created_by_id=actor_id,
        )
