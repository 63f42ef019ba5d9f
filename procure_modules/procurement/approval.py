"""
ApprovalEngine -- requisition state machine and PO derivation.

Responsibility:
    Creates requisitions, moves them through draft -> pending ->
    approved | rejected per ``REQUISITION_WORKFLOW``, derives at most one
    draft purchase order from an approved requisition, and guards
    requisition deletion.

Architecture position:
    Modules layer.  Flush-only; ``ProcurementService`` owns commit/rollback.

Invariants enforced:
    - Approved and rejected requisitions are terminal.
    - approver_id, approval_notes, and decided_at are set only by a decision.
    - One purchase order per requisition: checked explicitly and backed by
      the unique constraint on ``purchase_orders.requisition_id``.  A
      concurrent derivation that loses the race surfaces as
      ``DuplicateDerivationError``.
    - A requisition with a derived purchase order is never deleted; an
      approved or rejected one is never deleted either.
"""

from collections.abc import Mapping, Sequence
from datetime import date
from uuid import UUID, uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from procure_kernel.domain.clock import Clock
from procure_kernel.exceptions import (
    DuplicateDerivationError,
    InvalidStateError,
    ProjectNotFoundError,
    ReferencedEntityError,
)
from procure_kernel.logging_config import get_logger
from procure_kernel.services.base import BaseService
from procure_kernel.services.sequence_service import SequenceService
from procure_modules.procurement.config import ProcurementConfig
from procure_modules.procurement.models import (
    OrderLineInput,
    OrderTerms,
    RequisitionLineInput,
    RequisitionStatus,
)
from procure_modules.procurement.orders import PurchaseOrderEditor
from procure_modules.procurement.orm import (
    PurchaseOrderModel,
    RequisitionLineModel,
    RequisitionModel,
)
from procure_modules.procurement.references import ReferenceDirectory
from procure_modules.procurement.stores import RequisitionStore
from procure_modules.procurement.validation import validate_requisition_lines
from procure_modules.procurement.workflows import (
    REQUISITION_DELETABLE_STATES,
    REQUISITION_WORKFLOW,
)

logger = get_logger("modules.procurement.approval")

ENTITY = "requisition"


def _is_requisition_conflict(exc: IntegrityError) -> bool:
    text = str(exc.orig)
    return "uq_purchase_order_requisition" in text or "requisition_id" in text


class ApprovalEngine(BaseService[RequisitionModel]):
    """Applies the requisition workflow."""

    def __init__(
        self,
        session: Session,
        requisitions: RequisitionStore,
        editor: PurchaseOrderEditor,
        sequences: SequenceService,
        clock: Clock,
        config: ProcurementConfig,
        directory: ReferenceDirectory,
    ):
        super().__init__(session)
        self._requisitions = requisitions
        self._editor = editor
        self._sequences = sequences
        self._clock = clock
        self._config = config
        self._directory = directory

    def create_requisition(
        self,
        project_id: str,
        requester_id: UUID,
        lines: Sequence[RequisitionLineInput | Mapping],
        required_by: date | None = None,
        notes: str | None = None,
        submit: bool = False,
    ) -> RequisitionModel:
        """
        Create a requisition in draft, or pending when ``submit`` is true.

        Raises:
            ProjectNotFoundError: the project is unknown.
            ValidationError: no lines, or any malformed line.
        """
        if self._directory.get_project(project_id) is None:
            raise ProjectNotFoundError(str(project_id))
        validated = validate_requisition_lines(lines, self._config.default_unit)

        number = self._sequences.next_document_number(
            self._config.requisition_prefix,
            self._clock.today().strftime("%Y%m%d"),
            width=3,
        )
        model = RequisitionModel(
            id=uuid4(),
            requisition_number=number,
            project_id=str(project_id),
            requester_id=requester_id,
            required_by=required_by,
            notes=notes,
            status=REQUISITION_WORKFLOW.initial_state,
            created_by_id=requester_id,
        )
        model.lines = [
            RequisitionLineModel(
                id=uuid4(),
                line_number=line_number,
                item_name=line.item_name,
                description=line.description,
                quantity=line.quantity,
                unit=line.unit,
                estimated_unit_price=line.estimated_unit_price,
                category=line.category,
                created_by_id=requester_id,
            )
            for line_number, line in enumerate(validated, start=1)
        ]
        if submit:
            self._transition(model, "submit")

        self._requisitions.add(model)
        logger.info(
            "requisition_created",
            extra={
                "requisition_id": str(model.id),
                "requisition_number": number,
                "project_id": str(project_id),
                "line_count": len(model.lines),
                "status": model.status,
            },
        )
        return model

    def submit_for_approval(self, requisition_id: UUID, actor_id: UUID) -> RequisitionModel:
        """draft -> pending."""
        model = self._requisitions.get_model(requisition_id, for_update=True)
        self._transition(model, "submit")
        model.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "requisition_submitted",
            extra={"requisition_id": str(model.id), "actor_id": str(actor_id)},
        )
        return model

    def approve(
        self,
        requisition_id: UUID,
        approver_id: UUID,
        notes: str | None = None,
    ) -> RequisitionModel:
        """pending -> approved; records the approver, notes, and time."""
        return self._decide(requisition_id, "approve", approver_id, notes)

    def reject(
        self,
        requisition_id: UUID,
        approver_id: UUID,
        notes: str | None = None,
    ) -> RequisitionModel:
        """pending -> rejected; records the approver, notes, and time."""
        return self._decide(requisition_id, "reject", approver_id, notes)

    def _decide(
        self,
        requisition_id: UUID,
        action: str,
        approver_id: UUID,
        notes: str | None,
    ) -> RequisitionModel:
        model = self._requisitions.get_model(requisition_id, for_update=True)
        self._transition(model, action)
        model.approver_id = approver_id
        model.approval_notes = notes
        model.decided_at = self._clock.now()
        model.updated_by_id = approver_id
        self.session.flush()
        logger.info(
            "requisition_decided",
            extra={
                "requisition_id": str(model.id),
                "requisition_number": model.requisition_number,
                "decision": model.status,
                "approver_id": str(approver_id),
            },
        )
        return model

    def derive_draft_po(
        self,
        requisition_id: UUID,
        vendor_id: str,
        actor_id: UUID,
        terms: OrderTerms | Mapping | None = None,
    ) -> PurchaseOrderModel:
        """
        Create the draft purchase order for an approved requisition.

        Lines are copied one to one: quantity unchanged, estimated price as
        the unit price, and the requisition line recorded on each PO line.

        Raises:
            InvalidStateError: the requisition is not approved.
            DuplicateDerivationError: a PO was already derived from it.
        """
        model = self._requisitions.get_model(requisition_id, for_update=True)
        if RequisitionStatus(model.status) is not RequisitionStatus.APPROVED:
            raise InvalidStateError(
                ENTITY, model.requisition_number, model.status,
                "derive a purchase order from",
            )
        existing = self._requisitions.derived_order_id(model.id)
        if existing is not None:
            raise DuplicateDerivationError(str(model.id), str(existing))

        lines = [
            OrderLineInput(
                item_name=line.item_name,
                ordered_quantity=line.quantity,
                unit_price=line.estimated_unit_price,
                unit=line.unit,
                description=line.description,
                category=line.category,
                requisition_line_id=line.id,
            )
            for line in model.lines
        ]
        try:
            order = self._editor.create_order(
                vendor_id=vendor_id,
                project_id=model.project_id,
                lines=lines,
                actor_id=actor_id,
                terms=terms,
                requisition_id=model.id,
            )
        except IntegrityError as exc:
            if _is_requisition_conflict(exc):
                raise DuplicateDerivationError(str(model.id)) from exc
            raise

        logger.info(
            "purchase_order_derived",
            extra={
                "requisition_id": str(model.id),
                "po_id": str(order.id),
                "po_number": order.po_number,
            },
        )
        return order

    def delete_requisition(self, requisition_id: UUID, actor_id: UUID) -> None:
        """
        Delete a draft or pending requisition.

        Raises:
            ReferencedEntityError: a purchase order was derived from it.
            InvalidStateError: it is approved or rejected.
        """
        model = self._requisitions.get_model(requisition_id, for_update=True)
        derived = self._requisitions.derived_order_id(model.id)
        if derived is not None:
            raise ReferencedEntityError(
                ENTITY, model.requisition_number,
                f"purchase order {derived} was derived from it",
            )
        if RequisitionStatus(model.status) not in REQUISITION_DELETABLE_STATES:
            raise InvalidStateError(ENTITY, model.requisition_number, model.status, "delete")

        self._requisitions.delete(model)
        logger.info(
            "requisition_deleted",
            extra={
                "requisition_id": str(model.id),
                "requisition_number": model.requisition_number,
                "deleted_by": str(actor_id),
            },
        )

    def _transition(self, model: RequisitionModel, action: str) -> None:
        transition = REQUISITION_WORKFLOW.find_transition(model.status, action)
        if transition is None:
            raise InvalidStateError(ENTITY, model.requisition_number, model.status, action)
        model.status = transition.to_state
