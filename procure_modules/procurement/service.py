"""
Procurement Module Service (``procure_modules.procurement.service``).

Responsibility
--------------
Single entry point for the procurement lifecycle: requisition approval,
purchase-order issuance and editing, goods-receipt reconciliation, and
spend reporting.  Wires the stores and engines onto one session and owns
the transaction boundary.

Architecture position
---------------------
**Modules layer** -- thin glue.  ``ProcurementService`` composes
``ApprovalEngine``, ``PurchaseOrderEditor``, ``ReceivingEngine`` and
``ReportingAggregator``.  None of them commit; this class does.

Invariants enforced
-------------------
* Each public method owns the transaction boundary (``commit`` on
  success, ``rollback`` on any exception, then re-raise).
* Every call that mutates an existing purchase order runs under that
  order's ``EntityLockRegistry`` lock.  The lock covers validate, mutate,
  and commit only.
* Read methods end their transaction so no database lock outlives the call.
* Actor identity is always an explicit ``actor_id`` argument.

Failure modes
-------------
* Domain errors (``ValidationError``, ``InvalidStateError``,
  ``NotFoundError``, ``ConflictError``) propagate unchanged after rollback.
* ``StaleDataError`` (version mismatch)  -> ``OptimisticLockError``.
* Database lock timeout or deadlock  -> ``LockTimeoutError``.
* Per-PO lock not acquired in time  -> ``LockTimeoutError``.

Usage::

    service = ProcurementService(session, directory, clock=clock)
    req = service.create_requisition(
        project_id="PRJ-1", requester_id=actor,
        lines=[{"item_name": "Cement", "quantity": 10, "estimated_unit_price": "8.50"}],
        submit=True,
    )
    service.approve(req.id, approver_id=manager, notes="ok")
    po = service.derive_draft_po(req.id, vendor_id="V-1", actor_id=buyer)
    service.issue_order(po.id, actor_id=buyer)
    service.receive(po.id, [{"po_line_id": po.lines[0].id, "quantity_received": 4}],
                    actor_id=storekeeper)
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager, nullcontext
from datetime import date
from uuid import UUID

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from procure_kernel.db.immutability import register_immutability_listeners
from procure_kernel.domain.clock import Clock, SystemClock
from procure_kernel.exceptions import LockTimeoutError, OptimisticLockError
from procure_kernel.logging_config import LogContext, get_logger
from procure_kernel.services.lock_service import EntityLockRegistry, get_lock_registry
from procure_kernel.services.sequence_service import SequenceService
from procure_modules.procurement.approval import ApprovalEngine
from procure_modules.procurement.config import ProcurementConfig
from procure_modules.procurement.models import (
    GoodsReceipt,
    OrderLineInput,
    OrderTerms,
    OutstandingLine,
    POStatus,
    PurchaseOrder,
    ReceiptLineInput,
    Requisition,
    RequisitionLineInput,
    RequisitionStatus,
    SpendReport,
)
from procure_modules.procurement.orders import ENTITY as PO_ENTITY
from procure_modules.procurement.orders import PurchaseOrderEditor
from procure_modules.procurement.receiving import ReceivingEngine
from procure_modules.procurement.references import ReferenceDirectory
from procure_modules.procurement.reporting import ReportingAggregator, SpendReportCache
from procure_modules.procurement.stores import (
    GoodsReceiptStore,
    PurchaseOrderStore,
    RequisitionStore,
    as_uuid,
)

logger = get_logger("modules.procurement.service")

# SQLSTATE codes for lock_not_available and deadlock_detected
_PG_LOCK_CODES = frozenset({"55P03", "40P01"})


def _is_lock_failure(exc: OperationalError) -> bool:
    if getattr(exc.orig, "pgcode", None) in _PG_LOCK_CODES:
        return True
    return "database is locked" in str(exc.orig).lower()


class ProcurementService:
    """
    Orchestrates procurement operations through stores and engines.

    Contract
    --------
    * Returns frozen DTOs from ``procure_modules.procurement.models``.
    * One instance per session.  Share a ``SpendReportCache`` across
      instances to reuse reports between requests.

    Guarantees
    ----------
    * Session is committed only when the operation succeeds.
    * Clock, config, lock registry, and reference directory are injectable.
    """

    def __init__(
        self,
        session: Session,
        directory: ReferenceDirectory,
        clock: Clock | None = None,
        config: ProcurementConfig | None = None,
        lock_registry: EntityLockRegistry | None = None,
        report_cache: SpendReportCache | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or ProcurementConfig.with_defaults()
        self._locks = lock_registry or get_lock_registry()
        self._report_cache = report_cache or SpendReportCache()

        register_immutability_listeners()

        sequences = SequenceService(session)
        self._requisitions = RequisitionStore(session)
        self._orders = PurchaseOrderStore(session)
        self._receipts = GoodsReceiptStore(session)

        self._editor = PurchaseOrderEditor(
            session, self._orders, self._receipts, sequences,
            self._clock, self._config, directory,
        )
        self._approval = ApprovalEngine(
            session, self._requisitions, self._editor, sequences,
            self._clock, self._config, directory,
        )
        self._receiving = ReceivingEngine(
            session, self._orders, self._receipts, sequences,
            self._clock, self._config,
        )
        self._reporting = ReportingAggregator(
            session, directory, self._clock, self._config, self._report_cache,
        )

    # =========================================================================
    # Transaction plumbing
    # =========================================================================

    @contextmanager
    def _write(
        self,
        operation: str,
        actor_id: UUID,
        po_id: UUID | None = None,
    ) -> Iterator[None]:
        """Run one mutating operation: lock, commit or roll back, log."""
        if po_id is not None:
            # one lock per order however the caller spells its id
            po_id = as_uuid(po_id) or po_id
        lock = (
            self._locks.hold(PO_ENTITY, po_id, self._config.lock_timeout_seconds)
            if po_id is not None
            else nullcontext()
        )
        with LogContext.bind(operation=operation, actor_id=actor_id, entity_id=po_id):
            with lock:
                try:
                    yield
                    self._session.commit()
                except StaleDataError as exc:
                    self._session.rollback()
                    logger.warning("procurement_optimistic_lock_conflict", exc_info=True)
                    raise OptimisticLockError(PO_ENTITY, str(po_id)) from exc
                except OperationalError as exc:
                    self._session.rollback()
                    if _is_lock_failure(exc):
                        logger.warning("procurement_database_lock_timeout", exc_info=True)
                        raise LockTimeoutError(
                            PO_ENTITY if po_id is not None else "database",
                            str(po_id) if po_id is not None else operation,
                            self._config.lock_timeout_seconds,
                        ) from exc
                    raise
                except Exception:
                    self._session.rollback()
                    logger.info(
                        "procurement_operation_rolled_back",
                        extra={"operation": operation},
                        exc_info=True,
                    )
                    raise
                finally:
                    self._session.expire_all()
            self._report_cache.invalidate()
            logger.info("procurement_operation_committed", extra={"operation": operation})

    @contextmanager
    def _read(self) -> Iterator[None]:
        try:
            yield
        finally:
            self._session.rollback()

    # =========================================================================
    # Requisitions
    # =========================================================================

    def create_requisition(
        self,
        project_id: str,
        requester_id: UUID,
        lines: Sequence[RequisitionLineInput | Mapping],
        required_by: date | None = None,
        notes: str | None = None,
        submit: bool = False,
    ) -> Requisition:
        """Create a requisition in draft, or pending with ``submit=True``."""
        logger.info("procurement_requisition_started", extra={
            "project_id": str(project_id),
            "line_count": len(lines),
            "submit": submit,
        })
        with self._write("create_requisition", requester_id):
            model = self._approval.create_requisition(
                project_id, requester_id, lines,
                required_by=required_by, notes=notes, submit=submit,
            )
            result = self._requisitions.to_dto(model)
        return result

    def submit_for_approval(self, requisition_id: UUID, actor_id: UUID) -> Requisition:
        with self._write("submit_for_approval", actor_id):
            result = self._requisitions.to_dto(
                self._approval.submit_for_approval(requisition_id, actor_id)
            )
        return result

    def approve(
        self,
        requisition_id: UUID,
        approver_id: UUID,
        notes: str | None = None,
    ) -> Requisition:
        with self._write("approve_requisition", approver_id):
            result = self._requisitions.to_dto(
                self._approval.approve(requisition_id, approver_id, notes)
            )
        return result

    def reject(
        self,
        requisition_id: UUID,
        approver_id: UUID,
        notes: str | None = None,
    ) -> Requisition:
        with self._write("reject_requisition", approver_id):
            result = self._requisitions.to_dto(
                self._approval.reject(requisition_id, approver_id, notes)
            )
        return result

    def derive_draft_po(
        self,
        requisition_id: UUID,
        vendor_id: str,
        actor_id: UUID,
        terms: OrderTerms | Mapping | None = None,
    ) -> PurchaseOrder:
        """Create the single draft PO for an approved requisition."""
        logger.info("procurement_derivation_started", extra={
            "requisition_id": str(requisition_id),
            "vendor_id": str(vendor_id),
        })
        with self._write("derive_draft_po", actor_id):
            result = self._approval.derive_draft_po(
                requisition_id, vendor_id, actor_id, terms,
            ).to_dto()
        return result

    def delete_requisition(self, requisition_id: UUID, actor_id: UUID) -> None:
        with self._write("delete_requisition", actor_id):
            self._approval.delete_requisition(requisition_id, actor_id)

    def get_requisition(self, requisition_id: UUID) -> Requisition:
        with self._read():
            return self._requisitions.get(requisition_id)

    def list_requisitions(
        self,
        status: RequisitionStatus | str | None = None,
        project_id: str | None = None,
        requester_id: UUID | None = None,
    ) -> list[Requisition]:
        with self._read():
            return self._requisitions.find(status, project_id, requester_id)

    # =========================================================================
    # Purchase orders
    # =========================================================================

    def create_order(
        self,
        vendor_id: str,
        project_id: str,
        lines: Sequence[OrderLineInput | Mapping],
        actor_id: UUID,
        terms: OrderTerms | Mapping | None = None,
        issue: bool = False,
    ) -> PurchaseOrder:
        """Create an ad hoc purchase order (draft, or sent with ``issue=True``)."""
        logger.info("procurement_po_started", extra={
            "vendor_id": str(vendor_id),
            "project_id": str(project_id),
            "line_count": len(lines),
        })
        with self._write("create_order", actor_id):
            result = self._editor.create_order(
                vendor_id, project_id, lines, actor_id, terms, issue=issue,
            ).to_dto()
        return result

    def update_order(
        self,
        po_id: UUID,
        actor_id: UUID,
        lines: Sequence[OrderLineInput | Mapping] | None = None,
        terms: OrderTerms | Mapping | None = None,
    ) -> PurchaseOrder:
        with self._write("update_order", actor_id, po_id):
            result = self._editor.update_order(po_id, actor_id, lines, terms).to_dto()
        return result

    def issue_order(self, po_id: UUID, actor_id: UUID) -> PurchaseOrder:
        with self._write("issue_order", actor_id, po_id):
            result = self._editor.issue_order(po_id, actor_id).to_dto()
        return result

    def confirm_order(self, po_id: UUID, actor_id: UUID) -> PurchaseOrder:
        with self._write("confirm_order", actor_id, po_id):
            result = self._editor.confirm_order(po_id, actor_id).to_dto()
        return result

    def start_processing(self, po_id: UUID, actor_id: UUID) -> PurchaseOrder:
        with self._write("start_processing", actor_id, po_id):
            result = self._editor.start_processing(po_id, actor_id).to_dto()
        return result

    def cancel_order(
        self,
        po_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
    ) -> PurchaseOrder:
        with self._write("cancel_order", actor_id, po_id):
            result = self._editor.cancel_order(po_id, actor_id, reason).to_dto()
        return result

    def delete_order(self, po_id: UUID, actor_id: UUID) -> None:
        with self._write("delete_order", actor_id, po_id):
            self._editor.delete_order(po_id, actor_id)

    def get_order(self, po_id: UUID) -> PurchaseOrder:
        with self._read():
            return self._orders.get(po_id)

    def list_orders(
        self,
        status: POStatus | str | None = None,
        vendor_id: str | None = None,
        project_id: str | None = None,
    ) -> list[PurchaseOrder]:
        with self._read():
            return self._orders.find(status, vendor_id, project_id)

    # =========================================================================
    # Receiving
    # =========================================================================

    def receive(
        self,
        po_id: UUID,
        receipt_lines: Sequence[ReceiptLineInput | Mapping],
        actor_id: UUID,
        receipt_date: date | None = None,
        notes: str | None = None,
    ) -> GoodsReceipt:
        """Record a delivery; all-or-nothing under the order's lock."""
        logger.info("procurement_receive_started", extra={
            "po_id": str(po_id),
            "line_count": len(receipt_lines),
        })
        with self._write("receive", actor_id, po_id):
            result = self._receiving.receive(
                po_id, receipt_lines, actor_id,
                receipt_date=receipt_date, notes=notes,
            ).to_dto()
        return result

    def get_receipt(self, receipt_id: UUID) -> GoodsReceipt:
        with self._read():
            return self._receiving.get_receipt(receipt_id)

    def list_receipts(self, po_id: UUID | None = None) -> list[GoodsReceipt]:
        with self._read():
            return self._receiving.list_receipts(po_id)

    def outstanding_lines(self, po_id: UUID) -> list[OutstandingLine]:
        with self._read():
            return self._receiving.outstanding_lines(po_id)

    # =========================================================================
    # Reporting
    # =========================================================================

    def spend_summary(self, start_date: date, end_date: date) -> SpendReport:
        with self._read():
            return self._reporting.spend_summary(start_date, end_date)
