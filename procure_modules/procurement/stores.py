"""
Procurement stores -- persistence access for requisitions, purchase orders,
and goods receipts.

Responsibility:
    Load, add, list, and delete ORM records.  Stores know nothing about
    status rules; the approval engine, purchase-order editor, and receiving
    engine decide what may change.  Like every kernel service, stores only
    flush -- ``ProcurementService`` owns commit and rollback.

Row locking:
    ``get_model(..., for_update=True)`` on either store issues
    ``SELECT ... FOR UPDATE`` and refreshes the identity map, so a caller
    that waited on the per-PO lock, or on a competing approver's row lock,
    always validates against committed state.
"""

from uuid import UUID

from sqlalchemy import exists, select
from sqlalchemy.orm import Session

from procure_kernel.exceptions import (
    PurchaseOrderNotFoundError,
    ReceiptNotFoundError,
    RequisitionNotFoundError,
)
from procure_kernel.logging_config import get_logger
from procure_kernel.services.base import BaseService
from procure_modules.procurement.models import (
    GoodsReceipt,
    POStatus,
    PurchaseOrder,
    Requisition,
    RequisitionStatus,
)
from procure_modules.procurement.orm import (
    GoodsReceiptModel,
    PurchaseOrderModel,
    RequisitionModel,
)

logger = get_logger("modules.procurement.stores")


def as_uuid(value: object) -> UUID | None:
    """Parse an identifier; ``None`` when it is not a UUID."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


def _status_value(status: object) -> str:
    return status.value if hasattr(status, "value") else str(status)


class RequisitionStore(BaseService[RequisitionModel]):
    """Requisition headers and lines."""

    def __init__(self, session: Session):
        super().__init__(session)

    def add(self, model: RequisitionModel) -> RequisitionModel:
        self.session.add(model)
        self.session.flush()
        return model

    def get_model(self, requisition_id: object, for_update: bool = False) -> RequisitionModel:
        key = as_uuid(requisition_id)
        model = None
        if key is not None:
            query = select(RequisitionModel).where(RequisitionModel.id == key)
            if for_update:
                query = query.with_for_update().execution_options(populate_existing=True)
            model = self.session.execute(query).scalar_one_or_none()
        if model is None:
            raise RequisitionNotFoundError(str(requisition_id))
        return model

    def derived_order_id(self, requisition_id: UUID) -> UUID | None:
        """The purchase order derived from this requisition, if any."""
        return self.session.execute(
            select(PurchaseOrderModel.id)
            .where(PurchaseOrderModel.requisition_id == requisition_id)
        ).scalar_one_or_none()

    def to_dto(self, model: RequisitionModel) -> Requisition:
        return model.to_dto(purchase_order_id=self.derived_order_id(model.id))

    def get(self, requisition_id: object) -> Requisition:
        return self.to_dto(self.get_model(requisition_id))

    def find(
        self,
        status: RequisitionStatus | str | None = None,
        project_id: str | None = None,
        requester_id: UUID | None = None,
    ) -> list[Requisition]:
        query = select(RequisitionModel).order_by(RequisitionModel.requisition_number)
        if status is not None:
            query = query.where(RequisitionModel.status == _status_value(status))
        if project_id is not None:
            query = query.where(RequisitionModel.project_id == str(project_id))
        if requester_id is not None:
            query = query.where(RequisitionModel.requester_id == requester_id)
        models = self.session.execute(query).scalars().all()
        if not models:
            return []

        derived = dict(self.session.execute(
            select(PurchaseOrderModel.requisition_id, PurchaseOrderModel.id)
            .where(PurchaseOrderModel.requisition_id.in_([m.id for m in models]))
        ).all())
        return [m.to_dto(purchase_order_id=derived.get(m.id)) for m in models]

    def delete(self, model: RequisitionModel) -> None:
        self.session.delete(model)
        self.session.flush()


class PurchaseOrderStore(BaseService[PurchaseOrderModel]):
    """Purchase order headers and lines."""

    def __init__(self, session: Session):
        super().__init__(session)

    def add(self, model: PurchaseOrderModel) -> PurchaseOrderModel:
        self.session.add(model)
        self.session.flush()
        return model

    def get_model(self, po_id: object, for_update: bool = False) -> PurchaseOrderModel:
        key = as_uuid(po_id)
        model = None
        if key is not None:
            query = select(PurchaseOrderModel).where(PurchaseOrderModel.id == key)
            if for_update:
                query = query.with_for_update().execution_options(populate_existing=True)
            model = self.session.execute(query).scalar_one_or_none()
        if model is None:
            raise PurchaseOrderNotFoundError(str(po_id))
        return model

    def get(self, po_id: object) -> PurchaseOrder:
        return self.get_model(po_id).to_dto()

    def find(
        self,
        status: POStatus | str | None = None,
        vendor_id: str | None = None,
        project_id: str | None = None,
    ) -> list[PurchaseOrder]:
        query = select(PurchaseOrderModel).order_by(PurchaseOrderModel.po_number)
        if status is not None:
            query = query.where(PurchaseOrderModel.status == _status_value(status))
        if vendor_id is not None:
            query = query.where(PurchaseOrderModel.vendor_id == str(vendor_id))
        if project_id is not None:
            query = query.where(PurchaseOrderModel.project_id == str(project_id))
        return [m.to_dto() for m in self.session.execute(query).scalars().all()]

    def delete(self, model: PurchaseOrderModel) -> None:
        self.session.delete(model)
        self.session.flush()


class GoodsReceiptStore(BaseService[GoodsReceiptModel]):
    """Append-only goods receipts."""

    def __init__(self, session: Session):
        super().__init__(session)

    def add(self, model: GoodsReceiptModel) -> GoodsReceiptModel:
        self.session.add(model)
        self.session.flush()
        return model

    def exists_for_order(self, po_id: UUID) -> bool:
        return bool(self.session.execute(
            select(exists().where(GoodsReceiptModel.purchase_order_id == po_id))
        ).scalar())

    def get(self, receipt_id: object) -> GoodsReceipt:
        key = as_uuid(receipt_id)
        model = self.session.get(GoodsReceiptModel, key) if key is not None else None
        if model is None:
            raise ReceiptNotFoundError(str(receipt_id))
        return model.to_dto()

    def find(self, po_id: UUID | None = None) -> list[GoodsReceipt]:
        query = select(GoodsReceiptModel).order_by(
            GoodsReceiptModel.recorded_at, GoodsReceiptModel.receipt_number,
        )
        if po_id is not None:
            query = query.where(GoodsReceiptModel.purchase_order_id == po_id)
        return [m.to_dto() for m in self.session.execute(query).scalars().all()]
