"""
SQLAlchemy ORM persistence models for the Procurement module.

Responsibility
--------------
Database-backed persistence for requisitions, purchase orders, and goods
receipts, each with its lines.  Vendors and projects are owned by
collaborators; references to them are ``String(100)`` columns with NO
foreign key constraints.

Architecture position
---------------------
**Modules layer** -- ORM models consumed by the procurement stores and
engines.  Inherits from ``TrackedBase`` (kernel db layer).

Invariants enforced
-------------------
* All monetary fields use ``Decimal`` (Numeric(38,9)) -- NEVER float.
* Status fields stored as String(50).
* ``0 <= received_quantity <= ordered_quantity`` and ``ordered_quantity > 0``
  are CHECK constraints, so no writer can break them.
* At most one purchase order per requisition (unique ``requisition_id``).
* ``PurchaseOrderModel.version`` is the optimistic lock column; every flush
  that touches the header bumps it and verifies the previous value.
* Goods receipts and their lines are append-only (see
  ``procure_kernel.db.immutability``).
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from procure_kernel.db.base import TrackedBase

# ---------------------------------------------------------------------------
# RequisitionModel
# ---------------------------------------------------------------------------


class RequisitionModel(TrackedBase):
    """
    A purchase requisition (internal request to procure goods).

    Maps to the ``Requisition`` DTO in ``procure_modules.procurement.models``.

    Guarantees:
        - ``requisition_number`` is unique.
        - ``approver_id`` and ``decided_at`` are set only once the
          requisition is approved or rejected.
    """

    __tablename__ = "procurement_requisitions"

    __table_args__ = (
        UniqueConstraint("requisition_number", name="uq_requisition_number"),
        Index("idx_requisition_status", "status"),
        Index("idx_requisition_project", "project_id"),
        Index("idx_requisition_requester", "requester_id"),
    )

    requisition_number: Mapped[str] = mapped_column(String(50), nullable=False)
    project_id: Mapped[str] = mapped_column(String(100), nullable=False)
    requester_id: Mapped[UUID]
    required_by: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="draft")
    approver_id: Mapped[UUID | None]
    approval_notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    decided_at: Mapped[datetime | None]

    lines: Mapped[list["RequisitionLineModel"]] = relationship(
        "RequisitionLineModel",
        back_populates="requisition",
        cascade="all, delete-orphan",
        order_by="RequisitionLineModel.line_number",
        lazy="selectin",
    )

    def to_dto(self, purchase_order_id: UUID | None = None):
        from procure_modules.procurement.models import Requisition, RequisitionStatus

        return Requisition(
            id=self.id,
            requisition_number=self.requisition_number,
            project_id=self.project_id,
            requester_id=self.requester_id,
            status=RequisitionStatus(self.status),
            required_by=self.required_by,
            notes=self.notes,
            approver_id=self.approver_id,
            approval_notes=self.approval_notes,
            decided_at=self.decided_at,
            purchase_order_id=purchase_order_id,
            lines=tuple(line.to_dto() for line in self.lines),
        )

    def __repr__(self) -> str:
        return f"<RequisitionModel {self.requisition_number} [{self.status}]>"


class RequisitionLineModel(TrackedBase):
    """
    A line item on a purchase requisition.

    Guarantees:
        - Belongs to exactly one ``RequisitionModel``.
        - (requisition_id, line_number) is unique.
    """

    __tablename__ = "procurement_requisition_lines"

    __table_args__ = (
        UniqueConstraint(
            "requisition_id", "line_number",
            name="uq_requisition_line_number",
        ),
        CheckConstraint("quantity > 0", name="ck_req_line_quantity_positive"),
        CheckConstraint(
            "estimated_unit_price >= 0",
            name="ck_req_line_price_non_negative",
        ),
        Index("idx_req_line_requisition", "requisition_id"),
    )

    requisition_id: Mapped[UUID] = mapped_column(
        ForeignKey("procurement_requisitions.id", ondelete="CASCADE"),
        nullable=False,
    )
    line_number: Mapped[int]
    item_name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(String(1000), nullable=False, default="")
    quantity: Mapped[int]
    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="pcs")
    estimated_unit_price: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)

    requisition: Mapped["RequisitionModel"] = relationship(
        "RequisitionModel",
        back_populates="lines",
    )

    def to_dto(self):
        from procure_modules.procurement.models import RequisitionLine

        return RequisitionLine(
            id=self.id,
            requisition_id=self.requisition_id,
            line_number=self.line_number,
            item_name=self.item_name,
            quantity=self.quantity,
            unit=self.unit,
            estimated_unit_price=self.estimated_unit_price,
            description=self.description,
            category=self.category,
        )

    def __repr__(self) -> str:
        return f"<RequisitionLineModel #{self.line_number} qty={self.quantity}>"


# ---------------------------------------------------------------------------
# PurchaseOrderModel
# ---------------------------------------------------------------------------


class PurchaseOrderModel(TrackedBase):
    """
    A purchase order issued to a vendor.

    Maps to the ``PurchaseOrder`` DTO in ``procure_modules.procurement.models``.

    Guarantees:
        - ``po_number`` is unique.
        - ``requisition_id`` is unique when set (one PO per requisition).
        - ``subtotal``/``tax_amount``/``total_amount`` are written only by
          the purchase-order editor from the current lines.
    """

    __tablename__ = "procurement_purchase_orders"

    __table_args__ = (
        UniqueConstraint("po_number", name="uq_purchase_order_number"),
        UniqueConstraint("requisition_id", name="uq_purchase_order_requisition"),
        Index("idx_po_status", "status"),
        Index("idx_po_vendor", "vendor_id"),
        Index("idx_po_project", "project_id"),
        Index("idx_po_order_date", "order_date"),
    )

    po_number: Mapped[str] = mapped_column(String(50), nullable=False)
    requisition_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("procurement_requisitions.id"), nullable=True,
    )
    vendor_id: Mapped[str] = mapped_column(String(100), nullable=False)
    project_id: Mapped[str] = mapped_column(String(100), nullable=False)
    order_date: Mapped[date] = mapped_column(Date, nullable=False)
    expected_delivery_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    shipping_address: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    payment_terms: Mapped[str | None] = mapped_column(String(200), nullable=True)
    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="draft")
    subtotal: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    version: Mapped[int] = mapped_column(nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    lines: Mapped[list["PurchaseOrderLineModel"]] = relationship(
        "PurchaseOrderLineModel",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderLineModel.line_number",
        lazy="selectin",
    )

    def to_dto(self):
        from procure_modules.procurement.models import POStatus, PurchaseOrder

        return PurchaseOrder(
            id=self.id,
            po_number=self.po_number,
            vendor_id=self.vendor_id,
            project_id=self.project_id,
            order_date=self.order_date,
            status=POStatus(self.status),
            requisition_id=self.requisition_id,
            expected_delivery_date=self.expected_delivery_date,
            shipping_address=self.shipping_address,
            payment_terms=self.payment_terms,
            notes=self.notes,
            cancellation_reason=self.cancellation_reason,
            subtotal=self.subtotal,
            tax_amount=self.tax_amount,
            total_amount=self.total_amount,
            version=self.version,
            created_by_id=self.created_by_id,
            lines=tuple(line.to_dto() for line in self.lines),
        )

    def __repr__(self) -> str:
        return f"<PurchaseOrderModel {self.po_number} [{self.status}] v{self.version}>"


class PurchaseOrderLineModel(TrackedBase):
    """
    A line item on a purchase order.

    Guarantees:
        - ``received_quantity`` changes only through goods receipts.
        - The quantity bound holds at the database level.
    """

    __tablename__ = "procurement_purchase_order_lines"

    __table_args__ = (
        CheckConstraint("ordered_quantity > 0", name="ck_po_line_ordered_positive"),
        CheckConstraint("unit_price >= 0", name="ck_po_line_price_non_negative"),
        CheckConstraint(
            "received_quantity >= 0 AND received_quantity <= ordered_quantity",
            name="ck_po_line_received_within_ordered",
        ),
        Index("idx_po_line_order", "purchase_order_id"),
    )

    purchase_order_id: Mapped[UUID] = mapped_column(
        ForeignKey("procurement_purchase_orders.id", ondelete="CASCADE"),
        nullable=False,
    )
    line_number: Mapped[int]
    item_name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(String(1000), nullable=False, default="")
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    ordered_quantity: Mapped[int]
    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="pcs")
    unit_price: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    received_quantity: Mapped[int] = mapped_column(nullable=False, default=0)
    requisition_line_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("procurement_requisition_lines.id"), nullable=True,
    )

    purchase_order: Mapped["PurchaseOrderModel"] = relationship(
        "PurchaseOrderModel",
        back_populates="lines",
    )

    def to_dto(self):
        from procure_modules.procurement.models import PurchaseOrderLine

        return PurchaseOrderLine(
            id=self.id,
            purchase_order_id=self.purchase_order_id,
            line_number=self.line_number,
            item_name=self.item_name,
            ordered_quantity=self.ordered_quantity,
            unit_price=self.unit_price,
            received_quantity=self.received_quantity,
            unit=self.unit,
            description=self.description,
            category=self.category,
            requisition_line_id=self.requisition_line_id,
        )

    def __repr__(self) -> str:
        return (
            f"<PurchaseOrderLineModel #{self.line_number} "
            f"{self.received_quantity}/{self.ordered_quantity}>"
        )


# ---------------------------------------------------------------------------
# GoodsReceiptModel
# ---------------------------------------------------------------------------


class GoodsReceiptModel(TrackedBase):
    """
    Append-only record of one delivery against a purchase order.

    Guarantees:
        - ``receipt_number`` is unique.
        - Never updated or deleted once flushed.
        - ``status_before``/``status_after`` capture the PO status change
          the receipt caused.
    """

    __tablename__ = "procurement_goods_receipts"

    __table_args__ = (
        UniqueConstraint("receipt_number", name="uq_goods_receipt_number"),
        Index("idx_goods_receipt_po", "purchase_order_id"),
        Index("idx_goods_receipt_date", "receipt_date"),
    )

    receipt_number: Mapped[str] = mapped_column(String(50), nullable=False)
    purchase_order_id: Mapped[UUID] = mapped_column(
        ForeignKey("procurement_purchase_orders.id"), nullable=False,
    )
    receipt_date: Mapped[date] = mapped_column(Date, nullable=False)
    received_by: Mapped[UUID]
    status_before: Mapped[str] = mapped_column(String(50), nullable=False)
    status_after: Mapped[str] = mapped_column(String(50), nullable=False)
    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    recorded_at: Mapped[datetime]

    lines: Mapped[list["GoodsReceiptLineModel"]] = relationship(
        "GoodsReceiptLineModel",
        back_populates="receipt",
        cascade="save-update, merge",
        lazy="selectin",
    )

    def to_dto(self):
        from procure_modules.procurement.models import GoodsReceipt, POStatus

        return GoodsReceipt(
            id=self.id,
            receipt_number=self.receipt_number,
            purchase_order_id=self.purchase_order_id,
            receipt_date=self.receipt_date,
            received_by=self.received_by,
            status_before=POStatus(self.status_before),
            status_after=POStatus(self.status_after),
            notes=self.notes,
            recorded_at=self.recorded_at,
            lines=tuple(line.to_dto() for line in self.lines),
        )

    def __repr__(self) -> str:
        return f"<GoodsReceiptModel {self.receipt_number} {self.status_before}->{self.status_after}>"


class GoodsReceiptLineModel(TrackedBase):
    """One received quantity within a goods receipt."""

    __tablename__ = "procurement_goods_receipt_lines"

    __table_args__ = (
        CheckConstraint("quantity_received > 0", name="ck_receipt_line_positive"),
        Index("idx_receipt_line_receipt", "receipt_id"),
        Index("idx_receipt_line_po_line", "po_line_id"),
    )

    receipt_id: Mapped[UUID] = mapped_column(
        ForeignKey("procurement_goods_receipts.id"), nullable=False,
    )
    po_line_id: Mapped[UUID] = mapped_column(
        ForeignKey("procurement_purchase_order_lines.id"), nullable=False,
    )
    quantity_received: Mapped[int]
    quality_status: Mapped[str] = mapped_column(String(20), nullable=False, default="accepted")
    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    receipt: Mapped["GoodsReceiptModel"] = relationship(
        "GoodsReceiptModel",
        back_populates="lines",
    )

    def to_dto(self):
        from procure_modules.procurement.models import GoodsReceiptLine, QualityStatus

        return GoodsReceiptLine(
            id=self.id,
            receipt_id=self.receipt_id,
            po_line_id=self.po_line_id,
            quantity_received=self.quantity_received,
            quality_status=QualityStatus(self.quality_status),
            notes=self.notes,
        )

    def __repr__(self) -> str:
        return f"<GoodsReceiptLineModel qty={self.quantity_received} [{self.quality_status}]>"
