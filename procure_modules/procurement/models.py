"""
Procurement Domain Models.

The nouns of procurement: requisitions, purchase orders, goods receipts,
and the inputs callers submit to create or change them.  Everything here
is a frozen dataclass; ``to_record()`` yields the JSON-safe dict handed to
collaborators.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from procure_engines.spend import VendorSpend
from procure_kernel.exceptions import ValidationError
from procure_kernel.logging_config import get_logger
from procure_kernel.utils.serialization import to_primitive

logger = get_logger("modules.procurement.models")


class RequisitionStatus(Enum):
    """Requisition lifecycle states."""
    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class POStatus(Enum):
    """Purchase order lifecycle states."""
    DRAFT = "draft"
    SENT = "sent"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    PARTIALLY_RECEIVED = "partially_received"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class QualityStatus(Enum):
    """Inspection outcome recorded on a receipt line (informational)."""
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    DAMAGED = "damaged"


class _Record:
    def to_record(self) -> dict[str, Any]:
        """JSON-safe dict of this record."""
        return to_primitive(self)


# -----------------------------------------------------------------------------
# Caller inputs
# -----------------------------------------------------------------------------


def _pick(data: Mapping, *names: str, default: Any = None) -> Any:
    for name in names:
        if name in data:
            return data[name]
    return default


@dataclass(frozen=True)
class RequisitionLineInput:
    """A requested item on a new requisition."""
    item_name: str
    quantity: Any
    unit: str | None = None
    estimated_unit_price: Any = None
    description: str = ""
    category: str | None = None

    @classmethod
    def coerce(cls, value: "RequisitionLineInput | Mapping") -> "RequisitionLineInput":
        if isinstance(value, cls):
            return value
        return cls(
            item_name=_pick(value, "item_name", default=""),
            quantity=_pick(value, "quantity"),
            unit=_pick(value, "unit"),
            estimated_unit_price=_pick(value, "estimated_unit_price", "estimated_price"),
            description=_pick(value, "description", default="") or "",
            category=_pick(value, "category"),
        )


@dataclass(frozen=True)
class OrderLineInput:
    """
    A purchase-order line as submitted by a caller.

    ``line_id`` identifies an existing line on update; ``None`` adds a line.
    """
    item_name: str
    ordered_quantity: Any
    unit_price: Any
    unit: str | None = None
    description: str = ""
    category: str | None = None
    line_id: UUID | str | None = None
    requisition_line_id: UUID | None = None

    @classmethod
    def coerce(cls, value: "OrderLineInput | Mapping") -> "OrderLineInput":
        if isinstance(value, cls):
            return value
        return cls(
            item_name=_pick(value, "item_name", default=""),
            ordered_quantity=_pick(value, "ordered_quantity", "quantity"),
            unit_price=_pick(value, "unit_price", default=Decimal("0")),
            unit=_pick(value, "unit"),
            description=_pick(value, "description", default="") or "",
            category=_pick(value, "category"),
            line_id=_pick(value, "line_id", "id"),
            requisition_line_id=_pick(value, "requisition_line_id"),
        )


@dataclass(frozen=True)
class ReceiptLineInput:
    """One line of a goods-receipt submission."""
    po_line_id: UUID | str
    quantity_received: Any
    quality_status: QualityStatus | str = QualityStatus.ACCEPTED
    notes: str | None = None

    @classmethod
    def coerce(cls, value: "ReceiptLineInput | Mapping") -> "ReceiptLineInput":
        if isinstance(value, cls):
            return value
        return cls(
            po_line_id=_pick(value, "po_line_id", "line_id", "item_id"),
            quantity_received=_pick(value, "quantity_received", "quantity"),
            quality_status=_pick(
                value, "quality_status", default=QualityStatus.ACCEPTED,
            ) or QualityStatus.ACCEPTED,
            notes=_pick(value, "notes"),
        )


@dataclass(frozen=True)
class OrderTerms:
    """Delivery and commercial terms of a purchase order.

    On update, ``None`` means "leave unchanged".
    """
    order_date: date | None = None
    expected_delivery_date: date | None = None
    shipping_address: str | None = None
    payment_terms: str | None = None
    notes: str | None = None

    @classmethod
    def coerce(cls, value: "OrderTerms | Mapping | None") -> "OrderTerms":
        """Build terms from a mapping, parsing ISO date strings.

        Raises:
            ValidationError: Unknown term names or values of the wrong type.
        """
        if value is None:
            return cls()
        if isinstance(value, cls):
            value = {name: getattr(value, name) for name in _TERM_DATES + _TERM_TEXTS}
        errors: list[str] = []
        unknown = set(value) - set(_TERM_DATES + _TERM_TEXTS)
        if unknown:
            errors.append(f"Unknown order terms: {sorted(unknown)}")
        values: dict[str, Any] = {}
        for name in _TERM_DATES:
            raw = value.get(name)
            if isinstance(raw, datetime):
                values[name] = raw.date()
            elif raw is None or isinstance(raw, date):
                values[name] = raw
            elif isinstance(raw, str):
                try:
                    values[name] = date.fromisoformat(raw.strip())
                except ValueError:
                    errors.append(f"{name} is not an ISO date: {raw!r}")
            else:
                errors.append(f"{name} must be a date, got {type(raw).__name__}")
        for name in _TERM_TEXTS:
            raw = value.get(name)
            if raw is not None and not isinstance(raw, str):
                errors.append(f"{name} must be text, got {type(raw).__name__}")
            else:
                values[name] = raw
        if errors:
            raise ValidationError(errors)
        return cls(**values)


_TERM_DATES = ("order_date", "expected_delivery_date")
_TERM_TEXTS = ("shipping_address", "payment_terms", "notes")


# -----------------------------------------------------------------------------
# Requisitions
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class RequisitionLine(_Record):
    """A line item on a purchase requisition."""
    id: UUID
    requisition_id: UUID
    line_number: int
    item_name: str
    quantity: int
    unit: str = "pcs"
    estimated_unit_price: Decimal = Decimal("0")
    description: str = ""
    category: str | None = None

    @property
    def estimated_total(self) -> Decimal:
        return self.estimated_unit_price * self.quantity


@dataclass(frozen=True)
class Requisition(_Record):
    """A purchase requisition."""
    id: UUID
    requisition_number: str
    project_id: str
    requester_id: UUID
    status: RequisitionStatus = RequisitionStatus.DRAFT
    required_by: date | None = None
    notes: str | None = None
    approver_id: UUID | None = None
    approval_notes: str | None = None
    decided_at: datetime | None = None
    purchase_order_id: UUID | None = None
    lines: tuple[RequisitionLine, ...] = field(default_factory=tuple)

    @property
    def estimated_total(self) -> Decimal:
        return sum((line.estimated_total for line in self.lines), Decimal("0"))


# -----------------------------------------------------------------------------
# Purchase orders
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class PurchaseOrderLine(_Record):
    """A line item on a purchase order."""
    id: UUID
    purchase_order_id: UUID
    line_number: int
    item_name: str
    ordered_quantity: int
    unit_price: Decimal
    received_quantity: int = 0
    unit: str = "pcs"
    description: str = ""
    category: str | None = None
    requisition_line_id: UUID | None = None

    def __post_init__(self):
        if not 0 <= self.received_quantity <= self.ordered_quantity:
            logger.warning(
                "po_line_quantity_out_of_bounds",
                extra={
                    "po_line_id": str(self.id),
                    "ordered_quantity": self.ordered_quantity,
                    "received_quantity": self.received_quantity,
                },
            )
            raise ValueError(
                f"received_quantity ({self.received_quantity}) must be between "
                f"0 and ordered_quantity ({self.ordered_quantity})"
            )

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.ordered_quantity

    @property
    def remaining_quantity(self) -> int:
        return self.ordered_quantity - self.received_quantity


@dataclass(frozen=True)
class PurchaseOrder(_Record):
    """A purchase order."""
    id: UUID
    po_number: str
    vendor_id: str
    project_id: str
    order_date: date
    status: POStatus = POStatus.DRAFT
    requisition_id: UUID | None = None
    expected_delivery_date: date | None = None
    shipping_address: str | None = None
    payment_terms: str | None = None
    notes: str | None = None
    cancellation_reason: str | None = None
    subtotal: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    total_amount: Decimal = Decimal("0")
    version: int = 1
    created_by_id: UUID | None = None
    lines: tuple[PurchaseOrderLine, ...] = field(default_factory=tuple)

    def line(self, line_id: UUID) -> PurchaseOrderLine:
        for po_line in self.lines:
            if po_line.id == line_id:
                return po_line
        raise KeyError(line_id)

    @property
    def is_fully_received(self) -> bool:
        return all(po_line.remaining_quantity == 0 for po_line in self.lines)


@dataclass(frozen=True)
class OutstandingLine(_Record):
    """Remaining quantity on one purchase-order line."""
    po_line_id: UUID
    line_number: int
    item_name: str
    ordered_quantity: int
    received_quantity: int
    remaining_quantity: int


# -----------------------------------------------------------------------------
# Goods receipts
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class GoodsReceiptLine(_Record):
    """One received quantity within a goods receipt."""
    id: UUID
    receipt_id: UUID
    po_line_id: UUID
    quantity_received: int
    quality_status: QualityStatus = QualityStatus.ACCEPTED
    notes: str | None = None


@dataclass(frozen=True)
class GoodsReceipt(_Record):
    """Append-only record of one delivery against a purchase order."""
    id: UUID
    receipt_number: str
    purchase_order_id: UUID
    receipt_date: date
    received_by: UUID
    status_before: POStatus
    status_after: POStatus
    notes: str | None = None
    recorded_at: datetime | None = None
    lines: tuple[GoodsReceiptLine, ...] = field(default_factory=tuple)

    @property
    def total_quantity(self) -> int:
        return sum(line.quantity_received for line in self.lines)


# -----------------------------------------------------------------------------
# Reporting
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class RecentOrder(_Record):
    """One of the newest orders counted in a spend report."""
    po_id: UUID
    po_number: str
    vendor_id: str
    vendor_name: str
    order_date: date
    status: POStatus
    total_amount: Decimal


@dataclass(frozen=True)
class SpendReport(_Record):
    """
    Spend rollup over non-cancelled purchase orders in a date range.

    ``fresh_until`` is the latest time at which a cached copy of this report
    may still be served.  ``recent_orders`` is newest first.
    """
    start_date: date
    end_date: date
    total_spend: Decimal
    order_count: int
    average_order_value: Decimal
    by_vendor: tuple[VendorSpend, ...]
    by_category: dict[str, Decimal]
    by_month: dict[str, Decimal]
    recent_orders: tuple[RecentOrder, ...]
    generated_at: datetime
    fresh_until: datetime
