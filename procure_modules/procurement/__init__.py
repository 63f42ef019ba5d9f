"""
Procurement Module (``procure_modules.procurement``).

Responsibility
--------------
The procurement lifecycle: requisition approval, purchase-order issuance
and editing, goods-receipt reconciliation with partial deliveries, and
spend reporting.

Architecture position
---------------------
**Modules layer** -- DTOs, workflows, config schema, ORM models, stores,
engines, and the ``ProcurementService`` facade that owns transactions and
per-order locks.

Invariants enforced
-------------------
* 0 <= received_quantity <= ordered_quantity on every order line.
* subtotal, tax, and total are always derived from the lines.
* At most one purchase order per requisition.
* Goods receipts are append-only.
"""

from procure_modules.procurement.config import ProcurementConfig
from procure_modules.procurement.models import (
    GoodsReceipt,
    GoodsReceiptLine,
    OrderLineInput,
    OrderTerms,
    OutstandingLine,
    POStatus,
    PurchaseOrder,
    PurchaseOrderLine,
    QualityStatus,
    ReceiptLineInput,
    RecentOrder,
    Requisition,
    RequisitionLine,
    RequisitionLineInput,
    RequisitionStatus,
    SpendReport,
)
from procure_modules.procurement.references import (
    InMemoryReferenceDirectory,
    ProjectRef,
    ReferenceDirectory,
    VendorRef,
)
from procure_modules.procurement.reporting import SpendReportCache
from procure_modules.procurement.service import ProcurementService
from procure_modules.procurement.workflows import (
    PURCHASE_ORDER_WORKFLOW,
    REQUISITION_WORKFLOW,
)

__all__ = [
    "ProcurementConfig",
    "ProcurementService",
    "GoodsReceipt",
    "GoodsReceiptLine",
    "OrderLineInput",
    "OrderTerms",
    "OutstandingLine",
    "POStatus",
    "PurchaseOrder",
    "PurchaseOrderLine",
    "QualityStatus",
    "ReceiptLineInput",
    "RecentOrder",
    "Requisition",
    "RequisitionLine",
    "RequisitionLineInput",
    "RequisitionStatus",
    "SpendReport",
    "InMemoryReferenceDirectory",
    "ProjectRef",
    "ReferenceDirectory",
    "VendorRef",
    "SpendReportCache",
    "PURCHASE_ORDER_WORKFLOW",
    "REQUISITION_WORKFLOW",
]
