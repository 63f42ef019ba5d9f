"""
Typed Exception Hierarchy for the Procurement Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the procurement engine (a web layer, a batch job, a test harness)
must translate failures into their own responses.  Matching on message text
is fragile, so every failure mode has:
  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA attributes (not just a message string)

Example:
    try:
        service.receive(po_id, lines, receipt_date=today, actor_id=actor)
    except InvalidStateError as e:
        return {"error": e.code, "status": e.current_status}
    except ConcurrencyError:
        retry_with_backoff()

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ProcurementError (base)
    |
    +-- ValidationError
    |
    +-- InvalidStateError
    |
    +-- NotFoundError
    |   +-- RequisitionNotFoundError
    |   +-- PurchaseOrderNotFoundError
    |   +-- OrderLineNotFoundError
    |   +-- ReceiptNotFoundError
    |   +-- VendorNotFoundError
    |   +-- ProjectNotFoundError
    |
    +-- ConflictError
    |   +-- DuplicateDerivationError
    |   +-- OptimisticLockError
    |   +-- ReferencedEntityError
    |
    +-- ConcurrencyError
    |   +-- LockTimeoutError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | VALIDATION_FAILED           | Malformed input, over-receipt, empty receipt
----------------|-----------------------------|-----------------------------------------
State           | INVALID_STATE               | Operation forbidden in the current status
----------------|-----------------------------|-----------------------------------------
Not found       | REQUISITION_NOT_FOUND       | Requisition ID doesn't exist
                | PURCHASE_ORDER_NOT_FOUND    | PO ID doesn't exist
                | ORDER_LINE_NOT_FOUND        | Line doesn't belong to the PO
                | RECEIPT_NOT_FOUND           | Goods receipt ID doesn't exist
                | VENDOR_NOT_FOUND            | Vendor unknown to the directory
                | PROJECT_NOT_FOUND           | Project unknown to the directory
----------------|-----------------------------|-----------------------------------------
Conflict        | DUPLICATE_DERIVATION        | Requisition already produced a PO
                | OPTIMISTIC_LOCK_CONFLICT    | Row version changed under us
                | ENTITY_REFERENCED           | Delete blocked by downstream records
----------------|-----------------------------|-----------------------------------------
Concurrency     | LOCK_TIMEOUT                | Per-PO lock not acquired in time
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Modifying an append-only receipt record

===============================================================================
RETRY POLICY
===============================================================================

ConcurrencyError is the only category a caller should retry (with backoff).
Everything else is deterministic: retrying the same input yields the same
error.
"""


class ProcurementError(Exception):
    """
    Base exception for all procurement kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "PROCUREMENT_ERROR"


# Validation


class ValidationError(ProcurementError):
    """Malformed input.  Recoverable by the caller correcting the input."""

    code: str = "VALIDATION_FAILED"

    def __init__(
        self,
        errors: list[str] | tuple[str, ...] | str,
        line_ref: str | None = None,
    ):
        if isinstance(errors, str):
            errors = (errors,)
        self.errors = tuple(errors)
        self.line_ref = line_ref
        super().__init__("; ".join(self.errors))


# State machine


class InvalidStateError(ProcurementError):
    """Operation attempted against an entity whose status forbids it."""

    code: str = "INVALID_STATE"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_status: str,
        action: str,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot {action} {entity_type} {entity_id}: "
            f"current status is '{current_status}'"
        )


# Not found


class NotFoundError(ProcurementError):
    """Base exception for missing referenced entities."""

    code: str = "NOT_FOUND"
    entity_type: str = "entity"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity_type.capitalize()} {entity_id} not found")


class RequisitionNotFoundError(NotFoundError):
    code: str = "REQUISITION_NOT_FOUND"
    entity_type: str = "requisition"


class PurchaseOrderNotFoundError(NotFoundError):
    code: str = "PURCHASE_ORDER_NOT_FOUND"
    entity_type: str = "purchase order"


class OrderLineNotFoundError(NotFoundError):
    """A referenced line does not belong to the purchase order."""

    code: str = "ORDER_LINE_NOT_FOUND"
    entity_type: str = "order line"

    def __init__(self, entity_id: str, po_id: str):
        self.entity_id = entity_id
        self.po_id = po_id
        ProcurementError.__init__(
            self,
            f"Order line {entity_id} does not belong to purchase order {po_id}",
        )


class ReceiptNotFoundError(NotFoundError):
    code: str = "RECEIPT_NOT_FOUND"
    entity_type: str = "goods receipt"


class VendorNotFoundError(NotFoundError):
    code: str = "VENDOR_NOT_FOUND"
    entity_type: str = "vendor"


class ProjectNotFoundError(NotFoundError):
    code: str = "PROJECT_NOT_FOUND"
    entity_type: str = "project"


# Conflicts


class ConflictError(ProcurementError):
    """Base exception for uniqueness and idempotency violations."""

    code: str = "CONFLICT"


class DuplicateDerivationError(ConflictError):
    """A purchase order was already derived from this requisition."""

    code: str = "DUPLICATE_DERIVATION"

    def __init__(self, requisition_id: str, existing_po_id: str | None = None):
        self.requisition_id = requisition_id
        self.existing_po_id = existing_po_id
        detail = f" (purchase order {existing_po_id})" if existing_po_id else ""
        super().__init__(
            f"Requisition {requisition_id} has already been converted{detail}"
        )


class OptimisticLockError(ConflictError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


class ReferencedEntityError(ConflictError):
    """Delete blocked because downstream records reference the entity."""

    code: str = "ENTITY_REFERENCED"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Cannot delete {entity_type} {entity_id}: {reason}")


# Concurrency


class ConcurrencyError(ProcurementError):
    """Base exception for lock acquisition failures.  Safe to retry."""

    code: str = "CONCURRENCY_ERROR"


class LockTimeoutError(ConcurrencyError):
    """The per-entity lock could not be acquired within the timeout."""

    code: str = "LOCK_TIMEOUT"

    def __init__(self, entity_type: str, entity_id: str, timeout_seconds: float):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Could not lock {entity_type} {entity_id} "
            f"within {timeout_seconds}s; retry later"
        )


# Immutability


class ImmutabilityError(ProcurementError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
