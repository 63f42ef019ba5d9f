"""
Concurrency tests for receiving and derivation.

Each worker gets its own ProcurementService on its own session; all of them
share one lock registry, as request handlers in one process would.

Validates:
- Concurrent receipts against one order never over-receive
- Receipt numbers stay unique under contention
- Different orders do not block each other
- A held order lock surfaces as LockTimeoutError, nothing applied
- At most one purchase order is derived per requisition
- Competing decisions on one requisition: exactly one wins
- Order lock keys do not depend on how the id is spelled
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from procure_kernel.exceptions import (
    DuplicateDerivationError,
    InvalidStateError,
    LockTimeoutError,
    RequisitionNotFoundError,
    ValidationError,
)
from procure_modules.procurement import POStatus, ProcurementConfig, RequisitionStatus
from tests.conftest import (
    ACTIVE_VENDOR,
    APPROVER_ID,
    BUYER_ID,
    PROJECT,
    REQUESTER_ID,
    SECOND_VENDOR,
    STOREKEEPER_ID,
)

pytestmark = pytest.mark.slow_locks


def _run_together(calls):
    """Start every call at once; return (results, errors) in call order."""
    barrier = threading.Barrier(len(calls))

    def worker(call):
        barrier.wait(timeout=10)
        try:
            return call(), None
        except Exception as exc:
            return None, exc

    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        outcomes = [f.result() for f in [pool.submit(worker, c) for c in calls]]
    return [r for r, _ in outcomes if r is not None], [e for _, e in outcomes if e is not None]


def _receive_call(service, po, quantity):
    line_id = po.lines[0].id
    return lambda: service.receive(
        po.id,
        [{"po_line_id": line_id, "quantity_received": quantity}],
        actor_id=STOREKEEPER_ID,
    )


class TestConcurrentReceipts:

    def test_competing_receipts_never_over_receive(self, make_service, issued_order):
        results, errors = _run_together([
            _receive_call(make_service(), issued_order, 6),
            _receive_call(make_service(), issued_order, 6),
        ])

        assert len(results) == 1
        assert len(errors) == 1
        assert isinstance(errors[0], ValidationError)
        assert "only 4 of 10 remaining" in str(errors[0])

        po = make_service().get_order(issued_order.id)
        assert po.lines[0].received_quantity == 6
        assert po.status is POStatus.PARTIALLY_RECEIVED
        assert len(make_service().list_receipts(issued_order.id)) == 1

    def test_many_single_unit_receipts(self, make_service, issued_order):
        results, errors = _run_together([
            _receive_call(make_service(), issued_order, 1) for _ in range(12)
        ])

        assert len(results) == 10
        assert len(errors) == 2
        assert all(isinstance(e, (ValidationError, InvalidStateError)) for e in errors)

        po = make_service().get_order(issued_order.id)
        assert po.lines[0].received_quantity == 10
        assert po.status is POStatus.COMPLETED
        assert po.version == issued_order.version + 10
        assert sorted(r.receipt_number for r in results) == [
            f"GRN-2024-{n:04d}" for n in range(1, 11)
        ]
        assert [r.status_after for r in results].count(POStatus.COMPLETED) == 1

    def test_different_orders_proceed_independently(
        self, make_service, issued_order, three_line_order,
    ):
        results, errors = _run_together([
            _receive_call(make_service(), issued_order, 10),
            _receive_call(make_service(), three_line_order, 10),
        ])

        assert errors == []
        assert {r.purchase_order_id for r in results} == {issued_order.id, three_line_order.id}
        reader = make_service()
        assert reader.get_order(issued_order.id).status is POStatus.COMPLETED
        assert reader.get_order(three_line_order.id).status is POStatus.PARTIALLY_RECEIVED

    def test_cancel_racing_receipt(self, make_service, issued_order):
        canceller = make_service()
        results, errors = _run_together([
            lambda: canceller.cancel_order(issued_order.id, actor_id=BUYER_ID),
            _receive_call(make_service(), issued_order, 4),
        ])

        assert all(isinstance(e, InvalidStateError) for e in errors)
        reader = make_service()
        po = reader.get_order(issued_order.id)
        receipts = reader.list_receipts(issued_order.id)
        # cancellation is allowed after a partial receipt, so it always wins
        assert po.status is POStatus.CANCELLED
        assert po.lines[0].received_quantity == 4 * len(receipts)


class TestLockTimeout:

    def test_held_order_times_out(self, make_service, lock_registry, issued_order):
        impatient = make_service(ProcurementConfig.from_dict({"lock_timeout_seconds": 0.05}))
        with lock_registry.hold("purchase order", issued_order.id, timeout=5):
            with pytest.raises(LockTimeoutError) as exc_info:
                _receive_call(impatient, issued_order, 1)()
        assert exc_info.value.entity_id == str(issued_order.id)

        po = make_service().get_order(issued_order.id)
        assert po.lines[0].received_quantity == 0
        assert po.version == issued_order.version

    def test_lock_shared_across_id_spellings(self, make_service, lock_registry, issued_order):
        impatient = make_service(ProcurementConfig.from_dict({"lock_timeout_seconds": 0.05}))
        spelled = str(issued_order.id).upper()
        with lock_registry.hold("purchase order", issued_order.id, timeout=5):
            with pytest.raises(LockTimeoutError) as exc_info:
                impatient.receive(
                    spelled,
                    [{"po_line_id": issued_order.lines[0].id, "quantity_received": 1}],
                    actor_id=STOREKEEPER_ID,
                )
        assert exc_info.value.entity_id == str(issued_order.id)
        assert make_service().get_order(issued_order.id).lines[0].received_quantity == 0

    def test_order_usable_after_timeout(self, make_service, lock_registry, issued_order):
        impatient = make_service(ProcurementConfig.from_dict({"lock_timeout_seconds": 0.05}))
        with lock_registry.hold("purchase order", issued_order.id, timeout=5):
            with pytest.raises(LockTimeoutError):
                _receive_call(impatient, issued_order, 1)()
        receipt = _receive_call(impatient, issued_order, 1)()
        assert receipt.receipt_number == "GRN-2024-0001"


class TestConcurrentDerivation:

    def test_one_order_per_requisition(self, make_service, approved_requisition):
        first, second = make_service(), make_service()
        results, errors = _run_together([
            lambda: first.derive_draft_po(approved_requisition.id, ACTIVE_VENDOR, BUYER_ID),
            lambda: second.derive_draft_po(approved_requisition.id, SECOND_VENDOR, BUYER_ID),
        ])

        assert len(results) == 1
        assert len(errors) == 1
        assert isinstance(errors[0], DuplicateDerivationError)

        reader = make_service()
        assert [po.id for po in reader.list_orders()] == [results[0].id]
        assert reader.get_requisition(approved_requisition.id).purchase_order_id == results[0].id


@pytest.fixture
def pending_requisition(service):
    return service.create_requisition(
        project_id=PROJECT,
        requester_id=REQUESTER_ID,
        lines=[{"item_name": "Plywood sheet", "quantity": 4, "unit": "sheet",
                "estimated_unit_price": "12.00"}],
        submit=True,
    )


class TestConcurrentDecisions:

    def test_approve_racing_reject(self, make_service, pending_requisition):
        approver, rejecter = make_service(), make_service()
        results, errors = _run_together([
            lambda: approver.approve(pending_requisition.id, approver_id=APPROVER_ID),
            lambda: rejecter.reject(pending_requisition.id, approver_id=APPROVER_ID),
        ])

        assert len(results) == 1
        assert len(errors) == 1
        assert isinstance(errors[0], InvalidStateError)
        assert errors[0].current_status == results[0].status.value

        stored = make_service().get_requisition(pending_requisition.id)
        assert stored.status is results[0].status
        assert stored.status in (RequisitionStatus.APPROVED, RequisitionStatus.REJECTED)
        assert stored.decided_at is not None

    def test_approve_racing_delete(self, make_service, pending_requisition):
        approver, deleter = make_service(), make_service()
        results, errors = _run_together([
            lambda: approver.approve(pending_requisition.id, approver_id=APPROVER_ID),
            lambda: deleter.delete_requisition(pending_requisition.id, actor_id=REQUESTER_ID),
        ])

        # delete returns None, so only an approval shows up in results
        assert len(errors) == 1
        if results:
            assert isinstance(errors[0], InvalidStateError)
            stored = make_service().get_requisition(pending_requisition.id)
            assert stored.status is RequisitionStatus.APPROVED
        else:
            assert isinstance(errors[0], RequisitionNotFoundError)
            with pytest.raises(RequisitionNotFoundError):
                make_service().get_requisition(pending_requisition.id)
