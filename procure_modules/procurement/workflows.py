"""
Procurement Workflows.

State machines for requisition approval and purchase order fulfilment.
Engines consult these tables before changing a status; tests check them
for reachability and terminal states.
"""

from procure_kernel.domain.workflow import Guard, Transition, Workflow
from procure_kernel.logging_config import get_logger
from procure_modules.procurement.models import POStatus, RequisitionStatus

logger = get_logger("modules.procurement.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

HAS_LINES = Guard(
    name="has_lines",
    description="Document carries at least one valid line",
)

ALL_LINES_RECEIVED = Guard(
    name="all_lines_received",
    description="Every PO line has received_quantity == ordered_quantity",
)

SOME_LINES_RECEIVED = Guard(
    name="some_lines_received",
    description="At least one PO line has received_quantity > 0",
)


# -----------------------------------------------------------------------------
# Requisition Workflow
# -----------------------------------------------------------------------------

_R = RequisitionStatus

REQUISITION_WORKFLOW = Workflow(
    name="requisition",
    description="Purchase requisition approval",
    initial_state=_R.DRAFT.value,
    states=tuple(status.value for status in _R),
    transitions=(
        Transition(_R.DRAFT.value, _R.PENDING.value, action="submit", guard=HAS_LINES),
        Transition(_R.PENDING.value, _R.APPROVED.value, action="approve"),
        Transition(_R.PENDING.value, _R.REJECTED.value, action="reject"),
    ),
    terminal_states=(_R.APPROVED.value, _R.REJECTED.value),
)

# Deletion is a correction step, not a transition.
REQUISITION_DELETABLE_STATES = frozenset({_R.DRAFT, _R.PENDING})

logger.info(
    "procurement_requisition_workflow_registered",
    extra={
        "workflow_name": REQUISITION_WORKFLOW.name,
        "state_count": len(REQUISITION_WORKFLOW.states),
        "transition_count": len(REQUISITION_WORKFLOW.transitions),
        "initial_state": REQUISITION_WORKFLOW.initial_state,
    },
)


# -----------------------------------------------------------------------------
# Purchase Order Workflow
# -----------------------------------------------------------------------------

_P = POStatus

_PRE_RECEIPT = (_P.DRAFT, _P.SENT, _P.CONFIRMED, _P.PROCESSING)
_RECEIVABLE = _PRE_RECEIPT + (_P.PARTIALLY_RECEIVED,)


def _receive_transitions() -> tuple[Transition, ...]:
    transitions: list[Transition] = []
    for status in _RECEIVABLE:
        transitions.append(Transition(
            status.value, _P.PARTIALLY_RECEIVED.value,
            action="receive", guard=SOME_LINES_RECEIVED,
        ))
        transitions.append(Transition(
            status.value, _P.COMPLETED.value,
            action="receive", guard=ALL_LINES_RECEIVED,
        ))
    return tuple(transitions)


PURCHASE_ORDER_WORKFLOW = Workflow(
    name="purchase_order",
    description="Purchase order issuance and fulfilment",
    initial_state=_P.DRAFT.value,
    states=tuple(status.value for status in _P),
    transitions=(
        Transition(_P.DRAFT.value, _P.SENT.value, action="issue", guard=HAS_LINES),
        Transition(_P.SENT.value, _P.CONFIRMED.value, action="confirm"),
        Transition(_P.CONFIRMED.value, _P.PROCESSING.value, action="start_processing"),
        *_receive_transitions(),
        *(
            Transition(status.value, _P.CANCELLED.value, action="cancel")
            for status in _RECEIVABLE
        ),
    ),
    terminal_states=(_P.COMPLETED.value, _P.CANCELLED.value),
)

# Line edits are allowed until the order is in processing or has receipts.
PO_EDITABLE_STATES = frozenset({_P.DRAFT, _P.SENT, _P.CONFIRMED})

logger.info(
    "procurement_po_workflow_registered",
    extra={
        "workflow_name": PURCHASE_ORDER_WORKFLOW.name,
        "state_count": len(PURCHASE_ORDER_WORKFLOW.states),
        "transition_count": len(PURCHASE_ORDER_WORKFLOW.transitions),
        "initial_state": PURCHASE_ORDER_WORKFLOW.initial_state,
    },
)
