"""Workflow states, their ordering, phases, and the document -> state table."""

import enum
from dataclasses import dataclass

from shiplink.schemas.classification import Direction, DocumentType, SenderCategory


class WorkflowPhase(str, enum.Enum):
    PRE_DEPARTURE = "pre_departure"
    IN_TRANSIT = "in_transit"
    ARRIVAL = "arrival"
    DELIVERY = "delivery"
    CANCELLED = "cancelled"


class WorkflowState(str, enum.Enum):
    BOOKING_CONFIRMATION_RECEIVED = "booking_confirmation_received"
    BOOKING_CONFIRMATION_SHARED = "booking_confirmation_shared"
    SI_DRAFT_RECEIVED = "si_draft_received"
    SI_CONFIRMED = "si_confirmed"
    VGM_CONFIRMED = "vgm_confirmed"
    SOB_RECEIVED = "sob_received"
    HBL_RELEASED = "hbl_released"
    INVOICE_SENT = "invoice_sent"
    ARRIVAL_NOTICE_RECEIVED = "arrival_notice_received"
    ARRIVAL_NOTICE_SHARED = "arrival_notice_shared"
    DUTY_INVOICE_RECEIVED = "duty_invoice_received"
    CUSTOMS_CLEARED = "customs_cleared"
    CARGO_RELEASED = "cargo_released"
    POD_RECEIVED = "pod_received"
    BOOKING_CANCELLED = "booking_cancelled"

    @property
    def order(self) -> int:
        return STATE_ORDER[self]

    @property
    def phase(self) -> WorkflowPhase:
        return STATE_PHASES[self]


# Lifecycle order. booking_cancelled sits outside it and is handled separately.
ORDERED_STATES = [
    WorkflowState.BOOKING_CONFIRMATION_RECEIVED,
    WorkflowState.BOOKING_CONFIRMATION_SHARED,
    WorkflowState.SI_DRAFT_RECEIVED,
    WorkflowState.SI_CONFIRMED,
    WorkflowState.VGM_CONFIRMED,
    WorkflowState.SOB_RECEIVED,
    WorkflowState.HBL_RELEASED,
    WorkflowState.INVOICE_SENT,
    WorkflowState.ARRIVAL_NOTICE_RECEIVED,
    WorkflowState.ARRIVAL_NOTICE_SHARED,
    WorkflowState.DUTY_INVOICE_RECEIVED,
    WorkflowState.CUSTOMS_CLEARED,
    WorkflowState.CARGO_RELEASED,
    WorkflowState.POD_RECEIVED,
]

STATE_ORDER: dict[WorkflowState, int] = {state: i for i, state in enumerate(ORDERED_STATES)}
STATE_ORDER[WorkflowState.BOOKING_CANCELLED] = len(ORDERED_STATES)

STATE_PHASES: dict[WorkflowState, WorkflowPhase] = {
    WorkflowState.BOOKING_CONFIRMATION_RECEIVED: WorkflowPhase.PRE_DEPARTURE,
    WorkflowState.BOOKING_CONFIRMATION_SHARED: WorkflowPhase.PRE_DEPARTURE,
    WorkflowState.SI_DRAFT_RECEIVED: WorkflowPhase.PRE_DEPARTURE,
    WorkflowState.SI_CONFIRMED: WorkflowPhase.PRE_DEPARTURE,
    WorkflowState.VGM_CONFIRMED: WorkflowPhase.PRE_DEPARTURE,
    WorkflowState.SOB_RECEIVED: WorkflowPhase.IN_TRANSIT,
    WorkflowState.HBL_RELEASED: WorkflowPhase.IN_TRANSIT,
    WorkflowState.INVOICE_SENT: WorkflowPhase.IN_TRANSIT,
    WorkflowState.ARRIVAL_NOTICE_RECEIVED: WorkflowPhase.ARRIVAL,
    WorkflowState.ARRIVAL_NOTICE_SHARED: WorkflowPhase.ARRIVAL,
    WorkflowState.DUTY_INVOICE_RECEIVED: WorkflowPhase.ARRIVAL,
    WorkflowState.CUSTOMS_CLEARED: WorkflowPhase.ARRIVAL,
    WorkflowState.CARGO_RELEASED: WorkflowPhase.DELIVERY,
    WorkflowState.POD_RECEIVED: WorkflowPhase.DELIVERY,
    WorkflowState.BOOKING_CANCELLED: WorkflowPhase.CANCELLED,
}

TERMINAL_STATE = WorkflowState.POD_RECEIVED


@dataclass(frozen=True)
class StateRule:
    """One row of the derivation table.

    ``direction=None`` means the row applies whatever the direction, including
    ``Direction.UNKNOWN``.
    """

    document_type: DocumentType
    state: WorkflowState
    direction: Direction | None = None


STATE_RULES: list[StateRule] = [
    StateRule(DocumentType.BOOKING_CONFIRMATION, WorkflowState.BOOKING_CONFIRMATION_RECEIVED, Direction.INBOUND),
    StateRule(DocumentType.BOOKING_CONFIRMATION, WorkflowState.BOOKING_CONFIRMATION_SHARED, Direction.OUTBOUND),
    StateRule(DocumentType.BOOKING_AMENDMENT, WorkflowState.BOOKING_CONFIRMATION_RECEIVED, Direction.INBOUND),
    StateRule(DocumentType.BOOKING_AMENDMENT, WorkflowState.BOOKING_CONFIRMATION_SHARED, Direction.OUTBOUND),
    StateRule(DocumentType.BOOKING_CANCELLATION, WorkflowState.BOOKING_CANCELLED),
    StateRule(DocumentType.VGM_CONFIRMATION, WorkflowState.VGM_CONFIRMED, Direction.INBOUND),
    StateRule(DocumentType.SOB_CONFIRMATION, WorkflowState.SOB_RECEIVED, Direction.INBOUND),
    StateRule(DocumentType.HOUSE_BL, WorkflowState.HBL_RELEASED, Direction.OUTBOUND),
    StateRule(DocumentType.BILL_OF_LADING, WorkflowState.HBL_RELEASED, Direction.OUTBOUND),
    StateRule(DocumentType.INVOICE, WorkflowState.INVOICE_SENT, Direction.OUTBOUND),
    StateRule(DocumentType.ARRIVAL_NOTICE, WorkflowState.ARRIVAL_NOTICE_RECEIVED, Direction.INBOUND),
    StateRule(DocumentType.ARRIVAL_NOTICE, WorkflowState.ARRIVAL_NOTICE_SHARED, Direction.OUTBOUND),
    StateRule(DocumentType.DUTY_INVOICE, WorkflowState.DUTY_INVOICE_RECEIVED, Direction.INBOUND),
    StateRule(DocumentType.CUSTOMS_CLEARANCE, WorkflowState.CUSTOMS_CLEARED),
    StateRule(DocumentType.DELIVERY_ORDER, WorkflowState.CARGO_RELEASED, Direction.INBOUND),
    StateRule(DocumentType.CONTAINER_RELEASE, WorkflowState.CARGO_RELEASED, Direction.INBOUND),
    StateRule(DocumentType.PROOF_OF_DELIVERY, WorkflowState.POD_RECEIVED),
]

_STATE_TABLE: dict[tuple[DocumentType, Direction | None], WorkflowState] = {
    (rule.document_type, rule.direction): rule.state for rule in STATE_RULES
}


def derive(
    document_type: DocumentType | str,
    direction: Direction | str,
    sender_category: SenderCategory | str | None = None,
) -> WorkflowState | None:
    """Map a (document_type, direction) pair to a candidate workflow state.

    Shipping instructions depend on who sent them: a carrier-issued SI is the
    carrier's confirmation, any other inbound SI is a draft from the shipper
    side. An SI we send out ourselves derives nothing.
    Returns None when the document says nothing about workflow progress.
    """
    try:
        document_type = DocumentType(document_type)
        direction = Direction(direction)
    except ValueError:
        return None

    if document_type is DocumentType.SHIPPING_INSTRUCTION:
        if direction is not Direction.INBOUND:
            return None
        category = SenderCategory(sender_category) if sender_category else SenderCategory.UNKNOWN
        if category is SenderCategory.CARRIER:
            return WorkflowState.SI_CONFIRMED
        if category is SenderCategory.UNKNOWN:
            return None
        return WorkflowState.SI_DRAFT_RECEIVED

    state = _STATE_TABLE.get((document_type, direction))
    if state is None:
        state = _STATE_TABLE.get((document_type, None))
    return state


def progress_percent(state: WorkflowState | str | None) -> int:
    """Share of the lifecycle completed, 0-100. Cancelled shipments report 0."""
    if state is None:
        return 0
    state = WorkflowState(state)
    if state is WorkflowState.BOOKING_CANCELLED:
        return 0
    return round((STATE_ORDER[state] + 1) * 100 / len(ORDERED_STATES))
