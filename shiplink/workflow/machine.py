"""Workflow state fold over a shipment's linked documents.

Pure functions, no DB dependency. The persisted workflow_state is only ever
written from a ``StateDecision`` produced here.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from shiplink.errors import ReasonCode
from shiplink.workflow.states import STATE_ORDER, WorkflowState, derive


@dataclass(frozen=True)
class DocumentEvent:
    """The subset of a linked document the state machine looks at."""

    document_id: UUID
    document_type: str
    direction: str
    sender_category: str | None = None
    received_at: datetime | None = None


@dataclass(frozen=True)
class StateDecision:
    previous: WorkflowState | None
    state: WorkflowState | None
    changed: bool
    reason_code: ReasonCode
    reason: str
    triggering_document_id: UUID | None = None
    triggering_document_type: str | None = None


def is_after(candidate: WorkflowState, current: WorkflowState | None) -> bool:
    """True when ``candidate`` is strictly later than ``current``."""
    if current is None:
        return True
    if current is WorkflowState.BOOKING_CANCELLED:
        return False
    if candidate is WorkflowState.BOOKING_CANCELLED:
        return True
    return STATE_ORDER[candidate] > STATE_ORDER[current]


def _as_state(value: WorkflowState | str | None) -> WorkflowState | None:
    return WorkflowState(value) if value else None


def fold(current: WorkflowState | str | None, events: Iterable[DocumentEvent]) -> StateDecision:
    """Fold linked documents into the shipment's workflow state.

    Takes the latest state any document derives and adopts it only when it is
    strictly after ``current``. A cancellation wins over everything and, once
    reached, nothing moves the shipment again.
    """
    current = _as_state(current)

    if current is WorkflowState.BOOKING_CANCELLED:
        return StateDecision(
            previous=current,
            state=current,
            changed=False,
            reason_code=ReasonCode.BOOKING_CANCELLED,
            reason="Shipment is cancelled; booking_cancelled is absorbing",
        )

    best: WorkflowState | None = None
    best_event: DocumentEvent | None = None
    for event in events:
        candidate = derive(event.document_type, event.direction, event.sender_category)
        if candidate is None:
            continue
        if candidate is WorkflowState.BOOKING_CANCELLED:
            best, best_event = candidate, event
            break
        if best is None or STATE_ORDER[candidate] > STATE_ORDER[best]:
            best, best_event = candidate, event

    if best is None:
        return StateDecision(
            previous=current,
            state=current,
            changed=False,
            reason_code=ReasonCode.NO_STATE_DERIVED,
            reason="No linked document maps to a workflow state",
        )

    if not is_after(best, current):
        return StateDecision(
            previous=current,
            state=current,
            changed=False,
            reason_code=ReasonCode.STATE_UNCHANGED,
            reason=(
                f"{best_event.document_type} ({best_event.direction}) derives {best.value}, "
                f"which is not after {current.value}"
            ),
            triggering_document_id=best_event.document_id,
            triggering_document_type=best_event.document_type,
        )

    if best is WorkflowState.BOOKING_CANCELLED:
        code = ReasonCode.BOOKING_CANCELLED
        reason = f"{best_event.document_type} cancels the booking"
    else:
        code = ReasonCode.STATE_ADVANCED
        previous_label = current.value if current else "no state"
        reason = (
            f"{best_event.document_type} ({best_event.direction}) advances "
            f"{previous_label} -> {best.value}"
        )

    return StateDecision(
        previous=current,
        state=best,
        changed=True,
        reason_code=code,
        reason=reason,
        triggering_document_id=best_event.document_id,
        triggering_document_type=best_event.document_type,
    )


def advance(current: WorkflowState | str | None, event: DocumentEvent) -> StateDecision:
    """Incremental step for one newly linked document."""
    return fold(current, [event])


def rebuild(events: Iterable[DocumentEvent]) -> StateDecision:
    """Re-derive the state from scratch over a shipment's complete linked set."""
    return fold(None, events)


def replay(events: Iterable[DocumentEvent]) -> WorkflowState | None:
    """Apply ``advance`` document by document in the given order."""
    state: WorkflowState | None = None
    for event in events:
        state = advance(state, event).state
    return state
