"""Shipment endpoints: browse shipments, their evidence, and rebuild workflow state."""

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from shiplink.dependencies import get_db, get_reconciliation_service
from shiplink.schemas.shipment import (
    FieldSlotResponse,
    LinkedDocumentResponse,
    RebuildResponse,
    ShipmentDetail,
    ShipmentListResponse,
    ShipmentSummary,
    TransitionResponse,
)
from shiplink.shipments import repository
from shiplink.shipments.service import ShipmentReconciliationService
from shiplink.workflow.states import progress_percent

router = APIRouter()


@router.get("", response_model=ShipmentListResponse)
async def list_shipments(
    after: uuid.UUID | None = None,
    limit: int = 50,
    db: AsyncSession = Depends(get_db),
) -> ShipmentListResponse:
    """Keyset-paginated shipment list; pass next_cursor back as ``after``."""
    limit = max(1, min(limit, 500))
    shipments = await repository.fetch_shipment_page(db, after=after, page_size=limit)
    return ShipmentListResponse(
        shipments=[ShipmentSummary.model_validate(s) for s in shipments],
        next_cursor=shipments[-1].id if len(shipments) == limit else None,
    )


@router.get("/{shipment_id}", response_model=ShipmentDetail)
async def get_shipment(
    shipment_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
) -> ShipmentDetail:
    shipment = await repository.get_shipment(db, shipment_id)
    if shipment is None:
        raise HTTPException(status_code=404, detail="Shipment not found")

    linked = await repository.get_linked_documents(db, shipment_id)
    history = await repository.get_transitions(db, shipment_id)
    summary = ShipmentSummary.model_validate(shipment)
    return ShipmentDetail(
        **summary.model_dump(),
        progress_percent=progress_percent(shipment.workflow_state),
        fields={name: FieldSlotResponse(**slot) for name, slot in (shipment.field_values or {}).items()},
        container_numbers=await repository.get_containers(db, shipment_id),
        documents=[
            LinkedDocumentResponse(
                document_id=doc.id,
                document_type=doc.document_type,
                direction=getattr(doc.direction, "value", doc.direction),
                subject=doc.subject,
                matched_by=link.matched_by,
                matched_value=link.matched_value,
                link_method=link.link_method.value,
                linked_at=link.created_at,
            )
            for doc, link in linked
        ],
        history=[TransitionResponse.model_validate(t) for t in history],
    )


@router.get("/{shipment_id}/history", response_model=list[TransitionResponse])
async def get_history(
    shipment_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
) -> list[TransitionResponse]:
    if await repository.get_shipment(db, shipment_id) is None:
        raise HTTPException(status_code=404, detail="Shipment not found")
    return [TransitionResponse.model_validate(t) for t in await repository.get_transitions(db, shipment_id)]


@router.post("/{shipment_id}/rebuild", response_model=RebuildResponse)
async def rebuild_state(
    shipment_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    reconciler: ShipmentReconciliationService = Depends(get_reconciliation_service),
) -> RebuildResponse:
    """Re-derive the workflow state from every linked document."""
    try:
        result = await reconciler.rebuild_workflow_state(db, shipment_id)
    except ValueError:
        raise HTTPException(status_code=404, detail="Shipment not found")
    state = result.decision.state
    return RebuildResponse(
        shipment_id=shipment_id,
        previous_state=result.previous,
        rebuilt_state=result.rebuilt,
        workflow_state=state.value if state else None,
        drift=result.drift,
        changed=result.decision.changed,
        reason_code=result.decision.reason_code.value,
        reason=result.decision.reason,
        documents_seen=result.documents_seen,
    )
