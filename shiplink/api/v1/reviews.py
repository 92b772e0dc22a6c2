"""Review queue endpoints: browse, act on, and resolve ambiguous links."""

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from shiplink.dependencies import get_db, get_hitl_service, get_reconciliation_service
from shiplink.hitl_workflow.service import HITLService
from shiplink.models.review import ReviewItem
from shiplink.schemas.review import (
    LinkResolutionRequest,
    ReviewActionRequest,
    ReviewItemListResponse,
    ReviewItemResponse,
    ReviewQueueStats,
)
from shiplink.shipments.service import ShipmentReconciliationService

router = APIRouter()


def _item_to_response(item: ReviewItem) -> ReviewItemResponse:
    return ReviewItemResponse(
        id=item.id,
        status=item.status.value,
        item_type=item.item_type.value,
        entity_id=item.entity_id,
        entity_type=item.entity_type,
        title=item.title,
        description=item.description,
        severity=item.severity,
        reason_code=item.reason_code,
        reviewed_by=item.reviewed_by,
        reviewed_at=item.reviewed_at,
        review_notes=item.review_notes,
        metadata=item.review_metadata,
        created_at=item.created_at,
    )


@router.get("/queue", response_model=ReviewItemListResponse)
async def get_queue(
    status: str | None = None,
    item_type: str | None = None,
    page: int = 1,
    per_page: int = 20,
    db: AsyncSession = Depends(get_db),
    hitl: HITLService = Depends(get_hitl_service),
) -> ReviewItemListResponse:
    """Get the review queue with optional filtering."""
    try:
        items, total = await hitl.get_queue(
            db, status=status, item_type=item_type, page=page, per_page=per_page,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ReviewItemListResponse(
        items=[_item_to_response(i) for i in items],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/stats", response_model=ReviewQueueStats)
async def get_stats(
    db: AsyncSession = Depends(get_db),
    hitl: HITLService = Depends(get_hitl_service),
) -> ReviewQueueStats:
    """Get review queue statistics."""
    stats = await hitl.get_stats(db)
    return ReviewQueueStats(**stats)


@router.get("/{item_id}", response_model=ReviewItemResponse)
async def get_item(
    item_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    hitl: HITLService = Depends(get_hitl_service),
) -> ReviewItemResponse:
    try:
        item = await hitl.get_item(db, item_id)
    except ValueError:
        raise HTTPException(status_code=404, detail="Review item not found")
    return _item_to_response(item)


@router.post("/{item_id}/action", response_model=ReviewItemResponse)
async def review_action(
    item_id: uuid.UUID,
    request: ReviewActionRequest,
    db: AsyncSession = Depends(get_db),
    hitl: HITLService = Depends(get_hitl_service),
) -> ReviewItemResponse:
    """Act on a review item (resolve/reject/escalate)."""
    try:
        item = await hitl.review_item(
            db, item_id, request.action, reviewed_by=request.reviewed_by, notes=request.notes,
        )
    except ValueError as e:
        detail = str(e)
        raise HTTPException(status_code=404 if "not found" in detail else 400, detail=detail)
    await db.refresh(item)
    return _item_to_response(item)


@router.post("/{item_id}/link", response_model=ReviewItemResponse)
async def resolve_link(
    item_id: uuid.UUID,
    request: LinkResolutionRequest,
    db: AsyncSession = Depends(get_db),
    hitl: HITLService = Depends(get_hitl_service),
    reconciler: ShipmentReconciliationService = Depends(get_reconciliation_service),
) -> ReviewItemResponse:
    """Resolve an ambiguous link by choosing one of the candidate shipments."""
    try:
        await reconciler.link_manually(
            db, item_id, request.shipment_id, reviewed_by=request.reviewed_by, notes=request.notes,
        )
    except ValueError as e:
        detail = str(e)
        raise HTTPException(status_code=404 if "not found" in detail else 400, detail=detail)
    item = await hitl.get_item(db, item_id)
    await db.refresh(item)
    return _item_to_response(item)
