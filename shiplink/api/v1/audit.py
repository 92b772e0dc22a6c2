"""Audit log endpoints: every reasoned decision, filterable by subject."""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from shiplink.audit_generator.service import AuditService
from shiplink.dependencies import get_db
from shiplink.schemas.audit import AuditEventListResponse, AuditEventResponse

router = APIRouter()


@router.get("/events", response_model=AuditEventListResponse)
async def list_events(
    entity_type: str | None = None,
    entity_id: uuid.UUID | None = None,
    event_type: str | None = None,
    page: int = 1,
    per_page: int = 50,
    db: AsyncSession = Depends(get_db),
) -> AuditEventListResponse:
    """List audit events with optional filtering."""
    events, total = await AuditService.get_events(
        db, entity_type=entity_type, entity_id=entity_id, event_type=event_type, page=page, per_page=per_page,
    )
    return AuditEventListResponse(
        events=[AuditEventResponse.model_validate(e) for e in events],
        total=total,
        page=page,
        per_page=per_page,
    )
