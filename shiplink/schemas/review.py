"""Pydantic schemas for the manual review queue."""

import uuid
from datetime import datetime

from pydantic import BaseModel


class ReviewItemResponse(BaseModel):
    id: uuid.UUID
    status: str
    item_type: str
    entity_id: uuid.UUID | None = None
    entity_type: str | None = None
    title: str | None = None
    description: str | None = None
    severity: str | None = None
    reason_code: str | None = None
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    review_notes: str | None = None
    metadata: dict | None = None
    created_at: datetime | None = None


class ReviewItemListResponse(BaseModel):
    items: list[ReviewItemResponse]
    total: int
    page: int
    per_page: int


class ReviewActionRequest(BaseModel):
    action: str  # resolve, reject, escalate
    reviewed_by: str = "user"
    notes: str | None = None


class LinkResolutionRequest(BaseModel):
    shipment_id: uuid.UUID
    reviewed_by: str = "user"
    notes: str | None = None


class ReviewQueueStats(BaseModel):
    total: int
    pending_review: int
    resolved: int
    rejected: int
    escalated: int
