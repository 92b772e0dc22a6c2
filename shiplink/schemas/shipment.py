import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class FieldSlotResponse(BaseModel):
    value: str
    source_document_type: str | None = None
    source_document_id: str | None = None
    authority_level: int | None = None


class ShipmentSummary(BaseModel):
    model_config = {"from_attributes": True}

    id: uuid.UUID
    booking_number: str | None = None
    bl_number: str | None = None
    workflow_state: str | None = None
    workflow_phase: str | None = None
    workflow_state_updated_at: datetime | None = None
    created_at: datetime


class ShipmentListResponse(BaseModel):
    shipments: list[ShipmentSummary]
    next_cursor: uuid.UUID | None = None


class LinkedDocumentResponse(BaseModel):
    document_id: uuid.UUID
    document_type: str | None = None
    direction: str
    subject: str | None = None
    matched_by: str | None = None
    matched_value: str | None = None
    link_method: str
    linked_at: datetime


class TransitionResponse(BaseModel):
    model_config = {"from_attributes": True}

    from_state: str | None = None
    to_state: str
    triggered_by_document_id: uuid.UUID | None = None
    triggered_by_document_type: str | None = None
    reason_code: str
    reason: str | None = None
    created_at: datetime | None = None


class ShipmentDetail(ShipmentSummary):
    progress_percent: int
    fields: dict[str, FieldSlotResponse] = Field(default_factory=dict)
    container_numbers: list[str] = Field(default_factory=list)
    documents: list[LinkedDocumentResponse] = Field(default_factory=list)
    history: list[TransitionResponse] = Field(default_factory=list)


class RebuildResponse(BaseModel):
    shipment_id: uuid.UUID
    previous_state: str | None = None
    rebuilt_state: str | None = None
    workflow_state: str | None = None
    drift: bool
    changed: bool
    reason_code: str
    reason: str
    documents_seen: int
