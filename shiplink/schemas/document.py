from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from shiplink.models.document import LinkStatus
from shiplink.schemas.classification import ClassificationMethod, Direction, ThreadRole


class AttachmentIn(BaseModel):
    filename: str
    text: str | None = None


class DocumentIngest(BaseModel):
    source_message_id: str = Field(min_length=1, max_length=512)
    sender: str | None = None
    subject: str | None = None
    body: str | None = None
    received_at: datetime | None = None
    attachment_filenames: list[str] = Field(default_factory=list)
    # Text already extracted from attachments upstream, stored in attachment_texts
    attachments: list[AttachmentIn] = Field(default_factory=list)

    def all_filenames(self) -> list[str]:
        names = list(self.attachment_filenames)
        for attachment in self.attachments:
            if attachment.filename not in names:
                names.append(attachment.filename)
        return names


class DocumentDetail(BaseModel):
    model_config = {"from_attributes": True}

    id: UUID
    source_message_id: str
    received_at: datetime | None = None
    sender_address: str | None = None
    subject: str | None = None
    attachment_filenames: list[str] | None = None
    document_type: str | None = None
    direction: Direction
    sender_category: str | None = None
    thread_role: ThreadRole
    thread_depth: int
    clean_subject: str | None = None
    confidence: int
    classification_method: ClassificationMethod | None = None
    matched_pattern_id: str | None = None
    carrier_id: str | None = None
    classification_reason: str | None = None
    entities: dict | None = None
    link_status: LinkStatus
    link_attempts: int
    link_reason: str | None = None
    created_at: datetime
    updated_at: datetime


class DocumentIngestResponse(BaseModel):
    document: DocumentDetail
    created: bool
    link_outcome: str | None = None
    link_reason: str | None = None
    shipment_id: UUID | None = None
    created_shipment: bool = False
    workflow_state: str | None = None
    review_item_id: UUID | None = None
    rejected_entities: list[dict] = Field(default_factory=list)


class DocumentListResponse(BaseModel):
    documents: list[DocumentDetail]
    total: int
    page: int
    per_page: int
