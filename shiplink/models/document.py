import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum as SAEnum, Integer, JSON, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from shiplink.models.base import Base, TimestampMixin
from shiplink.schemas.classification import ClassificationMethod, Direction, ThreadRole


class LinkStatus(str, enum.Enum):
    PENDING = "pending"
    LINKED = "linked"
    ORPHAN = "orphan"
    NEEDS_REVIEW = "needs_review"


class Document(Base, TimestampMixin):
    """One ingested message. Upserted by source_message_id."""

    __tablename__ = "documents"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    source_message_id: Mapped[str] = mapped_column(String(512), unique=True, nullable=False)
    received_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    sender_address: Mapped[str | None] = mapped_column(String(512), nullable=True)
    subject: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    body_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    attachment_filenames: Mapped[list | None] = mapped_column(JSON, nullable=True)

    # Classification
    document_type: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    direction: Mapped[Direction] = mapped_column(
        SAEnum(
            Direction,
            name="document_direction",
            values_callable=lambda e: [member.value for member in e],
        ),
        default=Direction.UNKNOWN,
        nullable=False,
    )
    sender_category: Mapped[str | None] = mapped_column(String(50), nullable=True)
    thread_role: Mapped[ThreadRole] = mapped_column(
        SAEnum(
            ThreadRole,
            name="thread_role",
            values_callable=lambda e: [member.value for member in e],
        ),
        default=ThreadRole.ORIGINAL,
        nullable=False,
    )
    thread_depth: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    clean_subject: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    confidence: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    classification_method: Mapped[ClassificationMethod | None] = mapped_column(
        SAEnum(
            ClassificationMethod,
            name="classification_method",
            values_callable=lambda e: [member.value for member in e],
        ),
        nullable=True,
    )
    matched_pattern_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    carrier_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    classification_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Extraction: entity_type -> list of raw values, body and attachments
    raw_entities: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    attachment_entities: Mapped[list | None] = mapped_column(JSON, nullable=True)
    entities: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # Linking
    link_status: Mapped[LinkStatus] = mapped_column(
        SAEnum(
            LinkStatus,
            name="link_status",
            values_callable=lambda e: [member.value for member in e],
        ),
        default=LinkStatus.PENDING,
        nullable=False,
        index=True,
    )
    link_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    link_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
