"""ORM model for normalized entity values, audit only."""

import uuid

import sqlalchemy as sa
from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from shiplink.models.base import Base, TimestampMixin


class EntityValue(Base, TimestampMixin):
    __tablename__ = "entity_values"
    __table_args__ = (
        sa.UniqueConstraint(
            "document_id", "entity_type", "value",
            name="uq_entity_values_doc_type_value",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id"), nullable=False, index=True
    )
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    value: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    source_document_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    confidence: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
