"""ORM model for document-to-shipment links."""

import enum
import uuid

import sqlalchemy as sa
from sqlalchemy import Enum as SAEnum, ForeignKey, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from shiplink.models.base import Base, TimestampMixin


class LinkMethod(str, enum.Enum):
    CASCADE = "cascade"            # matched an existing shipment
    CREATED = "created"            # document created the shipment
    ORPHAN_RELINK = "orphan_relink"  # orphan matched after the index changed
    MANUAL = "manual"              # resolved from the review queue


class ShipmentDocumentLink(Base, TimestampMixin):
    __tablename__ = "shipment_document_links"
    __table_args__ = (
        sa.UniqueConstraint(
            "document_id", "shipment_id",
            name="uq_shipment_document_links_doc_shipment",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id"), nullable=False, index=True
    )
    shipment_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("shipments.id"), nullable=False, index=True
    )
    matched_by: Mapped[str | None] = mapped_column(String(50), nullable=True)
    matched_value: Mapped[str | None] = mapped_column(String(200), nullable=True)
    link_method: Mapped[LinkMethod] = mapped_column(
        SAEnum(
            LinkMethod,
            name="link_method",
            values_callable=lambda e: [member.value for member in e],
        ),
        default=LinkMethod.CASCADE,
        nullable=False,
    )
    created_by: Mapped[str] = mapped_column(String(50), default="system", nullable=False)
