"""ORM models for shipments and their append-only container set."""

import uuid
from datetime import datetime

import sqlalchemy as sa
from sqlalchemy import DateTime, ForeignKey, JSON, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from shiplink.models.base import Base, TimestampMixin


class Shipment(Base, TimestampMixin):
    __tablename__ = "shipments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    # Indexed, deliberately not unique: duplicates are a data-quality anomaly
    # the linker has to detect rather than a constraint violation.
    booking_number: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    bl_number: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)

    # field name -> {value, source_document_type, source_document_id, authority_level}
    field_values: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    workflow_state: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    workflow_phase: Mapped[str | None] = mapped_column(String(50), nullable=True)
    workflow_state_updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_from_document_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id"), nullable=True
    )
    created_by: Mapped[str] = mapped_column(String(50), default="system", nullable=False)


class ShipmentContainer(Base, TimestampMixin):
    __tablename__ = "shipment_containers"
    __table_args__ = (
        sa.UniqueConstraint(
            "shipment_id", "container_number",
            name="uq_shipment_containers_shipment_container",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    shipment_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("shipments.id"), nullable=False, index=True
    )
    container_number: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    source_document_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id"), nullable=True
    )
