import uuid

import sqlalchemy as sa
from sqlalchemy import Boolean, Integer, JSON, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from shiplink.models.base import Base, TimestampMixin


class AuthorityRule(Base, TimestampMixin):
    __tablename__ = "authority_rules"
    __table_args__ = (
        sa.UniqueConstraint(
            "document_type", "entity_type",
            name="uq_authority_rules_doc_entity",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    document_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    authority_level: Mapped[int] = mapped_column(Integer, nullable=False)
    can_override_from: Mapped[list | None] = mapped_column(JSON, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
