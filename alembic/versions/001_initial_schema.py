"""Initial schema: documents, shipments, links, authority rules, workflow history

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "documents",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("source_message_id", sa.String(512), nullable=False, unique=True),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sender_address", sa.String(512), nullable=True),
        sa.Column("subject", sa.String(1024), nullable=True),
        sa.Column("body_text", sa.Text, nullable=True),
        sa.Column("attachment_filenames", sa.JSON, nullable=True),
        sa.Column("document_type", sa.String(50), nullable=True),
        sa.Column(
            "direction",
            sa.Enum("inbound", "outbound", "unknown", name="document_direction"),
            nullable=False,
            server_default="unknown",
        ),
        sa.Column("sender_category", sa.String(50), nullable=True),
        sa.Column(
            "thread_role",
            sa.Enum("original", "reply", "forward", name="thread_role"),
            nullable=False,
            server_default="original",
        ),
        sa.Column("thread_depth", sa.Integer, nullable=False, server_default="0"),
        sa.Column("clean_subject", sa.String(1024), nullable=True),
        sa.Column("confidence", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "classification_method",
            sa.Enum("pattern", "ai", "thread", "fallback", name="classification_method"),
            nullable=True,
        ),
        sa.Column("matched_pattern_id", sa.String(100), nullable=True),
        sa.Column("carrier_id", sa.String(50), nullable=True),
        sa.Column("classification_reason", sa.Text, nullable=True),
        sa.Column("raw_entities", sa.JSON, nullable=True),
        sa.Column("attachment_entities", sa.JSON, nullable=True),
        sa.Column("entities", sa.JSON, nullable=True),
        sa.Column(
            "link_status",
            sa.Enum("pending", "linked", "orphan", "needs_review", name="link_status"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("link_attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("link_reason", sa.Text, nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_documents_document_type", "documents", ["document_type"])
    op.create_index("ix_documents_link_status", "documents", ["link_status"])

    op.create_table(
        "attachment_texts",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("document_id", UUID(as_uuid=True), sa.ForeignKey("documents.id"), nullable=False),
        sa.Column("filename", sa.String(512), nullable=False),
        sa.Column("extracted_text", sa.Text, nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_attachment_texts_document_id", "attachment_texts", ["document_id"])

    op.create_table(
        "entity_values",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("document_id", UUID(as_uuid=True), sa.ForeignKey("documents.id"), nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("value", sa.String(500), nullable=False),
        sa.Column("source_document_type", sa.String(50), nullable=True),
        sa.Column("confidence", sa.Integer, nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("document_id", "entity_type", "value", name="uq_entity_values_doc_type_value"),
    )
    op.create_index("ix_entity_values_document_id", "entity_values", ["document_id"])
    op.create_index("ix_entity_values_value", "entity_values", ["value"])

    op.create_table(
        "shipments",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("booking_number", sa.String(100), nullable=True),
        sa.Column("bl_number", sa.String(100), nullable=True),
        sa.Column("field_values", sa.JSON, nullable=True),
        sa.Column("workflow_state", sa.String(50), nullable=True),
        sa.Column("workflow_phase", sa.String(50), nullable=True),
        sa.Column("workflow_state_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_from_document_id", UUID(as_uuid=True), sa.ForeignKey("documents.id"), nullable=True
        ),
        sa.Column("created_by", sa.String(50), nullable=False, server_default="system"),
        *_timestamps(),
    )
    op.create_index("ix_shipments_booking_number", "shipments", ["booking_number"])
    op.create_index("ix_shipments_bl_number", "shipments", ["bl_number"])
    op.create_index("ix_shipments_workflow_state", "shipments", ["workflow_state"])

    op.create_table(
        "shipment_containers",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("shipment_id", UUID(as_uuid=True), sa.ForeignKey("shipments.id"), nullable=False),
        sa.Column("container_number", sa.String(20), nullable=False),
        sa.Column("source_document_id", UUID(as_uuid=True), sa.ForeignKey("documents.id"), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "shipment_id", "container_number", name="uq_shipment_containers_shipment_container"
        ),
    )
    op.create_index("ix_shipment_containers_shipment_id", "shipment_containers", ["shipment_id"])
    op.create_index("ix_shipment_containers_container_number", "shipment_containers", ["container_number"])

    op.create_table(
        "shipment_document_links",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("document_id", UUID(as_uuid=True), sa.ForeignKey("documents.id"), nullable=False),
        sa.Column("shipment_id", UUID(as_uuid=True), sa.ForeignKey("shipments.id"), nullable=False),
        sa.Column("matched_by", sa.String(50), nullable=True),
        sa.Column("matched_value", sa.String(200), nullable=True),
        sa.Column(
            "link_method",
            sa.Enum("cascade", "created", "orphan_relink", "manual", name="link_method"),
            nullable=False,
            server_default="cascade",
        ),
        sa.Column("created_by", sa.String(50), nullable=False, server_default="system"),
        *_timestamps(),
        sa.UniqueConstraint("document_id", "shipment_id", name="uq_shipment_document_links_doc_shipment"),
    )
    op.create_index("ix_shipment_document_links_document_id", "shipment_document_links", ["document_id"])
    op.create_index("ix_shipment_document_links_shipment_id", "shipment_document_links", ["shipment_id"])

    op.create_table(
        "authority_rules",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("document_type", sa.String(50), nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("authority_level", sa.Integer, nullable=False),
        sa.Column("can_override_from", sa.JSON, nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint("document_type", "entity_type", name="uq_authority_rules_doc_entity"),
    )

    op.create_table(
        "workflow_transitions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("shipment_id", UUID(as_uuid=True), sa.ForeignKey("shipments.id"), nullable=False),
        sa.Column("from_state", sa.String(50), nullable=True),
        sa.Column("to_state", sa.String(50), nullable=False),
        sa.Column(
            "triggered_by_document_id", UUID(as_uuid=True), sa.ForeignKey("documents.id"), nullable=True
        ),
        sa.Column("triggered_by_document_type", sa.String(50), nullable=True),
        sa.Column("reason_code", sa.String(50), nullable=False),
        sa.Column("reason", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_workflow_transitions_shipment_id", "workflow_transitions", ["shipment_id"])

    op.create_table(
        "job_checkpoints",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("job_name", sa.String(100), nullable=False, unique=True),
        sa.Column("cursor", sa.String(100), nullable=True),
        sa.Column("processed_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("failed_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "status",
            sa.Enum("running", "stopped", "completed", "aborted", name="job_status"),
            nullable=False,
            server_default="running",
        ),
        sa.Column("last_error", sa.Text, nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "audit_events",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("entity_type", sa.String(100), nullable=True),
        sa.Column("entity_id", UUID(as_uuid=True), nullable=True),
        sa.Column("reason_code", sa.String(50), nullable=True),
        sa.Column("rationale", sa.Text, nullable=True),
        sa.Column("event_data", sa.JSON, nullable=True),
        sa.Column("previous_state", sa.JSON, nullable=True),
        sa.Column("new_state", sa.JSON, nullable=True),
        sa.Column("actor", sa.String(200), nullable=True),
        sa.Column("actor_type", sa.String(50), nullable=True),
        sa.Column("model_used", sa.String(100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_audit_events_event_type", "audit_events", ["event_type"])
    op.create_index("ix_audit_events_entity_id", "audit_events", ["entity_id"])

    op.create_table(
        "review_queue",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "status",
            sa.Enum("pending_review", "resolved", "rejected", "escalated", name="review_status"),
            nullable=False,
            server_default="pending_review",
        ),
        sa.Column(
            "item_type",
            sa.Enum("ambiguous_link", "classification_failure", "link_conflict", name="review_item_type"),
            nullable=False,
        ),
        sa.Column("entity_id", UUID(as_uuid=True), nullable=True),
        sa.Column("entity_type", sa.String(100), nullable=True),
        sa.Column("title", sa.String(500), nullable=True),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("severity", sa.String(20), nullable=False, server_default="medium"),
        sa.Column("reason_code", sa.String(50), nullable=True),
        sa.Column("reviewed_by", sa.String(200), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("review_notes", sa.Text, nullable=True),
        sa.Column("metadata", sa.JSON, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
    )
    op.create_index("ix_review_queue_entity_id", "review_queue", ["entity_id"])


def downgrade() -> None:
    for table in (
        "review_queue",
        "audit_events",
        "job_checkpoints",
        "workflow_transitions",
        "authority_rules",
        "shipment_document_links",
        "shipment_containers",
        "shipments",
        "entity_values",
        "attachment_texts",
        "documents",
    ):
        op.drop_table(table)

    for enum_name in (
        "review_item_type",
        "review_status",
        "job_status",
        "link_method",
        "link_status",
        "classification_method",
        "thread_role",
        "document_direction",
    ):
        op.execute(f"DROP TYPE IF EXISTS {enum_name}")
