from shiplink.models.base import Base, TimestampMixin
from shiplink.models.document import Document, LinkStatus
from shiplink.models.attachment_text import AttachmentText
from shiplink.models.entity_value import EntityValue
from shiplink.models.shipment import Shipment, ShipmentContainer
from shiplink.models.link import LinkMethod, ShipmentDocumentLink
from shiplink.models.authority_rule import AuthorityRule
from shiplink.models.workflow_transition import WorkflowTransition
from shiplink.models.job_checkpoint import JobCheckpoint, JobStatus
from shiplink.models.audit import AuditEvent
from shiplink.models.review import ReviewItem, ReviewItemType, ReviewStatus

__all__ = [
    "Base",
    "TimestampMixin",
    "Document",
    "LinkStatus",
    "AttachmentText",
    "EntityValue",
    "Shipment",
    "ShipmentContainer",
    "LinkMethod",
    "ShipmentDocumentLink",
    "AuthorityRule",
    "WorkflowTransition",
    "JobCheckpoint",
    "JobStatus",
    "AuditEvent",
    "ReviewItem",
    "ReviewItemType",
    "ReviewStatus",
]
