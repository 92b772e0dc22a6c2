import enum
from uuid import UUID

from pydantic import BaseModel, Field


class DocumentType(str, enum.Enum):
    """Closed set of freight document types a classifier may assign."""

    BOOKING_CONFIRMATION = "booking_confirmation"
    BOOKING_AMENDMENT = "booking_amendment"
    BOOKING_CANCELLATION = "booking_cancellation"
    SHIPPING_INSTRUCTION = "shipping_instruction"
    VGM_CONFIRMATION = "vgm_confirmation"
    SOB_CONFIRMATION = "sob_confirmation"
    BILL_OF_LADING = "bill_of_lading"
    HOUSE_BL = "house_bl"
    INVOICE = "invoice"
    ARRIVAL_NOTICE = "arrival_notice"
    DUTY_INVOICE = "duty_invoice"
    CUSTOMS_CLEARANCE = "customs_clearance"
    DELIVERY_ORDER = "delivery_order"
    CONTAINER_RELEASE = "container_release"
    PROOF_OF_DELIVERY = "proof_of_delivery"
    GENERAL_CORRESPONDENCE = "general_correspondence"
    UNKNOWN = "unknown"


class Direction(str, enum.Enum):
    """Who sent the document relative to our organization.

    UNKNOWN is a real value, not a missing one: callers must decide what to do
    with it instead of assuming inbound.
    """

    INBOUND = "inbound"
    OUTBOUND = "outbound"
    UNKNOWN = "unknown"


class SenderCategory(str, enum.Enum):
    CARRIER = "carrier"
    OWN_ORGANIZATION = "own_organization"
    EXTERNAL = "external"
    UNKNOWN = "unknown"


class ThreadRole(str, enum.Enum):
    ORIGINAL = "original"
    REPLY = "reply"
    FORWARD = "forward"


class ClassificationMethod(str, enum.Enum):
    PATTERN = "pattern"
    AI = "ai"
    THREAD = "thread"
    FALLBACK = "fallback"


# --- API schemas ---


class ClassificationResponse(BaseModel):
    document_id: UUID
    document_type: DocumentType
    direction: Direction
    sender_category: SenderCategory
    thread_role: ThreadRole
    thread_depth: int = 0
    confidence: int = Field(..., ge=0, le=100)
    method: ClassificationMethod
    matched_pattern_id: str | None = None
    carrier_id: str | None = None
    reason: str
