"""Error taxonomy and reason codes.

Every decision the engine makes (identifier rejection, classification, link
outcome, authority decision, state transition) carries a ``ReasonCode`` plus
a human readable explanation. Exceptions below are only raised where a caller
is expected to catch them and convert them into one of those decisions.
"""

import enum
import uuid

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError


class ReasonCode(str, enum.Enum):
    # Identifier normalization
    EMPTY_VALUE = "empty_value"
    INVALID_FORMAT = "invalid_format"
    DIGITS_ONLY = "digits_only"
    BOOKING_SHAPED_CONTAINER = "booking_shaped_container"
    UNSUPPORTED_ENTITY = "unsupported_entity"

    # Classification
    PATTERN_MATCH = "pattern_match"
    AI_CLASSIFIED = "ai_classified"
    THREAD_NO_NEW_CONTENT = "thread_no_new_content"
    CLASSIFICATION_FAILED = "classification_failed"

    # Linking
    MATCHED_BOOKING = "matched_booking_number"
    MATCHED_BL = "matched_bl_number"
    MATCHED_CONTAINER = "matched_container_number"
    CREATED_SHIPMENT = "created_shipment"
    NO_IDENTIFIERS = "no_identifiers"
    NO_MATCH = "no_match"
    AMBIGUOUS_MATCH = "ambiguous_match"
    MATCHED_BY_REVIEW = "matched_by_review"
    LINK_CONFLICT = "link_conflict"

    # Authority
    NOT_AUTHORITATIVE = "not_authoritative"
    NO_EXISTING_VALUE = "no_existing_value"
    EXPLICIT_OVERRIDE = "explicit_override"
    HIGHER_AUTHORITY = "higher_authority"
    EXISTING_RETAINED = "existing_retained"
    SAME_VALUE = "same_value"

    # Workflow
    STATE_ADVANCED = "state_advanced"
    STATE_UNCHANGED = "state_unchanged"
    BOOKING_CANCELLED = "booking_cancelled"
    NO_STATE_DERIVED = "no_state_derived"


class ShiplinkError(Exception):
    """Base class for engine errors."""

    reason_code: ReasonCode | None = None


class IdentifierValidationError(ShiplinkError):
    """An identifier failed normalization. Never escapes the normalizer."""

    def __init__(self, raw: str, normalized: str, reason_code: ReasonCode):
        self.raw = raw
        self.normalized = normalized
        self.reason_code = reason_code
        super().__init__(f"{reason_code.value}: {raw!r} -> {normalized!r}")


class ClassificationFailure(ShiplinkError):
    """AI classification errored, timed out, or answered outside the closed type set."""

    reason_code = ReasonCode.CLASSIFICATION_FAILED


class ExtractionFailure(ShiplinkError):
    """AI entity extraction errored, timed out, or returned an unusable answer."""


class AmbiguousLinkError(ShiplinkError):
    """An identifier matched more than one shipment."""

    reason_code = ReasonCode.AMBIGUOUS_MATCH

    def __init__(self, matched_by: str, matched_value: str, candidate_ids: list[uuid.UUID]):
        self.matched_by = matched_by
        self.matched_value = matched_value
        self.candidate_ids = candidate_ids
        super().__init__(
            f"{matched_by}={matched_value} matches {len(candidate_ids)} shipments"
        )


class StoreUnavailable(ShiplinkError):
    """The relational store could not be reached. Retried with backoff by batch jobs."""


class BatchAborted(ShiplinkError):
    """A batch job gave up after exhausting store retries."""

    def __init__(self, job_name: str, cursor: str | None, cause: Exception):
        self.job_name = job_name
        self.cursor = cursor
        self.cause = cause
        super().__init__(f"Job {job_name} aborted at cursor {cursor}: {cause}")


def is_store_unavailable(exc: BaseException) -> bool:
    """True for driver errors that mean the database is unreachable, not that a query was wrong."""
    if isinstance(exc, StoreUnavailable):
        return True
    if isinstance(exc, (OperationalError, InterfaceError)):
        return True
    return isinstance(exc, DBAPIError) and bool(exc.connection_invalidated)
