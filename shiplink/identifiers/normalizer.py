"""Identifier normalization for booking, BL and container numbers.

Pure functions with no DB or Claude dependency. ``normalize`` never raises:
malformed input comes back as ``None`` and the rejection is logged with both
the raw and the normalized value.
"""

import enum
import logging
import re
from dataclasses import dataclass

from shiplink.errors import IdentifierValidationError, ReasonCode

logger = logging.getLogger("shiplink.identifiers")


class IdentifierKind(str, enum.Enum):
    BOOKING = "booking"
    BL = "bl"
    CONTAINER = "container"


# ISO 6346 shape: owner code + category (4 letters), serial + check digit.
CONTAINER_PATTERN = re.compile(r"^[A-Z]{4}\d{6,7}$")

# Carrier booking numbers such as COSU6441804980 routinely leak into the
# container field. They share the 4-letter prefix but carry 9+ digits.
BOOKING_SHAPED_PATTERN = re.compile(r"^[A-Z]{4}\d{9,}$")

# Shortest all-digit booking/BL accepted (Maersk bookings are 9 digits).
MIN_NUMERIC_REFERENCE_LENGTH = 8
MIN_REFERENCE_LENGTH = 4

PLACEHOLDER_VALUES = {"TBA", "TBC", "TBD", "NA", "N/A", "NONE", "NULL", "PENDING", "UNKNOWN"}

_CONTAINER_STRIP = re.compile(r"[\s\-.]+")
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class NormalizationOutcome:
    """Result of normalizing one raw identifier."""

    raw: str
    kind: IdentifierKind | str
    normalized: str
    value: str | None
    reason_code: ReasonCode | None = None

    @property
    def accepted(self) -> bool:
        return self.value is not None

    @property
    def reason(self) -> str:
        if self.accepted:
            return f"{self.kind.value} {self.value} accepted"
        return _REJECTION_MESSAGES.get(self.reason_code, "rejected").format(
            kind=getattr(self.kind, "value", self.kind), raw=self.raw, normalized=self.normalized
        )


_REJECTION_MESSAGES = {
    ReasonCode.EMPTY_VALUE: "{kind} value {raw!r} is empty after trimming",
    ReasonCode.INVALID_FORMAT: "{kind} value {normalized!r} does not have a valid shape",
    ReasonCode.DIGITS_ONLY: "{kind} value {normalized!r} is digits only",
    ReasonCode.BOOKING_SHAPED_CONTAINER: (
        "container value {normalized!r} looks like a booking number (4 letters + 9 or more digits)"
    ),
    ReasonCode.UNSUPPORTED_ENTITY: "{kind!r} is not an identifier kind",
}


def _canonical_container(raw: str) -> str:
    return _CONTAINER_STRIP.sub("", raw).upper()


def _canonical_reference(raw: str) -> str:
    return _WHITESPACE.sub("", raw).upper()


def _check_container(value: str) -> None:
    if not value:
        raise IdentifierValidationError("", value, ReasonCode.EMPTY_VALUE)
    if value.isdigit():
        raise IdentifierValidationError("", value, ReasonCode.DIGITS_ONLY)
    if BOOKING_SHAPED_PATTERN.match(value):
        raise IdentifierValidationError("", value, ReasonCode.BOOKING_SHAPED_CONTAINER)
    if not CONTAINER_PATTERN.match(value):
        raise IdentifierValidationError("", value, ReasonCode.INVALID_FORMAT)


def _check_reference(value: str) -> None:
    if not value:
        raise IdentifierValidationError("", value, ReasonCode.EMPTY_VALUE)
    if value in PLACEHOLDER_VALUES or len(value) < MIN_REFERENCE_LENGTH:
        raise IdentifierValidationError("", value, ReasonCode.INVALID_FORMAT)
    if not any(ch.isalnum() for ch in value):
        raise IdentifierValidationError("", value, ReasonCode.INVALID_FORMAT)
    if value.isdigit() and len(value) < MIN_NUMERIC_REFERENCE_LENGTH:
        raise IdentifierValidationError("", value, ReasonCode.DIGITS_ONLY)


def normalize_with_reason(raw: str | None, kind: IdentifierKind | str) -> NormalizationOutcome:
    """Normalize ``raw`` and report why it was rejected, if it was.

    Container numbers: whitespace, hyphens and dots removed, uppercased, must
    match 4 letters + 6-7 digits. Booking and BL numbers are opaque: only
    whitespace and case are normalized, plus rejection of obvious garbage
    (placeholders, short all-digit strings).
    """
    raw_text = "" if raw is None else str(raw)
    try:
        kind = IdentifierKind(kind)
    except ValueError:
        logger.warning("Rejected identifier raw=%r: unknown identifier kind %r", raw_text, kind)
        return NormalizationOutcome(
            raw=raw_text,
            kind=kind,
            normalized=raw_text,
            value=None,
            reason_code=ReasonCode.UNSUPPORTED_ENTITY,
        )

    if kind is IdentifierKind.CONTAINER:
        normalized = _canonical_container(raw_text)
        check = _check_container
    else:
        normalized = _canonical_reference(raw_text)
        check = _check_reference

    try:
        check(normalized)
    except IdentifierValidationError as exc:
        outcome = NormalizationOutcome(
            raw=raw_text,
            kind=kind,
            normalized=normalized,
            value=None,
            reason_code=exc.reason_code,
        )
        logger.warning(
            "Rejected %s identifier raw=%r normalized=%r: %s",
            kind.value, raw_text, normalized, outcome.reason,
        )
        return outcome

    return NormalizationOutcome(raw=raw_text, kind=kind, normalized=normalized, value=normalized)


def normalize(raw: str | None, kind: IdentifierKind | str) -> str | None:
    """Return the canonical identifier, or None when ``raw`` is not usable."""
    return normalize_with_reason(raw, kind).value


def is_valid_check_digit(container: str) -> bool:
    """ISO 6346 check-digit test for an 11-character container number.

    Only used for telemetry; shape alone decides acceptance.
    """
    if len(container) != 11 or not CONTAINER_PATTERN.match(container):
        return False

    total = 0
    for position, char in enumerate(container[:10]):
        if char.isdigit():
            value = int(char)
        else:
            # Letter values start at 10 and skip multiples of 11.
            value = ord(char) - ord("A") + 10
            value += (value - 1) // 10
        total += value * (2 ** position)

    return (total % 11) % 10 == int(container[10])
