"""Tests for identifier normalization (booking, BL and container numbers)."""

import pytest

from shiplink.errors import ReasonCode
from shiplink.identifiers.normalizer import (
    IdentifierKind,
    is_valid_check_digit,
    normalize,
    normalize_with_reason,
)


# ── Container numbers ──


class TestContainerNormalization:
    def test_strips_spaces_hyphens_and_case(self):
        assert normalize("msku 123456-7", IdentifierKind.CONTAINER) == "MSKU1234567"

    def test_dots_removed(self):
        assert normalize("TGHU.8763142", "container") == "TGHU8763142"

    def test_six_digit_serial_accepted(self):
        assert normalize("ABCU123456", IdentifierKind.CONTAINER) == "ABCU123456"

    def test_trailing_letter_is_invalid_format(self):
        outcome = normalize_with_reason("MSKU571028X", IdentifierKind.CONTAINER)
        assert outcome.value is None
        assert outcome.accepted is False
        assert outcome.reason_code == ReasonCode.INVALID_FORMAT
        assert "MSKU571028X" in outcome.reason

    def test_booking_shaped_value_rejected(self):
        outcome = normalize_with_reason("COSU6441804980", IdentifierKind.CONTAINER)
        assert outcome.value is None
        assert outcome.reason_code == ReasonCode.BOOKING_SHAPED_CONTAINER
        assert "looks like a booking number" in outcome.reason

    def test_digits_only_rejected(self):
        outcome = normalize_with_reason("1234567", IdentifierKind.CONTAINER)
        assert outcome.reason_code == ReasonCode.DIGITS_ONLY

    def test_empty_rejected(self):
        outcome = normalize_with_reason("  - ", IdentifierKind.CONTAINER)
        assert outcome.value is None
        assert outcome.reason_code == ReasonCode.EMPTY_VALUE

    def test_none_treated_as_empty(self):
        outcome = normalize_with_reason(None, IdentifierKind.CONTAINER)
        assert outcome.raw == ""
        assert outcome.reason_code == ReasonCode.EMPTY_VALUE

    def test_rejection_keeps_raw_and_normalized(self):
        outcome = normalize_with_reason("msku 571028x", IdentifierKind.CONTAINER)
        assert outcome.raw == "msku 571028x"
        assert outcome.normalized == "MSKU571028X"

    def test_rejection_is_logged(self, caplog):
        with caplog.at_level("WARNING", logger="shiplink.identifiers"):
            normalize("COSU6441804980", IdentifierKind.CONTAINER)
        assert "COSU6441804980" in caplog.text


# ── Booking and BL numbers ──


class TestReferenceNormalization:
    def test_booking_opaque_value_kept(self):
        assert normalize(" cosu6441804980 ", IdentifierKind.BOOKING) == "COSU6441804980"

    def test_internal_whitespace_removed(self):
        assert normalize("HLCU HAM 250312345", IdentifierKind.BL) == "HLCUHAM250312345"

    def test_slashes_and_hyphens_allowed(self):
        assert normalize("BL-2024/001", IdentifierKind.BL) == "BL-2024/001"

    def test_short_all_digit_booking_rejected(self):
        outcome = normalize_with_reason("123456", IdentifierKind.BOOKING)
        assert outcome.value is None
        assert outcome.reason_code == ReasonCode.DIGITS_ONLY

    def test_long_all_digit_booking_accepted(self):
        # Maersk bookings are plain 9-digit numbers
        assert normalize("262834561", IdentifierKind.BOOKING) == "262834561"

    @pytest.mark.parametrize("placeholder", ["TBA", "tbc", "N/A", "pending"])
    def test_placeholders_rejected(self, placeholder):
        outcome = normalize_with_reason(placeholder, IdentifierKind.BOOKING)
        assert outcome.value is None
        assert outcome.reason_code == ReasonCode.INVALID_FORMAT

    def test_punctuation_only_rejected(self):
        assert normalize("----", IdentifierKind.BL) is None

    @pytest.mark.parametrize("raw,expected", [
        ("HLCU.DUS2501", "HLCU.DUS2501"),
        ("szx_25010042", "SZX_25010042"),
        ("MEDU#1234567", "MEDU#1234567"),
        ("ABC 12.34", "ABC12.34"),
    ])
    def test_carrier_punctuation_kept(self, raw, expected):
        assert normalize(raw, IdentifierKind.BOOKING) == expected
        assert normalize(raw, IdentifierKind.BL) == expected

    def test_unknown_kind_returns_none(self, caplog):
        with caplog.at_level("WARNING", logger="shiplink.identifiers"):
            outcome = normalize_with_reason("ABC12345", "invoice")

        assert normalize("ABC12345", "invoice") is None
        assert outcome.reason_code == ReasonCode.UNSUPPORTED_ENTITY
        assert outcome.reason == "'invoice' is not an identifier kind"
        assert "invoice" in caplog.text


# ── Idempotence across kinds ──


@pytest.mark.parametrize("kind", list(IdentifierKind))
@pytest.mark.parametrize("raw", [
    " cosu6441804980 ",
    "msku 123456-7",
    "TGHU.8763142",
    "HLCU HAM 250312345",
    "BL-2024/001",
    "HLCU.DUS2501",
    "262834561",
    "123456",
    "MSKU571028X",
    "tba",
    "----",
    "",
])
def test_normalize_is_idempotent(raw, kind):
    once = normalize(raw, kind)
    assert normalize(once, kind) == once


# ── ISO 6346 check digit ──


class TestCheckDigit:
    def test_valid_check_digit(self):
        assert is_valid_check_digit("CSQU3054383") is True

    def test_wrong_check_digit(self):
        assert is_valid_check_digit("CSQU3054384") is False

    def test_six_digit_serial_has_no_check_digit(self):
        assert is_valid_check_digit("CSQU305438") is False
