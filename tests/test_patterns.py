"""Tests for carrier classification rules, sender resolution, and thread analysis."""

from shiplink.document_classifier.direction import resolve_sender, sender_domain
from shiplink.document_classifier.patterns import (
    CARRIER_RULE_SETS,
    COSCO,
    MAERSK,
    CarrierRuleSet,
    ClassificationInput,
    carrier_for_sender,
    match_patterns,
    subject_rule,
)
from shiplink.document_classifier.thread import analyze_thread, split_body, strip_prefixes
from shiplink.schemas.classification import Direction, DocumentType, SenderCategory, ThreadRole


def _item(subject, sender, attachments=(), body=""):
    return ClassificationInput(
        subject=subject, sender=sender, body=body, attachment_filenames=tuple(attachments)
    )


# ── Carrier rule sets ──


class TestCarrierRules:
    def test_maersk_booking_confirmation_with_pdf(self):
        match = match_patterns(
            _item("Booking Confirmation : 262834561", "noreply@maersk.com", ["262834561.pdf"])
        )
        assert match.document_type == DocumentType.BOOKING_CONFIRMATION
        assert match.confidence == 100
        assert match.pattern_id == "maersk.booking_confirmation"
        assert match.carrier_id == "maersk"

    def test_maersk_booking_confirmation_requires_pdf(self):
        match = match_patterns(_item("Booking Confirmation : 262834561", "noreply@maersk.com"))
        assert match is None or match.pattern_id != "maersk.booking_confirmation"

    def test_sealand_uses_maersk_rules(self):
        assert carrier_for_sender("docs@sealand.com") is MAERSK

    def test_subdomain_matches_carrier(self):
        assert carrier_for_sender("Ops <ops@in.maersk.com>") is MAERSK

    def test_cosco_booking_confirmation(self):
        match = match_patterns(
            _item(
                "Cosco Shipping Line Booking Confirmation - COSU6441804980",
                "Booking Desk <noreply@coscon.com>",
                ["COSU6441804980_BC.pdf"],
            )
        )
        assert match.pattern_id == "cosco.booking_confirmation"
        assert match.document_type == DocumentType.BOOKING_CONFIRMATION

    def test_cosco_shipping_instruction(self):
        match = match_patterns(
            _item(
                "COSCO SHIPPING LINES - 6441804980 - Document Shipping Instruction",
                "noreply@coscon.com",
            )
        )
        assert match.pattern_id == "cosco.shipping_instruction"
        assert match.document_type == DocumentType.SHIPPING_INSTRUCTION
        assert match.confidence == 90

    def test_attachment_pattern_alone_matches(self):
        match = match_patterns(_item("Documents", "billing@maersk.com", ["invoice_ABC123.pdf"]))
        assert match.pattern_id == "maersk.invoice"

    def test_unknown_sender_never_matches(self):
        match = match_patterns(
            _item("Booking Confirmation : 262834561", "someone@forwarder.example", ["bc.pdf"])
        )
        assert match is None

    def test_same_subject_from_other_carrier_does_not_match(self):
        match = match_patterns(
            _item("Cosco Shipping Line Booking Confirmation - COSU6441804980", "noreply@maersk.com", ["bc.pdf"])
        )
        assert match is None

    def test_rules_ordered_by_confidence(self):
        for rule_set in CARRIER_RULE_SETS:
            confidences = [rule.confidence for rule in rule_set.rules]
            assert confidences == sorted(confidences, reverse=True)

    def test_rules_stamped_with_carrier(self):
        assert all(rule.carrier_id == "cosco" for rule in COSCO.rules)

    def test_new_carrier_added_without_touching_others(self):
        custom = CarrierRuleSet(
            carrier_id="zim",
            name="ZIM",
            domains=frozenset({"zim.com"}),
            rules=(subject_rule("zim.booking_confirmation", DocumentType.BOOKING_CONFIRMATION, 95, r"^ZIM Booking"),),
        )
        rule_sets = [*CARRIER_RULE_SETS, custom]
        match = match_patterns(_item("ZIM Booking 123", "ops@zim.com"), rule_sets)
        assert match.pattern_id == "zim.booking_confirmation"
        assert match.carrier_id == "zim"


# ── Sender resolution ──


class TestSenderResolution:
    OWN = {"intoglo.com"}

    def test_sender_domain_parses_display_name(self):
        assert sender_domain("Maersk Line <NoReply@Maersk.com>") == "maersk.com"

    def test_sender_domain_missing(self):
        assert sender_domain("not an address") is None
        assert sender_domain(None) is None

    def test_own_domain_is_outbound(self):
        ctx = resolve_sender("ops@intoglo.com", self.OWN)
        assert ctx.direction == Direction.OUTBOUND
        assert ctx.category == SenderCategory.OWN_ORGANIZATION

    def test_carrier_is_inbound(self):
        ctx = resolve_sender("noreply@coscon.com", self.OWN)
        assert ctx.direction == Direction.INBOUND
        assert ctx.category == SenderCategory.CARRIER

    def test_unparseable_sender_is_unknown(self):
        ctx = resolve_sender("", self.OWN)
        assert ctx.direction == Direction.UNKNOWN
        assert ctx.category == SenderCategory.UNKNOWN

    def test_external_sender_uses_configured_direction(self):
        ctx = resolve_sender("buyer@customer.example", self.OWN, unrecognized_direction=Direction.UNKNOWN)
        assert ctx.category == SenderCategory.EXTERNAL
        assert ctx.direction == Direction.UNKNOWN

    def test_external_sender_defaults_inbound(self):
        ctx = resolve_sender("buyer@customer.example", self.OWN)
        assert ctx.direction == Direction.INBOUND


# ── Thread analysis ──


class TestThreadAnalysis:
    def test_original_message(self):
        clean, depth, role = strip_prefixes("Booking Confirmation : 123")
        assert (clean, depth, role) == ("Booking Confirmation : 123", 0, ThreadRole.ORIGINAL)

    def test_stacked_prefixes(self):
        clean, depth, role = strip_prefixes("RE: FW: RE: Booking Confirmation : 123")
        assert clean == "Booking Confirmation : 123"
        assert depth == 3
        assert role == ThreadRole.REPLY

    def test_forward_role_from_outermost_prefix(self):
        _, _, role = strip_prefixes("Fwd: RE: Arrival notice 123")
        assert role == ThreadRole.FORWARD

    def test_split_body_at_wrote_marker(self):
        body = "Please see the update.\n\nOn Mon, 3 Mar 2025 at 10:00, Ops <ops@maersk.com> wrote:\n> old text"
        fresh, quoted = split_body(body)
        assert fresh == "Please see the update."
        assert quoted.startswith("On Mon")

    def test_split_body_at_quoted_lines(self):
        fresh, quoted = split_body("Noted\n> Booking Confirmation : 123\n> Vessel X")
        assert fresh == "Noted"
        assert "Vessel X" in quoted

    def test_acknowledgement_has_no_new_content(self):
        ctx = analyze_thread("RE: Booking Confirmation : 123", "Noted, thanks.\n\nBest regards\nAnna")
        assert ctx.is_reply_or_forward
        assert ctx.has_new_content() is False

    def test_substantive_reply_has_new_content(self):
        ctx = analyze_thread(
            "RE: Booking Confirmation : 123",
            "Please amend the vessel to MAERSK KENSINGTON and move the cargo cutoff to Friday.",
        )
        assert ctx.has_new_content() is True
