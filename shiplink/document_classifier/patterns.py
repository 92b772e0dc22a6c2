"""Deterministic carrier classification rules.

Each carrier has an ordered list of small rule functions. The sender domain
picks the carrier, then the first rule that fires wins. Rules within a carrier
are sorted most specific first (highest confidence first). Adding a carrier
means adding a ``CarrierRuleSet``; existing rules are untouched.
"""

import re
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field, replace

from shiplink.document_classifier.direction import domain_matches, sender_domain
from shiplink.schemas.classification import DocumentType


@dataclass(frozen=True)
class ClassificationInput:
    subject: str
    sender: str | None = None
    body: str = ""
    attachment_filenames: tuple[str, ...] = ()

    @property
    def has_pdf(self) -> bool:
        return any(name.lower().endswith(".pdf") for name in self.attachment_filenames)


@dataclass(frozen=True)
class PatternMatch:
    document_type: DocumentType
    confidence: int
    pattern_id: str
    carrier_id: str | None = None


Rule = Callable[[ClassificationInput], PatternMatch | None]


@dataclass(frozen=True)
class SubjectRule:
    """Regex over the subject, optionally gated on attachments."""

    pattern_id: str
    document_type: DocumentType
    confidence: int
    subject_patterns: tuple[re.Pattern, ...]
    requires_pdf: bool = False
    attachment_patterns: tuple[re.Pattern, ...] = ()
    carrier_id: str | None = None

    def __call__(self, item: ClassificationInput) -> PatternMatch | None:
        subject = item.subject or ""
        subject_hit = any(p.search(subject) for p in self.subject_patterns)
        attachment_hit = any(
            p.search(name) for p in self.attachment_patterns for name in item.attachment_filenames
        )
        if not subject_hit and not attachment_hit:
            return None
        if self.requires_pdf and not item.has_pdf:
            return None
        return PatternMatch(
            document_type=self.document_type,
            confidence=self.confidence,
            pattern_id=self.pattern_id,
            carrier_id=self.carrier_id,
        )


def subject_rule(
    pattern_id: str,
    document_type: DocumentType,
    confidence: int,
    *patterns: str,
    requires_pdf: bool = False,
    attachments: Sequence[str] = (),
) -> SubjectRule:
    return SubjectRule(
        pattern_id=pattern_id,
        document_type=document_type,
        confidence=confidence,
        subject_patterns=tuple(re.compile(p, re.IGNORECASE) for p in patterns),
        requires_pdf=requires_pdf,
        attachment_patterns=tuple(re.compile(p, re.IGNORECASE) for p in attachments),
    )


def first_match(rules: Iterable[Rule], item: ClassificationInput) -> PatternMatch | None:
    for rule in rules:
        result = rule(item)
        if result is not None:
            return result
    return None


@dataclass(frozen=True)
class CarrierRuleSet:
    carrier_id: str
    name: str
    domains: frozenset[str]
    rules: tuple[SubjectRule, ...] = field(default_factory=tuple)

    def __post_init__(self):
        ordered = sorted(self.rules, key=lambda r: r.confidence, reverse=True)
        # Stamp the carrier on each rule so matches report where they came from.
        stamped = tuple(
            replace(rule, carrier_id=self.carrier_id) for rule in ordered
        )
        object.__setattr__(self, "rules", stamped)

    def applies_to(self, domain: str | None) -> bool:
        return domain is not None and domain_matches(domain, self.domains)

    def classify(self, item: ClassificationInput) -> PatternMatch | None:
        return first_match(self.rules, item)


BC = DocumentType.BOOKING_CONFIRMATION
AMEND = DocumentType.BOOKING_AMENDMENT
CANCEL = DocumentType.BOOKING_CANCELLATION
SI = DocumentType.SHIPPING_INSTRUCTION
VGM = DocumentType.VGM_CONFIRMATION
SOB = DocumentType.SOB_CONFIRMATION
BL = DocumentType.BILL_OF_LADING
INVOICE = DocumentType.INVOICE
ARRIVAL = DocumentType.ARRIVAL_NOTICE
GENERAL = DocumentType.GENERAL_CORRESPONDENCE


MAERSK = CarrierRuleSet(
    carrier_id="maersk",
    name="Maersk Line",
    domains=frozenset({"maersk.com", "sealand.com"}),
    rules=(
        subject_rule(
            "maersk.booking_confirmation", BC, 100,
            r"^Booking Confirmation\s*:\s*\d+", r"^Booking Confirmation\s*-\s*MAEU\d+",
            requires_pdf=True,
        ),
        subject_rule("maersk.sob_confirmation", SOB, 96, r"sea\s?waybill.*shipped on board"),
        subject_rule("maersk.booking_amendment", AMEND, 95, r"^Booking Amendment\s*:\s*\d+"),
        subject_rule("maersk.booking_cancellation", CANCEL, 94, r"^Booking Cancellation\s*:\s*\d+"),
        subject_rule("maersk.arrival_notice", ARRIVAL, 90, r"^Arrival notice\s+\d+", r"^Arrival Notice\s*:"),
        subject_rule("maersk.si_submitted", SI, 90, r"^SI submitted\s+\d+"),
        subject_rule("maersk.exception_report", ARRIVAL, 89, r"Post-Arrival Maersk Exception Report"),
        subject_rule("maersk.amendment_submitted", AMEND, 88, r"^Amendment submitted\s+\d+"),
        subject_rule(
            "maersk.invoice", INVOICE, 85,
            r"^New invoice\s+[A-Z0-9]+\s*\(BL\s+\d+\)", r"^New invoice\s+[A-Z]{2}\d{2}IN\d+",
            attachments=[r"^invoice_[A-Z0-9]+\.pdf$"],
        ),
        subject_rule("maersk.sea_waybill", BL, 81, r"TPDoc.*sea\s?waybill", r"draft sea\s?way\s?bill"),
        subject_rule(
            "maersk.bill_of_lading", BL, 80,
            r"Bill of Lading", r"^B/L\s+", r"Draft BL",
            requires_pdf=True,
        ),
        subject_rule(
            "maersk.vgm_confirmation", VGM, 75,
            r"VGM.*confirm", r"VGM.*received", r"Verified Gross Mass",
        ),
        subject_rule("maersk.case_number", GENERAL, 40, r"^Your Case Number\s*:", r"Case Number\s*:\s*\d+-\d+"),
    ),
)

HAPAG_LLOYD = CarrierRuleSet(
    carrier_id="hapag-lloyd",
    name="Hapag-Lloyd",
    domains=frozenset({"hapag-lloyd.com", "hlag.com", "hlag.cloud"}),
    rules=(
        subject_rule(
            "hapag.booking_confirmation", BC, 100,
            r"^HL-\d+\s+[A-Z]{5}\s+[A-Z]",
            attachments=[r"^HL-\d+.*BC.*\.PDF$"],
        ),
        subject_rule("hapag.booking_update", AMEND, 95, r"^\[Update\]\s+Booking\s+\d+"),
        subject_rule(
            "hapag.arrival_alert", ARRIVAL, 91,
            r"^ALERT\s*-\s*Bill of lading.*POD", r"^ALERT\s*-\s*Bill of lading.*discharge",
        ),
        subject_rule("hapag.si_submitted", SI, 90, r"^Shipping Instruction Submitted\s*Sh#\d+"),
        subject_rule("hapag.si_notification", SI, 89, r"^Shipping Instruction Notification\s*\|\|"),
        subject_rule(
            "hapag.bill_of_lading", BL, 85,
            r"^BL HLCL Sh#\s*\d+\s*Doc#\s*HL[A-Z0-9]+",
            r"^HLCL Sh#\s*\d+\s*Doc#\s*HL[A-Z0-9]+",
            r"^SW HLCL Sh#\s*\d+\s*Doc#\s*HL[A-Z0-9]+",
            attachments=[r"^ANMA\d+_\d+\.pdf$"],
        ),
        subject_rule(
            "hapag.invoice", INVOICE, 80,
            r"^\d+\s+INTOG[LO]\s+001\s+HL[A-Z0-9]+",
            attachments=[r"^INVP\d+\.pdf$"],
        ),
        subject_rule(
            "hapag.vgm_accepted", VGM, 75,
            r"^VGM ACC\s+[A-Z]{4}\d+", r"VGM.*confirm", r"VGM.*received",
        ),
    ),
)

CMA_CGM = CarrierRuleSet(
    carrier_id="cma-cgm",
    name="CMA CGM",
    domains=frozenset({"cma-cgm.com", "apl.com"}),
    rules=(
        subject_rule(
            "cma.booking_confirmation", BC, 100,
            r"^CMA CGM - Booking confirmation available",
            requires_pdf=True,
        ),
        subject_rule("cma.arrival_notice", ARRIVAL, 95, r"^CMA CGM - Arrival notice available"),
        subject_rule("cma.si_submitted", SI, 90, r"^CMA CGM - Shipping instruction submitted"),
        subject_rule("cma.invoice", INVOICE, 80, r"^CMA-CGM Freight Invoice"),
    ),
)

COSCO = CarrierRuleSet(
    carrier_id="cosco",
    name="COSCO Shipping",
    domains=frozenset({"coscon.com", "oocl.com"}),
    rules=(
        subject_rule(
            "cosco.booking_confirmation", BC, 100,
            r"^Cosco Shipping Line Booking Confirmation\s*-\s*COSU\d+",
            requires_pdf=True,
        ),
        subject_rule("cosco.arrival_notice", ARRIVAL, 95, r"^COSCO Arrival Notice"),
        subject_rule(
            "cosco.shipping_instruction", SI, 90,
            r"^COSCO SHIPPING LINES\s*-\s*\d+\s*-\s*Document Shipping Instruction",
        ),
        subject_rule("cosco.bill_of_lading", BL, 85, r"^COSCON\s*-\s*(Proforma |Copy )?Bill of Lading"),
        subject_rule("cosco.invoice", INVOICE, 80, r"^PROD_Invoice\s+INTOGLO"),
    ),
)

MSC = CarrierRuleSet(
    carrier_id="msc",
    name="Mediterranean Shipping Company",
    domains=frozenset({"msc.com"}),
    rules=(
        subject_rule("msc.booking_confirmation", BC, 100, r"MSC.*Booking Confirm"),
        subject_rule("msc.bill_of_lading", BL, 85, r"MSC.*B/L"),
    ),
)

CARRIER_RULE_SETS: list[CarrierRuleSet] = [MAERSK, HAPAG_LLOYD, CMA_CGM, COSCO, MSC]


def carrier_for_sender(
    sender: str | None, rule_sets: Sequence[CarrierRuleSet] = CARRIER_RULE_SETS
) -> CarrierRuleSet | None:
    domain = sender_domain(sender)
    for rule_set in rule_sets:
        if rule_set.applies_to(domain):
            return rule_set
    return None


def match_patterns(
    item: ClassificationInput, rule_sets: Sequence[CarrierRuleSet] = CARRIER_RULE_SETS
) -> PatternMatch | None:
    """Run the sender's carrier rule set. Unknown senders never pattern-match."""
    rule_set = carrier_for_sender(item.sender, rule_sets)
    if rule_set is None:
        return None
    return rule_set.classify(item)
