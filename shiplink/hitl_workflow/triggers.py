"""Review triggers: pure functions deciding whether a decision needs a human.

No DB or service dependencies, easy to unit test.
"""


def should_review_link(
    outcome: str,
    candidate_count: int = 0,
    linked_elsewhere: bool = False,
) -> tuple[bool, str]:
    """Ambiguous cascade results and conflicts with an existing link go to review.

    Returns (needs_review, reason).
    """
    if linked_elsewhere:
        return True, "Document is already linked to another shipment; keeping the existing link"
    if outcome == "ambiguous":
        return True, f"Identifier matches {candidate_count} shipments; refusing to guess"
    return False, f"Link outcome {outcome} needs no review"


def should_review_classification(
    method: str,
    document_type: str,
    has_identifiers: bool,
) -> tuple[bool, str]:
    """A failed classification is worth a human look only if it carries identifiers.

    Unknown documents without identifiers cannot affect any shipment.
    """
    if method != "fallback" and document_type != "unknown":
        return False, "Classified"

    if not has_identifiers:
        return False, "Unclassified, but carries no shipment identifiers"

    return True, "Classification failed for a document that references a shipment"
