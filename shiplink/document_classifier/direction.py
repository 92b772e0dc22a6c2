"""Sender resolution: direction and sender category from the sender address."""

from dataclasses import dataclass
from email.utils import parseaddr

from shiplink.schemas.classification import Direction, SenderCategory

# Carrier domains recognised even when no subject rule set exists for them.
KNOWN_CARRIER_DOMAINS = {
    "maersk.com",
    "sealand.com",
    "hapag-lloyd.com",
    "hlag.com",
    "hlag.cloud",
    "cma-cgm.com",
    "apl.com",
    "coscon.com",
    "oocl.com",
    "msc.com",
    "one-line.com",
    "evergreen-line.com",
    "yangming.com",
    "zim.com",
    "hmm21.com",
}


@dataclass(frozen=True)
class SenderContext:
    address: str | None
    domain: str | None
    category: SenderCategory
    direction: Direction
    reason: str


def sender_domain(sender: str | None) -> str | None:
    """Lower-cased domain of an address such as ``"Ops <ops@maersk.com>"``."""
    if not sender:
        return None
    _, address = parseaddr(sender)
    if "@" not in address:
        return None
    domain = address.rsplit("@", 1)[1].strip().lower().rstrip(">")
    return domain or None


def domain_matches(domain: str, candidates) -> bool:
    """Exact match or subdomain match (``in.maersk.com`` matches ``maersk.com``)."""
    return any(domain == c or domain.endswith("." + c) for c in candidates)


def resolve_sender(
    sender: str | None,
    own_domains,
    carrier_domains=KNOWN_CARRIER_DOMAINS,
    unrecognized_direction: Direction = Direction.INBOUND,
) -> SenderContext:
    """Work out who sent a document.

    Own-organization domains are outbound, carrier domains inbound. Senders
    we cannot parse are ``Direction.UNKNOWN``. Any other external sender gets
    ``unrecognized_direction``, which is configurable because a forwarded
    carrier mail from a third party can look inbound when it is not.
    """
    domain = sender_domain(sender)
    if domain is None:
        return SenderContext(
            address=sender,
            domain=None,
            category=SenderCategory.UNKNOWN,
            direction=Direction.UNKNOWN,
            reason="sender address missing or unparseable",
        )

    if domain_matches(domain, own_domains):
        return SenderContext(
            address=sender,
            domain=domain,
            category=SenderCategory.OWN_ORGANIZATION,
            direction=Direction.OUTBOUND,
            reason=f"{domain} is an own-organization domain",
        )

    if domain_matches(domain, carrier_domains):
        return SenderContext(
            address=sender,
            domain=domain,
            category=SenderCategory.CARRIER,
            direction=Direction.INBOUND,
            reason=f"{domain} is a known carrier domain",
        )

    return SenderContext(
        address=sender,
        domain=domain,
        category=SenderCategory.EXTERNAL,
        direction=unrecognized_direction,
        reason=f"{domain} is not recognised; direction set to {unrecognized_direction.value}",
    )
