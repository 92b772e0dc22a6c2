"""
Authority rules storage.

Rules live in the authority_rules table and say how trusted each document type
is for each shipment field. DEFAULT_AUTHORITY_RULES is the seed set.
"""

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shiplink.authority.resolver import AuthorityRuleSpec
from shiplink.models.authority_rule import AuthorityRule

logger = logging.getLogger("shiplink.authority.rules")

_SCHEDULE_FIELDS = [
    "vessel_name",
    "voyage_number",
    "port_of_loading",
    "port_of_discharge",
    "etd",
    "eta",
    "si_cutoff",
    "vgm_cutoff",
    "cargo_cutoff",
    "carrier_name",
]


def _rules_for(document_type: str, fields: list[str], level: int, can_override_from=()) -> list[dict]:
    return [
        {
            "document_type": document_type,
            "entity_type": entity_type,
            "authority_level": level,
            "can_override_from": list(can_override_from),
        }
        for entity_type in fields
    ]


# Booking confirmations own the schedule; amendments correct it. The BL owns
# parties and the BL number. Arrival notices and SOB confirmations report the
# actual ETA/ETD and therefore override planned dates.
DEFAULT_AUTHORITY_RULES: list[dict] = [
    *_rules_for("booking_confirmation", ["booking_number", *_SCHEDULE_FIELDS], 1),
    *_rules_for(
        "booking_amendment", _SCHEDULE_FIELDS, 1, can_override_from=["booking_confirmation"]
    ),
    *_rules_for("bill_of_lading", ["bl_number", "shipper_name", "consignee_name"], 1),
    *_rules_for(
        "bill_of_lading", ["vessel_name", "voyage_number", "port_of_loading", "port_of_discharge"], 2
    ),
    *_rules_for("house_bl", ["bl_number", "shipper_name", "consignee_name"], 2),
    *_rules_for("shipping_instruction", ["shipper_name", "consignee_name"], 2),
    *_rules_for("shipping_instruction", ["port_of_loading", "port_of_discharge"], 3),
    *_rules_for(
        "sob_confirmation",
        ["etd"],
        1,
        can_override_from=["booking_confirmation", "booking_amendment"],
    ),
    *_rules_for("sob_confirmation", ["vessel_name", "voyage_number"], 2),
    *_rules_for(
        "arrival_notice",
        ["eta"],
        1,
        can_override_from=["booking_confirmation", "booking_amendment", "bill_of_lading"],
    ),
    *_rules_for("arrival_notice", ["bl_number", "port_of_discharge", "consignee_name"], 2),
    *_rules_for("vgm_confirmation", ["vgm_cutoff"], 2),
    *_rules_for("booking_cancellation", ["booking_number"], 2),
]


def to_rule_spec(rule: AuthorityRule) -> AuthorityRuleSpec:
    return AuthorityRuleSpec(
        document_type=rule.document_type,
        entity_type=rule.entity_type,
        authority_level=rule.authority_level,
        can_override_from=frozenset(rule.can_override_from or []),
    )


def default_rule_specs() -> list[AuthorityRuleSpec]:
    """DEFAULT_AUTHORITY_RULES as value objects, without touching the DB."""
    return [
        AuthorityRuleSpec(
            document_type=data["document_type"],
            entity_type=data["entity_type"],
            authority_level=data["authority_level"],
            can_override_from=frozenset(data["can_override_from"]),
        )
        for data in DEFAULT_AUTHORITY_RULES
    ]


async def get_active_rules(db: AsyncSession) -> list[AuthorityRule]:
    """Load all active authority rules, most authoritative first."""
    result = await db.execute(
        select(AuthorityRule)
        .where(AuthorityRule.is_active.is_(True))
        .order_by(AuthorityRule.authority_level, AuthorityRule.document_type, AuthorityRule.entity_type)
    )
    return list(result.scalars().all())


def db_rule_loader(session_factory: async_sessionmaker):
    """Build a loader for AuthorityRuleCache that reads from its own session."""

    async def load() -> list[AuthorityRuleSpec]:
        async with session_factory() as session:
            rows = await get_active_rules(session)
        return [to_rule_spec(row) for row in rows]

    return load


async def upsert_rule(
    db: AsyncSession,
    document_type: str,
    entity_type: str,
    authority_level: int,
    can_override_from: list[str] | None = None,
    is_active: bool = True,
) -> AuthorityRule:
    """Insert or update the rule for (document_type, entity_type)."""
    result = await db.execute(
        select(AuthorityRule).where(
            AuthorityRule.document_type == document_type,
            AuthorityRule.entity_type == entity_type,
        )
    )
    rule = result.scalar_one_or_none()
    if rule is None:
        rule = AuthorityRule(
            id=uuid.uuid4(),
            document_type=document_type,
            entity_type=entity_type,
        )
        db.add(rule)

    rule.authority_level = authority_level
    rule.can_override_from = list(can_override_from or [])
    rule.is_active = is_active
    await db.flush()
    logger.info(
        "Upserted authority rule %s/%s level=%d overrides=%s",
        document_type, entity_type, authority_level, rule.can_override_from,
    )
    return rule


async def seed_default_rules(db: AsyncSession) -> int:
    """Seed the authority_rules table with DEFAULT_AUTHORITY_RULES.

    Returns the number of rules inserted.
    """
    existing = await db.execute(select(AuthorityRule).limit(1))
    if existing.scalar_one_or_none() is not None:
        logger.info("Authority rules already seeded, skipping")
        return 0

    count = 0
    for rule_data in DEFAULT_AUTHORITY_RULES:
        db.add(AuthorityRule(id=uuid.uuid4(), is_active=True, **rule_data))
        count += 1

    await db.flush()
    logger.info("Seeded %d default authority rules", count)
    return count
