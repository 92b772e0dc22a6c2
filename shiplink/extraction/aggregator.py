"""Per-document entity aggregation. No DB or Claude dependency.

Body and attachment entities are merged into one EntitySet for the document:
the first non-empty normalized value wins per entity type, except container
numbers, which are collected as a distinct union. Values that fail
normalization are kept aside as RejectedEntity records for the audit log.
"""

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime

from shiplink.errors import ReasonCode
from shiplink.identifiers.normalizer import IdentifierKind, normalize_with_reason
from shiplink.schemas.entities import DATE_ENTITIES, EntityType

# entity_type -> raw values, in the order the extractor reported them
EntityBag = Mapping[str, Iterable[str]]

_IDENTIFIER_KINDS = {
    EntityType.BOOKING_NUMBER: IdentifierKind.BOOKING,
    EntityType.BL_NUMBER: IdentifierKind.BL,
    EntityType.CONTAINER_NUMBER: IdentifierKind.CONTAINER,
}

_UPPERCASE_TEXT = {
    EntityType.VESSEL_NAME,
    EntityType.VOYAGE_NUMBER,
    EntityType.PORT_OF_LOADING,
    EntityType.PORT_OF_DISCHARGE,
}

DATE_FORMATS = [
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%d-%b-%y",
    "%d-%b-%Y",
    "%d %b %Y",
    "%d %B %Y",
    "%b %d, %Y",
    "%B %d, %Y",
    "%d/%m/%Y",
    "%d.%m.%Y",
]

_WHITESPACE = re.compile(r"\s+")

# Two-digit years read through %Y land in year 00xx.
MIN_YEAR = 1970


@dataclass(frozen=True)
class RejectedEntity:
    entity_type: str
    raw_value: str
    source: str
    reason_code: ReasonCode
    reason: str


@dataclass
class EntitySet:
    """Normalized entities for one document."""

    values: dict[str, str] = field(default_factory=dict)
    container_numbers: list[str] = field(default_factory=list)

    def get(self, entity_type: EntityType | str) -> str | None:
        return self.values.get(getattr(entity_type, "value", entity_type))

    @property
    def booking_number(self) -> str | None:
        return self.get(EntityType.BOOKING_NUMBER)

    @property
    def bl_number(self) -> str | None:
        return self.get(EntityType.BL_NUMBER)

    def has_identifiers(self) -> bool:
        return bool(self.booking_number or self.bl_number or self.container_numbers)

    def items(self):
        """Flatten to (entity_type, value) pairs, containers included."""
        pairs = list(self.values.items())
        pairs.extend((EntityType.CONTAINER_NUMBER.value, c) for c in self.container_numbers)
        return pairs

    def to_dict(self) -> dict:
        data: dict = dict(self.values)
        if self.container_numbers:
            data[EntityType.CONTAINER_NUMBER.value] = list(self.container_numbers)
        return data

    @classmethod
    def from_dict(cls, data: dict | None) -> "EntitySet":
        """Inverse of to_dict, for entities persisted on a Document."""
        data = dict(data or {})
        containers = data.pop(EntityType.CONTAINER_NUMBER.value, None) or []
        if isinstance(containers, str):
            containers = [containers]
        return cls(values={k: v for k, v in data.items() if v}, container_numbers=list(containers))


@dataclass
class AggregationResult:
    entities: EntitySet
    rejected: list[RejectedEntity] = field(default_factory=list)


def normalize_date(raw: str) -> str | None:
    """Parse common carrier date spellings into ISO YYYY-MM-DD."""
    text = _WHITESPACE.sub(" ", raw).strip()
    if not text:
        return None

    # Timestamps: keep the date part.
    if "T" in text and text[:4].isdigit():
        text = text.split("T", 1)[0]
    elif len(text) > 10 and text[:4].isdigit() and text[4] in "-/":
        text = text[:10]

    for fmt in DATE_FORMATS:
        try:
            parsed = datetime.strptime(text, fmt).date()
        except ValueError:
            continue
        if parsed.year >= MIN_YEAR:
            return parsed.isoformat()
    return None


def normalize_entity(entity_type: str, raw: str) -> tuple[str | None, ReasonCode | None, str]:
    """Normalize one raw value for its entity type.

    Returns (value, reason_code, reason). ``value`` is None when rejected or
    empty; an empty value has no reason_code since it is not a rejection.
    """
    raw_text = "" if raw is None else str(raw)

    try:
        kind = EntityType(entity_type)
    except ValueError:
        return None, ReasonCode.UNSUPPORTED_ENTITY, f"unsupported entity type {entity_type!r}"

    if not raw_text.strip():
        return None, None, "empty"

    if kind in _IDENTIFIER_KINDS:
        outcome = normalize_with_reason(raw_text, _IDENTIFIER_KINDS[kind])
        return outcome.value, outcome.reason_code, outcome.reason

    if kind in DATE_ENTITIES:
        value = normalize_date(raw_text)
        if value is None:
            return None, ReasonCode.INVALID_FORMAT, f"{kind.value} value {raw_text!r} is not a recognizable date"
        return value, None, "accepted"

    text = _WHITESPACE.sub(" ", raw_text).strip()
    if kind in _UPPERCASE_TEXT:
        text = text.upper()
    return text, None, "accepted"


def group_entities(entities: Iterable) -> dict[str, list[str]]:
    """Turn extractor output (objects or dicts with entity_type/value) into an EntityBag."""
    bag: dict[str, list[str]] = {}
    for entity in entities:
        if isinstance(entity, Mapping):
            entity_type, value = entity.get("entity_type"), entity.get("value")
        else:
            entity_type, value = entity.entity_type, entity.value
        if not entity_type or value is None:
            continue
        bag.setdefault(str(getattr(entity_type, "value", entity_type)), []).append(str(value))
    return bag


def aggregate(
    body_entities: EntityBag | None,
    attachment_entities: Iterable[EntityBag] | None = None,
) -> AggregationResult:
    """Merge body and attachment entities into one EntitySet.

    Sources are read body first, then attachments in order. Within the
    document the first non-empty normalized value of each type wins;
    container numbers are unioned in first-seen order.
    """
    sources: list[tuple[str, EntityBag]] = [("body", body_entities or {})]
    for index, bag in enumerate(attachment_entities or []):
        sources.append((f"attachment[{index}]", bag or {}))

    entity_set = EntitySet()
    rejected: list[RejectedEntity] = []

    for source, bag in sources:
        for entity_type, raw_values in bag.items():
            entity_key = getattr(entity_type, "value", entity_type)
            if isinstance(raw_values, str):
                raw_values = [raw_values]
            for raw in raw_values:
                value, reason_code, reason = normalize_entity(entity_key, raw)
                if value is None:
                    if reason_code is not None:
                        rejected.append(
                            RejectedEntity(
                                entity_type=entity_key,
                                raw_value="" if raw is None else str(raw),
                                source=source,
                                reason_code=reason_code,
                                reason=reason,
                            )
                        )
                    continue

                if entity_key == EntityType.CONTAINER_NUMBER.value:
                    if value not in entity_set.container_numbers:
                        entity_set.container_numbers.append(value)
                elif entity_key not in entity_set.values:
                    entity_set.values[entity_key] = value

    return AggregationResult(entities=entity_set, rejected=rejected)
