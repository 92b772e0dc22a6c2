"""Authority-gated merge of a document's entities into shipment field slots.

Pure functions, no DB dependency. Every scalar field goes through
``authority.resolver.resolve``; container numbers are append-only.
"""

import uuid
from dataclasses import dataclass, field

from shiplink.authority.resolver import AuthorityDecision, AuthorityRuleSet, resolve
from shiplink.extraction.aggregator import EntitySet


@dataclass(frozen=True)
class FieldDecision:
    entity_type: str
    value: str
    decision: AuthorityDecision
    previous: dict | None = None


@dataclass
class MergeResult:
    field_values: dict
    decisions: list[FieldDecision] = field(default_factory=list)
    new_containers: list[str] = field(default_factory=list)

    @property
    def updated_fields(self) -> list[str]:
        return [d.entity_type for d in self.decisions if d.decision.update]


def make_slot(value: str, document_type: str, document_id: uuid.UUID | None, level: int | None) -> dict:
    return {
        "value": value,
        "source_document_type": document_type,
        "source_document_id": str(document_id) if document_id else None,
        "authority_level": level,
    }


def merge_entities(
    field_values: dict | None,
    existing_containers,
    entities: EntitySet,
    document_type: str,
    document_id: uuid.UUID | None,
    rules: AuthorityRuleSet,
) -> MergeResult:
    """Apply one document's entities to the current field slots.

    Returns a new field_values dict; the input is not modified.
    """
    merged = {k: dict(v) for k, v in (field_values or {}).items()}
    decisions: list[FieldDecision] = []

    for entity_type, value in entities.values.items():
        current = merged.get(entity_type)
        decision = resolve(
            entity_type,
            document_type,
            value,
            existing_doc_type=current.get("source_document_type") if current else None,
            existing_value=current.get("value") if current else None,
            rules=rules,
        )
        decisions.append(
            FieldDecision(entity_type=entity_type, value=value, decision=decision, previous=current)
        )
        if decision.update:
            merged[entity_type] = make_slot(value, document_type, document_id, decision.new_level)

    known = set(existing_containers)
    new_containers = []
    for container in entities.container_numbers:
        if container not in known:
            known.add(container)
            new_containers.append(container)

    return MergeResult(field_values=merged, decisions=decisions, new_containers=new_containers)
