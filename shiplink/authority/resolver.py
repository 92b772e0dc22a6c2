"""Authority resolution: which document type is allowed to set a shipment field.

Pure functions over an in-memory ``AuthorityRuleSet``. Lower authority_level
means more trusted. Every call returns an ``AuthorityDecision`` with a reason,
including the "no update" outcomes.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field

from shiplink.errors import ReasonCode

# Level assumed for a source with no rule at all.
UNRANKED_LEVEL = 999


@dataclass(frozen=True)
class AuthorityRuleSpec:
    """Value object for one (document_type, entity_type) rule."""

    document_type: str
    entity_type: str
    authority_level: int
    can_override_from: frozenset[str] = field(default_factory=frozenset)


class AuthorityRuleSet:
    """Lookup table of rules keyed by (document_type, entity_type)."""

    def __init__(self, rules: Iterable[AuthorityRuleSpec] = ()):
        self._rules: dict[tuple[str, str], AuthorityRuleSpec] = {}
        for rule in rules:
            self._rules[(rule.document_type, rule.entity_type)] = rule

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self):
        return iter(self._rules.values())

    def get(self, document_type: str | None, entity_type: str) -> AuthorityRuleSpec | None:
        if document_type is None:
            return None
        return self._rules.get((_key(document_type), _key(entity_type)))

    def level_for(self, document_type: str | None, entity_type: str) -> int:
        rule = self.get(document_type, entity_type)
        return rule.authority_level if rule else UNRANKED_LEVEL


@dataclass(frozen=True)
class AuthorityDecision:
    update: bool
    reason_code: ReasonCode
    reason: str
    new_level: int | None = None
    existing_level: int | None = None


def _key(value) -> str:
    return getattr(value, "value", value)


def resolve(
    entity_type: str,
    new_doc_type: str,
    new_value: str | None,
    existing_doc_type: str | None = None,
    existing_value: str | None = None,
    *,
    rules: AuthorityRuleSet,
) -> AuthorityDecision:
    """Decide whether ``new_value`` from ``new_doc_type`` replaces the stored value.

    1. No rule for the new document type: it is not authoritative, no update.
    2. Nothing stored yet: update.
    3. Existing source without a rule ranks at UNRANKED_LEVEL.
    4. The new rule lists the existing type in can_override_from: update.
    5. Strictly more authoritative (lower level): update.
    6. Otherwise the existing source keeps the field.
    """
    entity_type = _key(entity_type)
    new_doc_type = _key(new_doc_type)
    existing_doc_type = _key(existing_doc_type) if existing_doc_type else None

    new_rule = rules.get(new_doc_type, entity_type)
    if new_rule is None:
        return AuthorityDecision(
            update=False,
            reason_code=ReasonCode.NOT_AUTHORITATIVE,
            reason=f"{new_doc_type} is not authoritative for {entity_type}",
        )

    new_level = new_rule.authority_level

    if existing_value is None or existing_value == "":
        return AuthorityDecision(
            update=True,
            reason_code=ReasonCode.NO_EXISTING_VALUE,
            reason=f"{entity_type} was empty; set from {new_doc_type} (level {new_level})",
            new_level=new_level,
        )

    existing_level = rules.level_for(existing_doc_type, entity_type)

    if new_value == existing_value and new_doc_type == existing_doc_type:
        return AuthorityDecision(
            update=False,
            reason_code=ReasonCode.SAME_VALUE,
            reason=f"{entity_type} already holds {existing_value!r} from {existing_doc_type}",
            new_level=new_level,
            existing_level=existing_level,
        )

    if existing_doc_type and existing_doc_type in new_rule.can_override_from:
        return AuthorityDecision(
            update=True,
            reason_code=ReasonCode.EXPLICIT_OVERRIDE,
            reason=f"{new_doc_type} explicitly overrides {existing_doc_type} for {entity_type}",
            new_level=new_level,
            existing_level=existing_level,
        )

    if new_level < existing_level:
        return AuthorityDecision(
            update=True,
            reason_code=ReasonCode.HIGHER_AUTHORITY,
            reason=(
                f"{new_doc_type} (level {new_level}) outranks "
                f"{existing_doc_type or 'unranked source'} (level {existing_level}) for {entity_type}"
            ),
            new_level=new_level,
            existing_level=existing_level,
        )

    return AuthorityDecision(
        update=False,
        reason_code=ReasonCode.EXISTING_RETAINED,
        reason=(
            f"{existing_doc_type or 'unranked source'} (level {existing_level}) retains {entity_type} "
            f"over {new_doc_type} (level {new_level})"
        ),
        new_level=new_level,
        existing_level=existing_level,
    )
