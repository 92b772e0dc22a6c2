"""Tests for authority resolution, the default rule matrix, and the rule cache."""

import pytest

from shiplink.authority.cache import AuthorityRuleCache
from shiplink.authority.resolver import UNRANKED_LEVEL, AuthorityRuleSet, AuthorityRuleSpec, resolve
from shiplink.authority.rules import (
    DEFAULT_AUTHORITY_RULES,
    default_rule_specs,
    get_active_rules,
    seed_default_rules,
    upsert_rule,
)
from shiplink.errors import ReasonCode


@pytest.fixture
def rules():
    return AuthorityRuleSet(default_rule_specs())


# ── Pure function tests (no DB needed) ──


class TestResolve:
    def test_non_authoritative_source_never_updates(self, rules):
        decision = resolve("vessel_name", "general_correspondence", "EVER GIVEN", rules=rules)
        assert decision.update is False
        assert decision.reason_code == ReasonCode.NOT_AUTHORITATIVE
        assert decision.reason == "general_correspondence is not authoritative for vessel_name"

    def test_empty_field_is_filled(self, rules):
        decision = resolve("vessel_name", "booking_confirmation", "CSCL STAR", rules=rules)
        assert decision.update is True
        assert decision.reason_code == ReasonCode.NO_EXISTING_VALUE
        assert decision.new_level == 1

    def test_explicit_override(self, rules):
        decision = resolve(
            "eta", "arrival_notice", "2025-04-02",
            existing_doc_type="booking_confirmation", existing_value="2025-03-30",
            rules=rules,
        )
        assert decision.update is True
        assert decision.reason_code == ReasonCode.EXPLICIT_OVERRIDE

    def test_amendment_overrides_confirmation_at_same_level(self, rules):
        decision = resolve(
            "vessel_name", "booking_amendment", "CSCL SATURN",
            existing_doc_type="booking_confirmation", existing_value="CSCL STAR",
            rules=rules,
        )
        assert decision.update is True
        assert decision.reason_code == ReasonCode.EXPLICIT_OVERRIDE

    def test_higher_authority_wins(self, rules):
        decision = resolve(
            "port_of_loading", "booking_confirmation", "CNSHA",
            existing_doc_type="shipping_instruction", existing_value="SHANGHAI",
            rules=rules,
        )
        assert decision.update is True
        assert decision.reason_code == ReasonCode.HIGHER_AUTHORITY
        assert decision.existing_level == 3

    def test_lower_authority_retained(self, rules):
        decision = resolve(
            "port_of_loading", "shipping_instruction", "SHANGHAI",
            existing_doc_type="booking_confirmation", existing_value="CNSHA",
            rules=rules,
        )
        assert decision.update is False
        assert decision.reason_code == ReasonCode.EXISTING_RETAINED

    def test_equal_level_without_override_retained(self, rules):
        decision = resolve(
            "vessel_name", "booking_confirmation", "CSCL SATURN",
            existing_doc_type="booking_confirmation", existing_value="CSCL STAR",
            rules=rules,
        )
        assert decision.update is False
        assert decision.reason_code == ReasonCode.EXISTING_RETAINED

    def test_same_value_same_source(self, rules):
        decision = resolve(
            "vessel_name", "booking_confirmation", "CSCL STAR",
            existing_doc_type="booking_confirmation", existing_value="CSCL STAR",
            rules=rules,
        )
        assert decision.update is False
        assert decision.reason_code == ReasonCode.SAME_VALUE

    def test_unranked_existing_source_is_outranked(self, rules):
        decision = resolve(
            "vessel_name", "sob_confirmation", "CSCL STAR",
            existing_doc_type="manual_entry", existing_value="CSCL STR",
            rules=rules,
        )
        assert decision.update is True
        assert decision.existing_level == UNRANKED_LEVEL

    def test_enum_values_accepted(self, rules):
        from shiplink.schemas.classification import DocumentType
        from shiplink.schemas.entities import EntityType

        decision = resolve(EntityType.ETD, DocumentType.SOB_CONFIRMATION, "2025-03-20", rules=rules)
        assert decision.update is True


class TestDefaultRules:
    def test_one_rule_per_pair(self):
        pairs = [(r["document_type"], r["entity_type"]) for r in DEFAULT_AUTHORITY_RULES]
        assert len(pairs) == len(set(pairs))

    def test_general_correspondence_has_no_authority(self, rules):
        assert all(rule.document_type != "general_correspondence" for rule in rules)

    def test_rule_set_lookup(self, rules):
        assert rules.level_for("bill_of_lading", "bl_number") == 1
        assert rules.level_for("invoice", "bl_number") == UNRANKED_LEVEL
        assert rules.get(None, "bl_number") is None


# ── Rule cache ──


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestAuthorityRuleCache:
    @pytest.fixture
    def loader(self):
        calls = []

        async def load():
            calls.append(1)
            return [AuthorityRuleSpec("booking_confirmation", "vessel_name", len(calls))]

        load.calls = calls
        return load

    @pytest.mark.asyncio
    async def test_first_read_loads(self, loader):
        cache = AuthorityRuleCache(loader, ttl_seconds=60, clock=FakeClock())
        assert cache.is_fresh is False

        rules = await cache.get_rules()

        assert len(rules) == 1
        assert cache.load_count == 1
        assert cache.is_fresh is True

    @pytest.mark.asyncio
    async def test_hits_within_ttl(self, loader):
        clock = FakeClock()
        cache = AuthorityRuleCache(loader, ttl_seconds=60, clock=clock)
        await cache.get_rules()
        clock.now += 59
        await cache.get_rules()
        assert len(loader.calls) == 1

    @pytest.mark.asyncio
    async def test_reloads_after_ttl(self, loader):
        clock = FakeClock()
        cache = AuthorityRuleCache(loader, ttl_seconds=60, clock=clock)
        await cache.get_rules()
        clock.now += 61

        rules = await cache.get_rules()

        assert len(loader.calls) == 2
        assert rules.level_for("booking_confirmation", "vessel_name") == 2

    @pytest.mark.asyncio
    async def test_invalidate_forces_reload(self, loader):
        cache = AuthorityRuleCache(loader, ttl_seconds=60, clock=FakeClock())
        await cache.get_rules()
        cache.invalidate()
        await cache.get_rules()
        assert cache.load_count == 2

    @pytest.mark.asyncio
    async def test_refresh_ignores_age(self, loader):
        cache = AuthorityRuleCache(loader, ttl_seconds=60, clock=FakeClock())
        await cache.get_rules()
        await cache.refresh()
        assert cache.load_count == 2


# ── Rule storage (need DB) ──


class TestRuleStorage:
    @pytest.mark.asyncio
    async def test_seed_once(self, db_session):
        first = await seed_default_rules(db_session)
        second = await seed_default_rules(db_session)

        assert first == len(DEFAULT_AUTHORITY_RULES)
        assert second == 0
        assert len(await get_active_rules(db_session)) == first

    @pytest.mark.asyncio
    async def test_upsert_replaces_existing_rule(self, db_session):
        await upsert_rule(db_session, "arrival_notice", "eta", 2)
        rule = await upsert_rule(db_session, "arrival_notice", "eta", 1, ["booking_confirmation"])

        rules = await get_active_rules(db_session)
        assert len(rules) == 1
        assert rule.authority_level == 1
        assert rule.can_override_from == ["booking_confirmation"]

    @pytest.mark.asyncio
    async def test_inactive_rules_not_loaded(self, db_session):
        await upsert_rule(db_session, "invoice", "carrier_name", 3, is_active=False)
        assert await get_active_rules(db_session) == []
