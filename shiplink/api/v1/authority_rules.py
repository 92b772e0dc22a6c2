"""Authority rule endpoints: inspect, edit, seed, and refresh the rule cache."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from shiplink.audit_generator.service import AuditService
from shiplink.authority.cache import AuthorityRuleCache
from shiplink.authority.rules import get_active_rules, seed_default_rules, upsert_rule
from shiplink.dependencies import get_db, get_rule_cache
from shiplink.schemas.authority import AuthorityRuleResponse, AuthorityRuleUpsert, CacheRefreshResponse

router = APIRouter()


# ── Static routes before parameterized ones ──

@router.get("", response_model=list[AuthorityRuleResponse])
async def list_rules(
    db: AsyncSession = Depends(get_db),
) -> list[AuthorityRuleResponse]:
    """List all active authority rules, most authoritative first."""
    rules = await get_active_rules(db)
    return [AuthorityRuleResponse.model_validate(r) for r in rules]


@router.post("/seed")
async def seed_rules(
    db: AsyncSession = Depends(get_db),
    rule_cache: AuthorityRuleCache = Depends(get_rule_cache),
) -> dict:
    """Seed the default authority matrix when the table is empty."""
    count = await seed_default_rules(db)
    if count:
        await db.commit()
        rule_cache.invalidate()
    return {"seeded": count, "message": f"Seeded {count} authority rules" if count else "Rules already exist"}


@router.put("", response_model=AuthorityRuleResponse)
async def put_rule(
    request: AuthorityRuleUpsert,
    db: AsyncSession = Depends(get_db),
    rule_cache: AuthorityRuleCache = Depends(get_rule_cache),
) -> AuthorityRuleResponse:
    """Create or replace the rule for one (document_type, entity_type) pair.

    The cache is invalidated so the next decision reads the new rule.
    """
    rule = await upsert_rule(
        db,
        request.document_type.value,
        request.entity_type.value,
        request.authority_level,
        [t.value for t in request.can_override_from],
        request.is_active,
    )
    await AuditService.log_event(
        db,
        event_type="AUTHORITY_RULE_UPSERTED",
        entity_type="authority_rule",
        entity_id=rule.id,
        actor_type="user",
        new_state={
            "document_type": rule.document_type,
            "entity_type": rule.entity_type,
            "authority_level": rule.authority_level,
            "can_override_from": rule.can_override_from,
            "is_active": rule.is_active,
        },
    )
    await db.commit()
    rule_cache.invalidate()
    return AuthorityRuleResponse.model_validate(rule)


@router.post("/refresh", response_model=CacheRefreshResponse)
async def refresh_cache(
    rule_cache: AuthorityRuleCache = Depends(get_rule_cache),
) -> CacheRefreshResponse:
    """Force the rule cache to reload now instead of waiting for the TTL."""
    rules = await rule_cache.refresh()
    return CacheRefreshResponse(rules_loaded=len(rules), load_count=rule_cache.load_count)
