"""ShipmentReconciliationService: links a classified document to its shipment.

Flow for one document:
1. Linker cascade (booking -> bl -> containers) against the shipment index
2. Under the shipment's lock: link upsert, authority-gated field merge,
   container append, incremental workflow advance, commit
3. If the shipment gained identifiers, retry orphans that carry them

Only this service writes shipment fields and workflow state, and only from
MergeResult and StateDecision values.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from shiplink.audit_generator.service import AuditService
from shiplink.authority.cache import AuthorityRuleCache
from shiplink.authority.resolver import AuthorityRuleSet
from shiplink.config import Settings
from shiplink.errors import ReasonCode
from shiplink.extraction.aggregator import EntitySet
from shiplink.hitl_workflow.service import HITLService
from shiplink.hitl_workflow.triggers import should_review_link
from shiplink.linking.index import SqlShipmentIndex
from shiplink.linking.linker import LinkOutcome, LinkResult, ShipmentLinker
from shiplink.models.document import Document, LinkStatus
from shiplink.models.link import LinkMethod
from shiplink.models.review import ReviewItemType
from shiplink.models.shipment import Shipment
from shiplink.models.workflow_transition import WorkflowTransition
from shiplink.schemas.entities import EntityType
from shiplink.shipments import repository
from shiplink.shipments.locks import KeyedLock
from shiplink.shipments.merge import MergeResult, merge_entities
from shiplink.workflow.machine import StateDecision, advance, fold, rebuild

logger = logging.getLogger("shiplink.shipments")


@dataclass
class ReconciliationOutcome:
    document_id: uuid.UUID
    link: LinkResult
    shipment_id: uuid.UUID | None = None
    created_shipment: bool = False
    link_created: bool = False
    merge: MergeResult | None = None
    state: StateDecision | None = None
    review_item_id: uuid.UUID | None = None
    relinked_document_ids: list[uuid.UUID] = field(default_factory=list)


@dataclass
class RebuildResult:
    shipment_id: uuid.UUID
    previous: str | None
    rebuilt: str | None
    decision: StateDecision
    documents_seen: int

    @property
    def drift(self) -> bool:
        return self.previous != self.rebuilt


def _shipment_key(shipment_id: uuid.UUID) -> str:
    return f"shipment:{shipment_id}"


def _booking_key(booking_number: str) -> str:
    return f"booking:{booking_number}"


class ShipmentReconciliationService:
    """Single writer per shipment; different shipments proceed in parallel.

    ``commit`` controls whether each shipment write is committed while its
    lock is still held. Callers sharing one lock registry across sessions
    need that; a caller that owns the whole transaction can turn it off.
    """

    def __init__(
        self,
        settings: Settings,
        rule_cache: AuthorityRuleCache,
        locks: KeyedLock | None = None,
        hitl: HITLService | None = None,
        commit: bool = True,
    ):
        self.settings = settings
        self.rule_cache = rule_cache
        self.locks = locks or KeyedLock()
        self.hitl = hitl or HITLService()
        self.commit = commit

    async def process_document(
        self,
        db: AsyncSession,
        document: Document,
        entities: EntitySet | None = None,
        *,
        relink: bool = True,
    ) -> ReconciliationOutcome:
        """Link one classified document and fold it into its shipment."""
        if entities is None:
            entities = EntitySet.from_dict(document.entities)
        outcome = await self._link_one(db, document, entities, LinkMethod.CASCADE)

        if relink and outcome.shipment_id is not None:
            outcome.relinked_document_ids = await self.relink_orphans(
                db, self._identifier_pairs(entities), exclude={document.id}
            )
        return outcome

    async def _link_one(
        self,
        db: AsyncSession,
        document: Document,
        entities: EntitySet,
        link_method: LinkMethod,
    ) -> ReconciliationOutcome:
        document.link_attempts = (document.link_attempts or 0) + 1
        linker = ShipmentLinker(SqlShipmentIndex(db))
        result = await linker.link(document, entities)

        # A document belongs to one shipment. Re-extracted identifiers that
        # point elsewhere never move or duplicate the link.
        existing = await repository.get_links_for_document(db, document.id)
        if existing and not (
            result.outcome is LinkOutcome.MATCHED and result.shipment_id == existing[0].shipment_id
        ):
            return await self._flag_conflict(db, document, result, existing[0].shipment_id)

        if result.outcome is LinkOutcome.CREATE_NEW:
            async with self.locks.hold(_booking_key(result.matched_value), db):
                # Another writer may have created the shipment while we waited.
                result = await linker.link(document, entities)
                if result.outcome is LinkOutcome.CREATE_NEW:
                    await self._audit_link(db, document, result)
                    shipment = await self._create_shipment(db, document, result)
                    return await self._apply(
                        db, document, entities, shipment, result, LinkMethod.CREATED, created=True
                    )
                if result.outcome is LinkOutcome.MATCHED:
                    async with self.locks.hold(_shipment_key(result.shipment_id), db):
                        return await self._apply_matched(db, document, entities, result, link_method)

        await self._audit_link(db, document, result)

        if result.outcome is LinkOutcome.MATCHED:
            async with self.locks.hold(_shipment_key(result.shipment_id), db):
                return await self._apply_matched(db, document, entities, result, link_method)

        if result.outcome is LinkOutcome.AMBIGUOUS:
            return await self._flag_ambiguous(db, document, result)

        document.link_status = LinkStatus.ORPHAN
        document.link_reason = result.reason
        await db.flush()
        await self._commit(db)
        logger.info("Document %s orphaned: %s", document.id, result.reason)
        return ReconciliationOutcome(document_id=document.id, link=result)

    async def _apply_matched(
        self,
        db: AsyncSession,
        document: Document,
        entities: EntitySet,
        result: LinkResult,
        link_method: LinkMethod,
    ) -> ReconciliationOutcome:
        shipment = await repository.get_shipment(db, result.shipment_id, for_update=True)
        return await self._apply(db, document, entities, shipment, result, link_method)

    async def _create_shipment(self, db: AsyncSession, document: Document, result: LinkResult) -> Shipment:
        shipment = Shipment(
            id=uuid.uuid4(),
            booking_number=result.matched_value,
            field_values={},
            created_from_document_id=document.id,
            created_by="system",
        )
        db.add(shipment)
        await db.flush()
        await AuditService.log_event(
            db,
            event_type="SHIPMENT_CREATED",
            entity_type="shipment",
            entity_id=shipment.id,
            reason_code=ReasonCode.CREATED_SHIPMENT,
            rationale=result.reason,
            new_state={"booking_number": shipment.booking_number},
            event_data={"document_id": str(document.id), "document_type": document.document_type},
        )
        logger.info("Created shipment %s for booking %s", shipment.id, shipment.booking_number)
        return shipment

    async def _apply(
        self,
        db: AsyncSession,
        document: Document,
        entities: EntitySet,
        shipment: Shipment,
        result: LinkResult,
        link_method: LinkMethod,
        *,
        created: bool = False,
        rules: AuthorityRuleSet | None = None,
        actor: str = "system",
    ) -> ReconciliationOutcome:
        """Write link, fields, containers and state for one shipment. Caller holds the lock."""
        rules = rules or await self.rule_cache.get_rules()
        document_type = document.document_type or "unknown"

        _, link_created = await repository.upsert_link(
            db,
            document_id=document.id,
            shipment_id=shipment.id,
            matched_by=result.matched_by,
            matched_value=result.matched_value,
            link_method=link_method,
            created_by=actor,
        )

        containers = await repository.get_containers(db, shipment.id)
        merge = merge_entities(
            shipment.field_values, containers, entities, document_type, document.id, rules
        )
        for item in merge.decisions:
            await AuditService.log_event(
                db,
                event_type="AUTHORITY_DECISION",
                entity_type="shipment",
                entity_id=shipment.id,
                reason_code=item.decision.reason_code,
                rationale=item.decision.reason,
                actor=actor,
                previous_state=item.previous,
                new_state=merge.field_values.get(item.entity_type) if item.decision.update else None,
                event_data={
                    "field": item.entity_type,
                    "proposed_value": item.value,
                    "document_id": str(document.id),
                    "document_type": document_type,
                    "updated": item.decision.update,
                },
            )

        shipment.field_values = merge.field_values
        for column in (EntityType.BOOKING_NUMBER.value, EntityType.BL_NUMBER.value):
            slot = merge.field_values.get(column)
            if slot and column in merge.updated_fields:
                setattr(shipment, column, slot["value"])

        await repository.add_containers(db, shipment.id, merge.new_containers, document.id)

        decision = advance(shipment.workflow_state, repository.to_event(document))
        if decision.changed:
            await self._record_transition(db, shipment, decision, actor)

        document.link_status = LinkStatus.LINKED
        document.link_reason = result.reason
        await db.flush()
        await self._commit(db)

        logger.info(
            "Linked document %s -> shipment %s (%s, %s); fields updated=%s state=%s",
            document.id, shipment.id, link_method.value, result.reason_code.value,
            merge.updated_fields, shipment.workflow_state,
        )
        return ReconciliationOutcome(
            document_id=document.id,
            link=result,
            shipment_id=shipment.id,
            created_shipment=created,
            link_created=link_created,
            merge=merge,
            state=decision,
        )

    async def _record_transition(
        self, db: AsyncSession, shipment: Shipment, decision: StateDecision, actor: str = "system"
    ) -> None:
        now = datetime.now(timezone.utc)
        shipment.workflow_state = decision.state.value
        shipment.workflow_phase = decision.state.phase.value
        shipment.workflow_state_updated_at = now
        db.add(WorkflowTransition(
            id=uuid.uuid4(),
            shipment_id=shipment.id,
            from_state=decision.previous.value if decision.previous else None,
            to_state=decision.state.value,
            triggered_by_document_id=decision.triggering_document_id,
            triggered_by_document_type=decision.triggering_document_type,
            reason_code=decision.reason_code.value,
            reason=decision.reason,
            created_at=now,
        ))
        await AuditService.log_event(
            db,
            event_type="WORKFLOW_TRANSITION",
            entity_type="shipment",
            entity_id=shipment.id,
            reason_code=decision.reason_code,
            rationale=decision.reason,
            actor=actor,
            previous_state={"workflow_state": decision.previous.value if decision.previous else None},
            new_state={"workflow_state": decision.state.value},
        )

    async def _flag_ambiguous(
        self, db: AsyncSession, document: Document, result: LinkResult
    ) -> ReconciliationOutcome:
        document.link_status = LinkStatus.NEEDS_REVIEW
        document.link_reason = result.reason

        needs_review, why = should_review_link(result.outcome.value, len(result.candidate_shipment_ids))
        item_id = None
        if needs_review:
            item = await self.hitl.create_review_item(
                db,
                item_type=ReviewItemType.AMBIGUOUS_LINK,
                entity_id=document.id,
                entity_type="document",
                title=f"Ambiguous {result.matched_by} {result.matched_value}",
                description=f"{result.reason}. {why}",
                severity="high",
                reason_code=result.reason_code,
                metadata={
                    "matched_by": result.matched_by,
                    "matched_value": result.matched_value,
                    "candidate_shipment_ids": [str(c) for c in result.candidate_shipment_ids],
                },
            )
            item_id = item.id
        await db.flush()
        await self._commit(db)
        return ReconciliationOutcome(document_id=document.id, link=result, review_item_id=item_id)

    async def _flag_conflict(
        self, db: AsyncSession, document: Document, result: LinkResult, linked_shipment_id: uuid.UUID
    ) -> ReconciliationOutcome:
        reason = (
            f"Document is linked to shipment {linked_shipment_id}; "
            f"re-evaluation gave {result.outcome.value} ({result.reason})"
        )
        await AuditService.log_event(
            db,
            event_type="DOCUMENT_LINK_CONFLICT",
            entity_type="document",
            entity_id=document.id,
            reason_code=ReasonCode.LINK_CONFLICT,
            rationale=reason,
            previous_state={"shipment_id": str(linked_shipment_id)},
            event_data={
                "outcome": result.outcome.value,
                "shipment_id": str(result.shipment_id) if result.shipment_id else None,
                "matched_by": result.matched_by,
                "matched_value": result.matched_value,
                "candidate_shipment_ids": [str(c) for c in result.candidate_shipment_ids],
            },
        )

        item_id = None
        needs_review, why = should_review_link(result.outcome.value, linked_elsewhere=True)
        if needs_review:
            item = await self.hitl.create_review_item(
                db,
                item_type=ReviewItemType.LINK_CONFLICT,
                entity_id=document.id,
                entity_type="document",
                title=f"Link conflict for document {document.id}",
                description=f"{reason}. {why}",
                severity="high",
                reason_code=ReasonCode.LINK_CONFLICT,
                metadata={
                    "linked_shipment_id": str(linked_shipment_id),
                    "outcome": result.outcome.value,
                    "proposed_shipment_id": str(result.shipment_id) if result.shipment_id else None,
                    "matched_by": result.matched_by,
                    "matched_value": result.matched_value,
                },
            )
            item_id = item.id

        document.link_status = LinkStatus.LINKED
        await db.flush()
        await self._commit(db)
        logger.warning("Document %s: %s", document.id, reason)
        return ReconciliationOutcome(document_id=document.id, link=result, review_item_id=item_id)

    async def _audit_link(self, db: AsyncSession, document: Document, result: LinkResult) -> None:
        await AuditService.log_event(
            db,
            event_type="DOCUMENT_LINK_DECIDED",
            entity_type="document",
            entity_id=document.id,
            reason_code=result.reason_code,
            rationale=result.reason,
            event_data={
                "outcome": result.outcome.value,
                "shipment_id": str(result.shipment_id) if result.shipment_id else None,
                "matched_by": result.matched_by,
                "matched_value": result.matched_value,
                "candidate_shipment_ids": [str(c) for c in result.candidate_shipment_ids],
            },
        )

    async def _commit(self, db: AsyncSession) -> None:
        if self.commit:
            await db.commit()

    @staticmethod
    def _identifier_pairs(entities: EntitySet) -> list[tuple[str, str]]:
        pairs = []
        if entities.booking_number:
            pairs.append((EntityType.BOOKING_NUMBER.value, entities.booking_number))
        if entities.bl_number:
            pairs.append((EntityType.BL_NUMBER.value, entities.bl_number))
        pairs.extend((EntityType.CONTAINER_NUMBER.value, c) for c in entities.container_numbers)
        return pairs

    async def relink_orphans(
        self,
        db: AsyncSession,
        identifiers: list[tuple[str, str]],
        *,
        exclude: set[uuid.UUID] | None = None,
    ) -> list[uuid.UUID]:
        """Retry orphaned documents carrying any of ``identifiers``.

        A relinked orphan can bring new identifiers of its own, so this runs
        as a worklist until no further orphan matches.
        """
        visited: set[uuid.UUID] = set(exclude or ())
        pending = list(identifiers)
        relinked: list[uuid.UUID] = []

        while pending:
            orphans = await repository.find_orphans_by_identifiers(
                db, pending, exclude=visited, limit=self.settings.store_page_size
            )
            pending = []
            for orphan in orphans:
                visited.add(orphan.id)
                entities = EntitySet.from_dict(orphan.entities)
                outcome = await self._link_one(db, orphan, entities, LinkMethod.ORPHAN_RELINK)
                if outcome.shipment_id is not None:
                    relinked.append(orphan.id)
                    pending.extend(self._identifier_pairs(entities))

        if relinked:
            logger.info("Relinked %d orphaned documents", len(relinked))
        return relinked

    async def rebuild_workflow_state(self, db: AsyncSession, shipment_id: uuid.UUID) -> RebuildResult:
        """Recompute the state from the full linked set and reconcile with the stored one.

        A stored state that differs from the rebuilt one is audited as drift.
        The stored state still only moves forward.
        """
        async with self.locks.hold(_shipment_key(shipment_id), db):
            shipment = await repository.get_shipment(db, shipment_id, for_update=True)
            if shipment is None:
                raise ValueError(f"Shipment {shipment_id} not found")

            events = []
            async for page in repository.iter_linked_document_events(
                db, shipment_id, page_size=self.settings.store_page_size
            ):
                events.extend(page)

            previous = shipment.workflow_state
            rebuilt = rebuild(events)
            rebuilt_state = rebuilt.state.value if rebuilt.state else None
            if rebuilt_state != previous:
                logger.warning(
                    "Workflow drift on shipment %s: stored=%s rebuilt=%s", shipment_id, previous, rebuilt_state
                )
                await AuditService.log_event(
                    db,
                    event_type="WORKFLOW_STATE_DRIFT",
                    entity_type="shipment",
                    entity_id=shipment_id,
                    reason_code=rebuilt.reason_code,
                    rationale=rebuilt.reason,
                    previous_state={"workflow_state": previous},
                    new_state={"workflow_state": rebuilt_state},
                    event_data={"documents_seen": len(events)},
                )

            decision = fold(previous, events)
            if decision.changed:
                await self._record_transition(db, shipment, decision)
            await db.flush()
            await self._commit(db)

        return RebuildResult(
            shipment_id=shipment_id,
            previous=previous,
            rebuilt=rebuilt_state,
            decision=decision,
            documents_seen=len(events),
        )

    async def link_manually(
        self,
        db: AsyncSession,
        review_item_id: uuid.UUID,
        shipment_id: uuid.UUID,
        reviewed_by: str = "user",
        notes: str | None = None,
    ) -> ReconciliationOutcome:
        """Resolve an ambiguous-link review item by picking one candidate shipment."""
        item = await self.hitl.get_item(db, review_item_id)
        if item.item_type is not ReviewItemType.AMBIGUOUS_LINK:
            raise ValueError(f"Review item {review_item_id} is not an ambiguous link")

        candidates = (item.review_metadata or {}).get("candidate_shipment_ids") or []
        if str(shipment_id) not in candidates:
            raise ValueError(f"Shipment {shipment_id} is not a candidate for review item {review_item_id}")

        document = await repository.get_document(db, item.entity_id)
        if document is None:
            raise ValueError(f"Document {item.entity_id} not found")
        for link in await repository.get_links_for_document(db, document.id):
            if link.shipment_id != shipment_id:
                raise ValueError(f"Document {document.id} is already linked to shipment {link.shipment_id}")

        result = LinkResult(
            outcome=LinkOutcome.MATCHED,
            reason_code=ReasonCode.MATCHED_BY_REVIEW,
            reason=f"Linked by {reviewed_by} from review item {review_item_id}",
            shipment_id=shipment_id,
            matched_by=(item.review_metadata or {}).get("matched_by"),
            matched_value=(item.review_metadata or {}).get("matched_value"),
        )
        entities = EntitySet.from_dict(document.entities)
        await self._audit_link(db, document, result)

        async with self.locks.hold(_shipment_key(shipment_id), db):
            shipment = await repository.get_shipment(db, shipment_id, for_update=True)
            if shipment is None:
                raise ValueError(f"Shipment {shipment_id} not found")
            await self.hitl.review_item(db, review_item_id, "resolve", reviewed_by=reviewed_by, notes=notes)
            outcome = await self._apply(
                db, document, entities, shipment, result, LinkMethod.MANUAL, actor=reviewed_by
            )

        outcome.relinked_document_ids = await self.relink_orphans(
            db, self._identifier_pairs(entities), exclude={document.id}
        )
        return outcome
