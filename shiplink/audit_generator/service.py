"""AuditService: immutable append-only decision log.

Static methods so any module can call AuditService.log_event() directly
without DI wiring, which keeps imports acyclic.
"""

import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from shiplink.models.audit import AuditEvent


class AuditService:
    """Static audit event logger and query interface."""

    @staticmethod
    async def log_event(
        db: AsyncSession,
        *,
        event_type: str,
        entity_type: str | None = None,
        entity_id: uuid.UUID | None = None,
        reason_code: str | None = None,
        rationale: str | None = None,
        actor: str = "system",
        actor_type: str = "system",
        event_data: dict | None = None,
        previous_state: dict | None = None,
        new_state: dict | None = None,
        model_used: str | None = None,
    ) -> AuditEvent:
        """Append an immutable audit event."""
        event = AuditEvent(
            id=uuid.uuid4(),
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            reason_code=getattr(reason_code, "value", reason_code),
            rationale=rationale,
            event_data=event_data,
            previous_state=previous_state,
            new_state=new_state,
            actor=actor,
            actor_type=actor_type,
            model_used=model_used,
        )
        db.add(event)
        await db.flush()
        return event

    @staticmethod
    async def get_events(
        db: AsyncSession,
        *,
        entity_type: str | None = None,
        entity_id: uuid.UUID | None = None,
        event_type: str | None = None,
        page: int = 1,
        per_page: int = 50,
    ) -> tuple[list[AuditEvent], int]:
        """Query audit events with filtering and pagination."""
        query = select(AuditEvent)
        count_query = select(func.count(AuditEvent.id))

        if entity_type:
            query = query.where(AuditEvent.entity_type == entity_type)
            count_query = count_query.where(AuditEvent.entity_type == entity_type)
        if entity_id:
            query = query.where(AuditEvent.entity_id == entity_id)
            count_query = count_query.where(AuditEvent.entity_id == entity_id)
        if event_type:
            query = query.where(AuditEvent.event_type == event_type)
            count_query = count_query.where(AuditEvent.event_type == event_type)

        total = (await db.execute(count_query)).scalar_one()

        offset = (page - 1) * per_page
        query = query.order_by(AuditEvent.created_at.desc(), AuditEvent.id).offset(offset).limit(per_page)
        result = await db.execute(query)
        return list(result.scalars().all()), total
