"""HITLService: manual review queue.

Items enter as pending_review (ambiguous links, classification failures) and
leave through resolve, reject or escalate. Nothing is auto-resolved.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from shiplink.audit_generator.service import AuditService
from shiplink.models.review import ReviewItem, ReviewItemType, ReviewStatus

_ACTIONS = {
    "resolve": ReviewStatus.RESOLVED,
    "reject": ReviewStatus.REJECTED,
    "escalate": ReviewStatus.ESCALATED,
}


class HITLService:
    """Review queue state machine."""

    async def create_review_item(
        self,
        db: AsyncSession,
        *,
        item_type: ReviewItemType,
        entity_id: uuid.UUID,
        entity_type: str,
        title: str,
        description: str | None = None,
        severity: str = "medium",
        reason_code: str | None = None,
        metadata: dict | None = None,
    ) -> ReviewItem:
        """Create a pending review item, or return the open one for the same entity.

        Re-running a batch must not stack duplicate items for one document.
        """
        existing = await db.execute(
            select(ReviewItem).where(
                ReviewItem.item_type == item_type,
                ReviewItem.entity_id == entity_id,
                ReviewItem.status == ReviewStatus.PENDING_REVIEW,
            )
        )
        item = existing.scalar_one_or_none()
        if item is not None:
            item.review_metadata = metadata
            item.description = description
            await db.flush()
            return item

        item = ReviewItem(
            id=uuid.uuid4(),
            status=ReviewStatus.PENDING_REVIEW,
            item_type=item_type,
            entity_id=entity_id,
            entity_type=entity_type,
            title=title,
            description=description,
            severity=severity,
            reason_code=getattr(reason_code, "value", reason_code),
            review_metadata=metadata,
        )
        db.add(item)
        await db.flush()

        await AuditService.log_event(
            db,
            event_type="REVIEW_ITEM_CREATED",
            entity_type="review_item",
            entity_id=item.id,
            reason_code=item.reason_code,
            rationale=description,
            new_state={"status": item.status.value, "item_type": item_type.value},
            event_data={"subject_entity_type": entity_type, "subject_entity_id": str(entity_id)},
        )
        return item

    async def get_item(self, db: AsyncSession, item_id: uuid.UUID) -> ReviewItem:
        result = await db.execute(select(ReviewItem).where(ReviewItem.id == item_id))
        item = result.scalar_one_or_none()
        if item is None:
            raise ValueError(f"Review item {item_id} not found")
        return item

    async def review_item(
        self,
        db: AsyncSession,
        item_id: uuid.UUID,
        action: str,
        reviewed_by: str = "user",
        notes: str | None = None,
    ) -> ReviewItem:
        """Apply resolve/reject/escalate to a pending item."""
        item = await self.get_item(db, item_id)

        new_status = _ACTIONS.get(action)
        if new_status is None:
            raise ValueError(f"Invalid action: {action}. Must be resolve, reject, or escalate.")
        if item.status in (ReviewStatus.RESOLVED, ReviewStatus.REJECTED):
            raise ValueError(f"Review item {item_id} is already {item.status.value}")

        previous_status = item.status.value
        item.status = new_status
        item.reviewed_by = reviewed_by
        item.reviewed_at = datetime.now(timezone.utc)
        item.review_notes = notes
        await db.flush()

        await AuditService.log_event(
            db,
            event_type="REVIEW_ITEM_ACTIONED",
            entity_type="review_item",
            entity_id=item.id,
            actor=reviewed_by,
            actor_type="user",
            rationale=notes,
            previous_state={"status": previous_status},
            new_state={"status": new_status.value},
        )
        return item

    async def get_queue(
        self,
        db: AsyncSession,
        *,
        status: str | None = None,
        item_type: str | None = None,
        page: int = 1,
        per_page: int = 20,
    ) -> tuple[list[ReviewItem], int]:
        """Get paginated, filterable review queue."""
        query = select(ReviewItem)
        count_query = select(func.count(ReviewItem.id))

        if status:
            query = query.where(ReviewItem.status == ReviewStatus(status))
            count_query = count_query.where(ReviewItem.status == ReviewStatus(status))
        if item_type:
            query = query.where(ReviewItem.item_type == ReviewItemType(item_type))
            count_query = count_query.where(ReviewItem.item_type == ReviewItemType(item_type))

        total = (await db.execute(count_query)).scalar_one()

        offset = (page - 1) * per_page
        query = query.order_by(ReviewItem.created_at.desc(), ReviewItem.id).offset(offset).limit(per_page)
        result = await db.execute(query)
        return list(result.scalars().all()), total

    async def get_stats(self, db: AsyncSession) -> dict:
        """Counts per status."""
        rows = (await db.execute(
            select(ReviewItem.status, func.count(ReviewItem.id)).group_by(ReviewItem.status)
        )).all()
        counts = {status.value: 0 for status in ReviewStatus}
        for status, count in rows:
            counts[getattr(status, "value", status)] = count
        return {"total": sum(counts.values()), **counts}
