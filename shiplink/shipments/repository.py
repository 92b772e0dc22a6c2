"""Query helpers for shipments, links and documents.

Every scan is keyset-paginated on the primary key; nothing here loads an
unbounded result set.
"""

import uuid
from collections.abc import AsyncIterator, Iterable

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from shiplink.extraction.aggregator import EntitySet
from shiplink.models.document import Document, LinkStatus
from shiplink.models.entity_value import EntityValue
from shiplink.models.link import LinkMethod, ShipmentDocumentLink
from shiplink.models.shipment import Shipment, ShipmentContainer
from shiplink.models.workflow_transition import WorkflowTransition
from shiplink.workflow.machine import DocumentEvent


async def get_document(db: AsyncSession, document_id: uuid.UUID) -> Document | None:
    result = await db.execute(select(Document).where(Document.id == document_id))
    return result.scalar_one_or_none()


async def get_document_by_message_id(db: AsyncSession, source_message_id: str) -> Document | None:
    result = await db.execute(
        select(Document).where(Document.source_message_id == source_message_id)
    )
    return result.scalar_one_or_none()


async def get_shipment(db: AsyncSession, shipment_id: uuid.UUID, *, for_update: bool = False) -> Shipment | None:
    """Load a shipment. ``for_update`` row-locks it and refreshes the identity-mapped copy."""
    query = select(Shipment).where(Shipment.id == shipment_id)
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def get_containers(db: AsyncSession, shipment_id: uuid.UUID) -> list[str]:
    result = await db.execute(
        select(ShipmentContainer.container_number)
        .where(ShipmentContainer.shipment_id == shipment_id)
        .order_by(ShipmentContainer.created_at, ShipmentContainer.container_number)
    )
    return list(result.scalars().all())


async def add_containers(
    db: AsyncSession,
    shipment_id: uuid.UUID,
    container_numbers: Iterable[str],
    source_document_id: uuid.UUID | None = None,
) -> list[str]:
    """Append containers not already on the shipment. Returns the ones added."""
    existing = set(await get_containers(db, shipment_id))
    added = []
    for container in container_numbers:
        if container in existing:
            continue
        existing.add(container)
        db.add(ShipmentContainer(
            id=uuid.uuid4(),
            shipment_id=shipment_id,
            container_number=container,
            source_document_id=source_document_id,
        ))
        added.append(container)
    if added:
        await db.flush()
    return added


async def get_link(
    db: AsyncSession, document_id: uuid.UUID, shipment_id: uuid.UUID
) -> ShipmentDocumentLink | None:
    result = await db.execute(
        select(ShipmentDocumentLink).where(
            ShipmentDocumentLink.document_id == document_id,
            ShipmentDocumentLink.shipment_id == shipment_id,
        )
    )
    return result.scalar_one_or_none()


async def get_links_for_document(db: AsyncSession, document_id: uuid.UUID) -> list[ShipmentDocumentLink]:
    result = await db.execute(
        select(ShipmentDocumentLink)
        .where(ShipmentDocumentLink.document_id == document_id)
        .order_by(ShipmentDocumentLink.created_at)
    )
    return list(result.scalars().all())


async def upsert_link(
    db: AsyncSession,
    *,
    document_id: uuid.UUID,
    shipment_id: uuid.UUID,
    matched_by: str | None,
    matched_value: str | None,
    link_method: LinkMethod = LinkMethod.CASCADE,
    created_by: str = "system",
) -> tuple[ShipmentDocumentLink, bool]:
    """Insert the (document, shipment) link unless it exists.

    Returns (link, created). An existing link is returned untouched.
    """
    link = await get_link(db, document_id, shipment_id)
    if link is not None:
        return link, False

    link = ShipmentDocumentLink(
        id=uuid.uuid4(),
        document_id=document_id,
        shipment_id=shipment_id,
        matched_by=matched_by,
        matched_value=matched_value,
        link_method=link_method,
        created_by=created_by,
    )
    db.add(link)
    await db.flush()
    return link, True


async def record_entity_values(
    db: AsyncSession,
    document: Document,
    entities: EntitySet,
    confidences: dict[str, int] | None = None,
) -> int:
    """Store the document's normalized entities. Existing rows are left alone."""
    confidences = confidences or {}
    result = await db.execute(
        select(EntityValue.entity_type, EntityValue.value).where(EntityValue.document_id == document.id)
    )
    seen = {(row[0], row[1]) for row in result.all()}

    count = 0
    for entity_type, value in entities.items():
        if (entity_type, value) in seen:
            continue
        seen.add((entity_type, value))
        db.add(EntityValue(
            id=uuid.uuid4(),
            document_id=document.id,
            entity_type=entity_type,
            value=value,
            source_document_type=document.document_type,
            confidence=confidences.get(entity_type, document.confidence or 0),
        ))
        count += 1
    if count:
        await db.flush()
    return count


async def find_orphans_by_identifiers(
    db: AsyncSession,
    values: Iterable[tuple[str, str]],
    *,
    exclude: Iterable[uuid.UUID] = (),
    limit: int = 500,
) -> list[Document]:
    """Orphaned documents carrying any of the given (entity_type, value) pairs."""
    pairs = sorted(set(values))
    if not pairs:
        return []

    query = (
        select(EntityValue.document_id)
        .join(Document, Document.id == EntityValue.document_id)
        .where(
            Document.link_status == LinkStatus.ORPHAN,
            or_(*(
                and_(EntityValue.entity_type == entity_type, EntityValue.value == value)
                for entity_type, value in pairs
            )),
        )
        .distinct()
        .order_by(EntityValue.document_id)
        .limit(limit)
    )
    excluded = list(exclude)
    if excluded:
        query = query.where(EntityValue.document_id.notin_(excluded))

    doc_ids = list((await db.execute(query)).scalars().all())
    if not doc_ids:
        return []

    docs = await db.execute(select(Document).where(Document.id.in_(doc_ids)).order_by(Document.id))
    return list(docs.scalars().all())


def to_event(document: Document) -> DocumentEvent:
    return DocumentEvent(
        document_id=document.id,
        document_type=document.document_type or "unknown",
        direction=getattr(document.direction, "value", document.direction),
        sender_category=document.sender_category,
        received_at=document.received_at,
    )


async def iter_linked_document_events(
    db: AsyncSession, shipment_id: uuid.UUID, page_size: int = 500
) -> AsyncIterator[list[DocumentEvent]]:
    """Yield pages of the shipment's linked documents as state-machine events."""
    after: uuid.UUID | None = None
    while True:
        query = (
            select(Document)
            .join(ShipmentDocumentLink, ShipmentDocumentLink.document_id == Document.id)
            .where(ShipmentDocumentLink.shipment_id == shipment_id)
            .order_by(Document.id)
            .limit(page_size)
        )
        if after is not None:
            query = query.where(Document.id > after)
        page = list((await db.execute(query)).scalars().all())
        if not page:
            return
        yield [to_event(doc) for doc in page]
        if len(page) < page_size:
            return
        after = page[-1].id


async def fetch_document_page(
    db: AsyncSession,
    *,
    after: uuid.UUID | None,
    page_size: int,
    document_type: str | None = None,
    link_status: LinkStatus | None = None,
) -> list[Document]:
    query = select(Document).order_by(Document.id).limit(page_size)
    if after is not None:
        query = query.where(Document.id > after)
    if document_type is not None:
        query = query.where(Document.document_type == document_type)
    if link_status is not None:
        query = query.where(Document.link_status == link_status)
    return list((await db.execute(query)).scalars().all())


async def fetch_shipment_page(
    db: AsyncSession, *, after: uuid.UUID | None, page_size: int
) -> list[Shipment]:
    query = select(Shipment).order_by(Shipment.id).limit(page_size)
    if after is not None:
        query = query.where(Shipment.id > after)
    return list((await db.execute(query)).scalars().all())


async def get_transitions(db: AsyncSession, shipment_id: uuid.UUID) -> list[WorkflowTransition]:
    result = await db.execute(
        select(WorkflowTransition)
        .where(WorkflowTransition.shipment_id == shipment_id)
        .order_by(WorkflowTransition.created_at, WorkflowTransition.id)
    )
    return list(result.scalars().all())


async def get_linked_documents(db: AsyncSession, shipment_id: uuid.UUID) -> list[tuple[Document, ShipmentDocumentLink]]:
    result = await db.execute(
        select(Document, ShipmentDocumentLink)
        .join(ShipmentDocumentLink, ShipmentDocumentLink.document_id == Document.id)
        .where(ShipmentDocumentLink.shipment_id == shipment_id)
        .order_by(ShipmentDocumentLink.created_at, Document.id)
    )
    return [(row[0], row[1]) for row in result.all()]
