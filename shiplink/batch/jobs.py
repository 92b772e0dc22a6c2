"""Batch jobs run by BatchRunner. Each item is processed idempotently."""

import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from shiplink.ingestion.pipeline import DocumentIngestionPipeline
from shiplink.models.document import LinkStatus
from shiplink.schemas.classification import DocumentType
from shiplink.shipments import repository
from shiplink.shipments.service import ShipmentReconciliationService

logger = logging.getLogger("shiplink.batch.jobs")


class ReclassifyUnknownJob:
    """Re-run the pipeline for documents the classifier could not type."""

    name = "reclassify_unknown"

    def __init__(self, pipeline: DocumentIngestionPipeline):
        self.pipeline = pipeline

    async def fetch_page(self, db: AsyncSession, after: uuid.UUID | None, page_size: int) -> list[uuid.UUID]:
        docs = await repository.fetch_document_page(
            db, after=after, page_size=page_size, document_type=DocumentType.UNKNOWN.value
        )
        return [doc.id for doc in docs]

    async def process_item(self, db: AsyncSession, item_id: uuid.UUID) -> None:
        document = await repository.get_document(db, item_id)
        if document is None or document.document_type != DocumentType.UNKNOWN.value:
            return
        result = await self.pipeline.reprocess(db, document)
        logger.info(
            "Reclassified %s as %s (%s)",
            item_id, result.classification.document_type.value, result.classification.method.value,
        )


class RelinkOrphansJob:
    """Retry the linker for every orphaned document."""

    name = "relink_orphans"

    def __init__(self, reconciler: ShipmentReconciliationService):
        self.reconciler = reconciler

    async def fetch_page(self, db: AsyncSession, after: uuid.UUID | None, page_size: int) -> list[uuid.UUID]:
        docs = await repository.fetch_document_page(
            db, after=after, page_size=page_size, link_status=LinkStatus.ORPHAN
        )
        return [doc.id for doc in docs]

    async def process_item(self, db: AsyncSession, item_id: uuid.UUID) -> None:
        document = await repository.get_document(db, item_id)
        if document is None or document.link_status is not LinkStatus.ORPHAN:
            return
        await self.reconciler.process_document(db, document)


class RebuildWorkflowJob:
    """Re-derive every shipment's workflow state from its linked documents."""

    name = "rebuild_workflow"

    def __init__(self, reconciler: ShipmentReconciliationService):
        self.reconciler = reconciler
        self.drifted: list[uuid.UUID] = []

    async def fetch_page(self, db: AsyncSession, after: uuid.UUID | None, page_size: int) -> list[uuid.UUID]:
        shipments = await repository.fetch_shipment_page(db, after=after, page_size=page_size)
        return [shipment.id for shipment in shipments]

    async def process_item(self, db: AsyncSession, item_id: uuid.UUID) -> None:
        result = await self.reconciler.rebuild_workflow_state(db, item_id)
        if result.drift:
            self.drifted.append(item_id)
