"""
Document ingestion pipeline.

Stages per document:
1. Upsert by source_message_id (re-ingesting the same message updates in place)
2. Classify (patterns, thread analysis, Claude fallback)
3. Extract entities from the body and each attachment text, then aggregate
4. Persist entities, audit rejected identifiers, queue failed classifications
5. Reconcile against shipments (link, merge, workflow)

Database connectivity errors surface as StoreUnavailable so batch jobs can
retry them; everything else propagates unchanged.
"""

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from shiplink.audit_generator.service import AuditService
from shiplink.document_classifier.service import ClassificationResult, DocumentClassificationService
from shiplink.errors import ExtractionFailure, StoreUnavailable, is_store_unavailable
from shiplink.extraction.aggregator import AggregationResult, aggregate, group_entities
from shiplink.extraction.ai_extractor import EntityExtractionService
from shiplink.hitl_workflow.service import HITLService
from shiplink.hitl_workflow.triggers import should_review_classification
from shiplink.ingestion.attachments import AttachmentTextStore, SqlAttachmentTextStore
from shiplink.models.document import Document, LinkStatus
from shiplink.models.review import ReviewItemType
from shiplink.schemas.classification import ClassificationMethod
from shiplink.schemas.document import DocumentIngest
from shiplink.shipments import repository
from shiplink.shipments.service import ReconciliationOutcome, ShipmentReconciliationService

logger = logging.getLogger("shiplink.ingestion")


@dataclass
class IngestResult:
    document: Document
    created: bool
    classification: ClassificationResult
    aggregation: AggregationResult
    reconciliation: ReconciliationOutcome | None = None
    review_item_id: uuid.UUID | None = None
    extraction_errors: list[str] = field(default_factory=list)


class DocumentIngestionPipeline:
    def __init__(
        self,
        classifier: DocumentClassificationService,
        extractor: EntityExtractionService,
        reconciler: ShipmentReconciliationService,
        hitl: HITLService | None = None,
        attachment_store: Callable[[AsyncSession], AttachmentTextStore] = SqlAttachmentTextStore,
    ):
        self.classifier = classifier
        self.extractor = extractor
        self.reconciler = reconciler
        self.hitl = hitl or reconciler.hitl
        self.attachment_store = attachment_store

    async def ingest(self, db: AsyncSession, payload: DocumentIngest) -> IngestResult:
        try:
            document, created = await self._upsert(db, payload)
            return await self._process(db, document, created)
        except DBAPIError as e:
            if is_store_unavailable(e):
                raise StoreUnavailable(str(e)) from e
            raise

    async def reprocess(self, db: AsyncSession, document: Document) -> IngestResult:
        """Re-run classification, extraction and linking for a stored document."""
        try:
            return await self._process(db, document, created=False)
        except DBAPIError as e:
            if is_store_unavailable(e):
                raise StoreUnavailable(str(e)) from e
            raise

    async def _upsert(self, db: AsyncSession, payload: DocumentIngest) -> tuple[Document, bool]:
        document = await repository.get_document_by_message_id(db, payload.source_message_id)
        created = document is None
        if created:
            document = Document(
                id=uuid.uuid4(),
                source_message_id=payload.source_message_id,
                link_status=LinkStatus.PENDING,
                link_attempts=0,
            )
            db.add(document)

        document.received_at = payload.received_at
        document.sender_address = payload.sender
        document.subject = payload.subject
        document.body_text = payload.body
        document.attachment_filenames = payload.all_filenames()
        await db.flush()

        if payload.attachments:
            store = self.attachment_store(db)
            for attachment in payload.attachments:
                await store.save_text(document.id, attachment.filename, attachment.text)

        logger.info(
            "%s document %s (message %s)",
            "Created" if created else "Updated", document.id, payload.source_message_id,
        )
        return document, created

    async def _process(self, db: AsyncSession, document: Document, created: bool) -> IngestResult:
        classification = await self.classifier.classify(
            subject=document.subject,
            sender=document.sender_address,
            body=document.body_text,
            attachment_filenames=document.attachment_filenames or [],
        )
        previous_type = document.document_type
        self._apply_classification(document, classification)

        await AuditService.log_event(
            db,
            event_type="DOCUMENT_CLASSIFIED",
            entity_type="document",
            entity_id=document.id,
            reason_code=classification.reason_code,
            rationale=classification.reason,
            previous_state={"document_type": previous_type} if previous_type else None,
            new_state={
                "document_type": classification.document_type.value,
                "direction": classification.direction.value,
                "confidence": classification.confidence,
                "method": classification.method.value,
            },
            model_used=(
                getattr(self.classifier.ai_classifier, "model", None)
                if classification.method is ClassificationMethod.AI
                else None
            ),
        )

        aggregation, confidences, errors = await self._extract(db, document)
        document.entities = aggregation.entities.to_dict()

        for rejected in aggregation.rejected:
            await AuditService.log_event(
                db,
                event_type="IDENTIFIER_REJECTED",
                entity_type="document",
                entity_id=document.id,
                reason_code=rejected.reason_code,
                rationale=rejected.reason,
                event_data={
                    "entity_type": rejected.entity_type,
                    "raw_value": rejected.raw_value,
                    "source": rejected.source,
                },
            )

        await repository.record_entity_values(db, document, aggregation.entities, confidences)

        review_item_id = None
        needs_review, why = should_review_classification(
            classification.method.value,
            classification.document_type.value,
            aggregation.entities.has_identifiers(),
        )
        if needs_review:
            item = await self.hitl.create_review_item(
                db,
                item_type=ReviewItemType.CLASSIFICATION_FAILURE,
                entity_id=document.id,
                entity_type="document",
                title=f"Unclassified document: {document.subject or document.source_message_id}",
                description=f"{classification.reason}. {why}",
                reason_code=classification.reason_code,
                metadata={"entities": document.entities},
            )
            review_item_id = item.id
        await db.flush()

        reconciliation = await self.reconciler.process_document(db, document, aggregation.entities)

        return IngestResult(
            document=document,
            created=created,
            classification=classification,
            aggregation=aggregation,
            reconciliation=reconciliation,
            review_item_id=review_item_id,
            extraction_errors=errors,
        )

    @staticmethod
    def _apply_classification(document: Document, classification: ClassificationResult) -> None:
        document.document_type = classification.document_type.value
        document.direction = classification.direction
        document.sender_category = classification.sender.category.value
        document.thread_role = classification.thread.role
        document.thread_depth = classification.thread.depth
        document.clean_subject = classification.thread.clean_subject
        document.confidence = classification.confidence
        document.classification_method = classification.method
        document.matched_pattern_id = classification.matched_pattern_id
        document.carrier_id = classification.carrier_id
        document.classification_reason = classification.reason

    async def _extract(
        self, db: AsyncSession, document: Document
    ) -> tuple[AggregationResult, dict[str, int], list[str]]:
        """Run extraction over the body and attachment texts. One failing source does not sink the rest."""
        errors: list[str] = []
        confidences: dict[str, int] = {}
        hint = document.document_type

        async def run(label: str, text: str | None) -> dict[str, list[str]]:
            try:
                extracted = await self.extractor.extract(text or "", hint)
            except ExtractionFailure as e:
                logger.warning("Entity extraction failed for %s of document %s: %s", label, document.id, e)
                errors.append(f"{label}: {e}")
                return {}
            for entity in extracted:
                key = getattr(entity.entity_type, "value", entity.entity_type)
                confidences[key] = max(confidences.get(key, 0), entity.confidence)
            return group_entities(extracted)

        body_bag = await run("body", document.body_text)
        attachment_bags = []
        store = self.attachment_store(db)
        for filename, text in await store.get_texts(document.id):
            attachment_bags.append(await run(filename, text))

        document.raw_entities = body_bag
        document.attachment_entities = attachment_bags
        return aggregate(body_bag, attachment_bags), confidences, errors
