"""End-to-end ingestion: classify, extract, aggregate, link, merge, advance."""

import anthropic
import httpx
import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError
from unittest.mock import AsyncMock, MagicMock

from shiplink.audit_generator.service import AuditService
from shiplink.document_classifier.ai_classifier import AIClassification
from shiplink.errors import ClassificationFailure, ExtractionFailure, ReasonCode, StoreUnavailable
from shiplink.extraction.ai_extractor import EntityExtractionService
from shiplink.ingestion.pipeline import DocumentIngestionPipeline
from shiplink.linking.linker import LinkOutcome
from shiplink.models.document import LinkStatus
from shiplink.models.review import ReviewItemType
from shiplink.models.shipment import Shipment
from shiplink.schemas.classification import ClassificationMethod, DocumentType
from shiplink.schemas.document import AttachmentIn, DocumentIngest
from shiplink.shipments import repository
from shiplink.workflow.states import WorkflowState

COSCO_SENDER = "COSCO Booking Desk <noreply@coscon.com>"
BOOKING = "COSU6441804980"


def _booking_confirmation(message_id="msg-bc-1"):
    return DocumentIngest(
        source_message_id=message_id,
        sender=COSCO_SENDER,
        subject=f"Cosco Shipping Line Booking Confirmation - {BOOKING}",
        body=f"Dear customer, booking {BOOKING} is confirmed. [bc-body]",
        attachment_filenames=[f"{BOOKING}_BC.pdf"],
    )


def _shipping_instruction(message_id="msg-si-1"):
    return DocumentIngest(
        source_message_id=message_id,
        sender=COSCO_SENDER,
        subject="COSCO SHIPPING LINES - 6441804980 - Document Shipping Instruction",
        body="Shipping instruction received and confirmed. [si-body]",
    )


@pytest.fixture
def cosco_entities(stub_extractor):
    stub_extractor.add(
        "[bc-body]",
        ("booking_number", BOOKING),
        ("container_number", BOOKING),
        ("vessel_name", "CSCL Star"),
        ("etd", "20-Mar-2025"),
    )
    stub_extractor.add(
        "[si-body]",
        ("booking_number", BOOKING),
        ("container_number", "MSKU571028X"),
        ("container_number", "TGHU8763142"),
        ("port_of_loading", "Shanghai"),
    )
    return stub_extractor


class TestCarrierFlow:
    @pytest.mark.asyncio
    async def test_booking_confirmation_creates_shipment(self, db_session, pipeline, cosco_entities, ai_classifier):
        result = await pipeline.ingest(db_session, _booking_confirmation())

        assert result.created is True
        assert result.classification.method == ClassificationMethod.PATTERN
        assert result.classification.matched_pattern_id == "cosco.booking_confirmation"
        ai_classifier.classify.assert_not_awaited()

        outcome = result.reconciliation
        assert outcome.created_shipment is True
        shipment = await repository.get_shipment(db_session, outcome.shipment_id)
        assert shipment.booking_number == BOOKING
        assert shipment.workflow_state == WorkflowState.BOOKING_CONFIRMATION_RECEIVED.value
        assert shipment.field_values["vessel_name"]["value"] == "CSCL STAR"
        assert shipment.field_values["etd"]["value"] == "2025-03-20"
        # The booking number leaked into the container field and was rejected
        assert await repository.get_containers(db_session, shipment.id) == []

        events, total = await AuditService.get_events(
            db_session, entity_id=result.document.id, event_type="IDENTIFIER_REJECTED"
        )
        assert total == 1
        assert events[0].reason_code == ReasonCode.BOOKING_SHAPED_CONTAINER.value
        assert events[0].event_data["raw_value"] == BOOKING

    @pytest.mark.asyncio
    async def test_carrier_shipping_instruction_links_by_booking(self, db_session, pipeline, cosco_entities):
        created = await pipeline.ingest(db_session, _booking_confirmation())
        result = await pipeline.ingest(db_session, _shipping_instruction())

        outcome = result.reconciliation
        assert outcome.link.outcome == LinkOutcome.MATCHED
        assert outcome.link.matched_by == "booking_number"
        assert outcome.shipment_id == created.reconciliation.shipment_id
        assert result.document.sender_category == "carrier"

        shipment = await repository.get_shipment(db_session, outcome.shipment_id)
        assert shipment.workflow_state == WorkflowState.SI_CONFIRMED.value
        assert shipment.field_values["port_of_loading"]["value"] == "SHANGHAI"

    @pytest.mark.asyncio
    async def test_malformed_container_excluded(self, db_session, pipeline, cosco_entities):
        await pipeline.ingest(db_session, _booking_confirmation())
        result = await pipeline.ingest(db_session, _shipping_instruction())

        assert result.aggregation.entities.container_numbers == ["TGHU8763142"]
        rejected = {r.raw_value: r.reason_code for r in result.aggregation.rejected}
        assert rejected == {"MSKU571028X": ReasonCode.INVALID_FORMAT}
        containers = await repository.get_containers(db_session, result.reconciliation.shipment_id)
        assert containers == ["TGHU8763142"]

    @pytest.mark.asyncio
    async def test_correspondence_cannot_change_vessel(
        self, db_session, pipeline, cosco_entities, stub_extractor, ai_classifier
    ):
        created = await pipeline.ingest(db_session, _booking_confirmation())
        ai_classifier.classify.return_value = AIClassification(
            document_type=DocumentType.GENERAL_CORRESPONDENCE, confidence=85, reasoning="Customer query"
        )
        stub_extractor.add("[gc-body]", ("booking_number", BOOKING), ("vessel_name", "Ever Given"))

        result = await pipeline.ingest(db_session, DocumentIngest(
            source_message_id="msg-gc-1",
            sender="Priya <priya@acme-imports.example>",
            subject=f"Vessel for booking {BOOKING}",
            body="[gc-body] We heard the vessel changed to Ever Given, can you confirm?",
        ))

        assert result.classification.method == ClassificationMethod.AI
        outcome = result.reconciliation
        assert outcome.shipment_id == created.reconciliation.shipment_id
        vessel = next(d for d in outcome.merge.decisions if d.entity_type == "vessel_name")
        assert vessel.decision.update is False
        assert vessel.decision.reason == "general_correspondence is not authoritative for vessel_name"
        assert outcome.state.changed is False

        shipment = await repository.get_shipment(db_session, outcome.shipment_id)
        assert shipment.field_values["vessel_name"]["value"] == "CSCL STAR"
        assert shipment.workflow_state == WorkflowState.BOOKING_CONFIRMATION_RECEIVED.value

    @pytest.mark.asyncio
    async def test_instruction_before_confirmation_is_relinked(self, db_session, pipeline, cosco_entities):
        early = await pipeline.ingest(db_session, _shipping_instruction())
        assert early.reconciliation.link.outcome == LinkOutcome.ORPHAN
        assert early.document.link_status == LinkStatus.ORPHAN

        result = await pipeline.ingest(db_session, _booking_confirmation())

        assert result.reconciliation.relinked_document_ids == [early.document.id]
        assert early.document.link_status == LinkStatus.LINKED
        shipment = await repository.get_shipment(db_session, result.reconciliation.shipment_id)
        assert shipment.workflow_state == WorkflowState.SI_CONFIRMED.value
        transitions = await repository.get_transitions(db_session, shipment.id)
        assert [t.to_state for t in transitions] == ["booking_confirmation_received", "si_confirmed"]


class TestIngestBehaviour:
    @pytest.mark.asyncio
    async def test_reingest_updates_in_place(self, db_session, pipeline, cosco_entities):
        first = await pipeline.ingest(db_session, _booking_confirmation())
        again = await pipeline.ingest(db_session, _booking_confirmation())

        assert again.created is False
        assert again.document.id == first.document.id
        assert again.reconciliation.link_created is False
        assert again.reconciliation.created_shipment is False
        shipments = (await db_session.execute(select(func.count(Shipment.id)))).scalar_one()
        assert shipments == 1

    @pytest.mark.asyncio
    async def test_attachment_text_is_extracted(self, db_session, pipeline, stub_extractor):
        stub_extractor.add("[bc-body]", ("booking_number", BOOKING))
        stub_extractor.add("[bc-pdf]", ("vessel_name", "CSCL Star"), ("voyage_number", "061e"))
        payload = _booking_confirmation()
        payload.attachments = [AttachmentIn(filename="booking.pdf", text="Vessel details [bc-pdf]")]

        result = await pipeline.ingest(db_session, payload)

        assert result.document.attachment_filenames == [f"{BOOKING}_BC.pdf", "booking.pdf"]
        assert result.aggregation.entities.get("voyage_number") == "061E"
        assert result.document.attachment_entities == [
            {"vessel_name": ["CSCL Star"], "voyage_number": ["061e"]}
        ]
        assert len(stub_extractor.calls) == 2

    @pytest.mark.asyncio
    async def test_extraction_failure_on_one_source_is_tolerated(self, db_session, pipeline, stub_extractor):
        original = stub_extractor.extract

        async def flaky(text, hint=None):
            if "[broken]" in text:
                raise ExtractionFailure("model returned invalid JSON")
            return await original(text, hint)

        stub_extractor.extract = flaky
        stub_extractor.add("[bc-body]", ("booking_number", BOOKING))
        payload = _booking_confirmation()
        payload.attachments = [AttachmentIn(filename="scan.pdf", text="[broken] unreadable scan")]

        result = await pipeline.ingest(db_session, payload)

        assert result.extraction_errors == ["scan.pdf: model returned invalid JSON"]
        assert result.reconciliation.created_shipment is True

    @pytest.mark.asyncio
    async def test_extraction_api_outage_still_stores_document(
        self, db_session, classification_service, reconciler, test_settings
    ):
        client = MagicMock()
        client.messages.create = AsyncMock(side_effect=anthropic.APIConnectionError(
            request=httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        ))
        pipeline = DocumentIngestionPipeline(
            classification_service, EntityExtractionService(test_settings, client=client), reconciler
        )

        result = await pipeline.ingest(db_session, _booking_confirmation())

        assert result.extraction_errors == ["body: Connection error."]
        assert result.reconciliation.link.outcome is LinkOutcome.ORPHAN
        stored = await repository.get_document_by_message_id(db_session, "msg-bc-1")
        assert stored.document_type == DocumentType.BOOKING_CONFIRMATION.value

    @pytest.mark.asyncio
    async def test_failed_classification_with_identifiers_is_queued(
        self, db_session, pipeline, stub_extractor, ai_classifier
    ):
        ai_classifier.classify.side_effect = ClassificationFailure("Claude API timed out")
        stub_extractor.add("[mystery]", ("booking_number", BOOKING))

        result = await pipeline.ingest(db_session, DocumentIngest(
            source_message_id="msg-unknown-1",
            sender="someone@forwarder.example",
            subject="FYI",
            body="[mystery] see attached",
        ))

        assert result.document.document_type == "unknown"
        assert result.classification.method == ClassificationMethod.FALLBACK
        item = await pipeline.hitl.get_item(db_session, result.review_item_id)
        assert item.item_type == ReviewItemType.CLASSIFICATION_FAILURE
        assert item.review_metadata["entities"]["booking_number"] == BOOKING

    @pytest.mark.asyncio
    async def test_failed_classification_without_identifiers_not_queued(self, db_session, pipeline, ai_classifier):
        ai_classifier.classify.side_effect = ClassificationFailure("Empty response from Claude")

        result = await pipeline.ingest(db_session, DocumentIngest(
            source_message_id="msg-unknown-2", sender="someone@forwarder.example", subject="Hello", body="Hi"
        ))

        assert result.review_item_id is None
        assert result.reconciliation.link.reason_code == ReasonCode.NO_IDENTIFIERS

    @pytest.mark.asyncio
    async def test_ai_model_recorded_in_audit(self, db_session, pipeline, ai_classifier):
        ai_classifier.classify.return_value = AIClassification(
            document_type=DocumentType.INVOICE, confidence=88, reasoning="Freight invoice"
        )

        result = await pipeline.ingest(db_session, DocumentIngest(
            source_message_id="msg-inv-1", sender="billing@agent.example", subject="Invoice 4471", body="Amount due"
        ))

        events, _ = await AuditService.get_events(
            db_session, entity_id=result.document.id, event_type="DOCUMENT_CLASSIFIED"
        )
        assert events[0].model_used == "claude-haiku-test"
        assert events[0].new_state["method"] == "ai"

    @pytest.mark.asyncio
    async def test_reprocess_reclassifies_stored_document(self, db_session, pipeline, ai_classifier, stub_extractor):
        ai_classifier.classify.side_effect = ClassificationFailure("Claude API timed out")
        stub_extractor.add("[an-body]", ("bl_number", "COSU6441804980B"))
        first = await pipeline.ingest(db_session, DocumentIngest(
            source_message_id="msg-an-1", sender="ops@agent.example", subject="Notice", body="[an-body]"
        ))
        assert first.document.document_type == "unknown"

        ai_classifier.classify.side_effect = None
        ai_classifier.classify.return_value = AIClassification(
            document_type=DocumentType.ARRIVAL_NOTICE, confidence=90, reasoning="Arrival notice"
        )
        result = await pipeline.reprocess(db_session, first.document)

        assert result.created is False
        assert result.document.document_type == "arrival_notice"
        assert result.document.link_attempts == 2


class TestStoreErrors:
    @pytest.mark.asyncio
    async def test_connection_errors_become_store_unavailable(self, db_session, pipeline, ai_classifier):
        ai_classifier.classify.side_effect = OperationalError("SELECT 1", {}, Exception("connection refused"))

        with pytest.raises(StoreUnavailable):
            await pipeline.ingest(db_session, DocumentIngest(
                source_message_id="msg-down-1", sender="a@b.example", subject="x", body="y"
            ))

    @pytest.mark.asyncio
    async def test_integrity_errors_propagate(self, db_session, pipeline, ai_classifier):
        ai_classifier.classify.side_effect = IntegrityError("INSERT", {}, Exception("duplicate key"))

        with pytest.raises(IntegrityError):
            await pipeline.ingest(db_session, DocumentIngest(
                source_message_id="msg-dup-1", sender="a@b.example", subject="x", body="y"
            ))
