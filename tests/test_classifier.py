"""Tests for the Claude fallback classifier and the classification service."""

import asyncio
import json

import pytest
from unittest.mock import AsyncMock, MagicMock

from shiplink.document_classifier.ai_classifier import (
    AIClassification,
    AIDocumentClassifier,
    parse_classification,
)
from shiplink.document_classifier.service import THREAD_CONFIDENCE, DocumentClassificationService
from shiplink.errors import ClassificationFailure, ReasonCode
from shiplink.schemas.classification import ClassificationMethod, Direction, DocumentType


def _response(text: str):
    response = MagicMock()
    response.content = [MagicMock(text=text)]
    return response


# ── Pure function tests (no API needed) ──


class TestParseClassification:
    def test_plain_json(self):
        result = parse_classification(
            '{"document_type": "arrival_notice", "confidence": 88, "reasoning": "ETA notice"}'
        )
        assert result.document_type == DocumentType.ARRIVAL_NOTICE
        assert result.confidence == 88
        assert result.reasoning == "ETA notice"

    def test_markdown_fenced_json(self):
        text = '```json\n{"document_type": "invoice", "confidence": 91.6}\n```'
        result = parse_classification(text)
        assert result.document_type == DocumentType.INVOICE
        assert result.confidence == 92

    def test_confidence_clamped(self):
        result = parse_classification('{"document_type": "invoice", "confidence": 140}')
        assert result.confidence == 100

    def test_out_of_set_type_raises(self):
        with pytest.raises(ClassificationFailure, match="Out-of-set"):
            parse_classification('{"document_type": "packing_list", "confidence": 90}')

    def test_unknown_is_not_an_answer(self):
        with pytest.raises(ClassificationFailure):
            parse_classification('{"document_type": "unknown", "confidence": 90}')

    def test_garbage_raises(self):
        with pytest.raises(ClassificationFailure, match="Unparseable"):
            parse_classification("I think this is an invoice")


# ── AIDocumentClassifier with a mocked client ──


class TestAIDocumentClassifier:
    @pytest.mark.asyncio
    async def test_classify_success(self):
        client = MagicMock()
        client.messages.create = AsyncMock(
            return_value=_response(json.dumps({"document_type": "sob_confirmation", "confidence": 83}))
        )
        classifier = AIDocumentClassifier(client, "claude-haiku-test")

        result = await classifier.classify("Shipped on board", "ops@line.example", "Loaded on MSC ANNA")

        assert result.document_type == DocumentType.SOB_CONFIRMATION
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["model"] == "claude-haiku-test"
        assert kwargs["temperature"] == 0

    @pytest.mark.asyncio
    async def test_body_excerpt_is_bounded(self):
        client = MagicMock()
        client.messages.create = AsyncMock(
            return_value=_response('{"document_type": "invoice", "confidence": 80}')
        )
        classifier = AIDocumentClassifier(client, "m", excerpt_chars=50)

        await classifier.classify("Invoice", None, "x" * 500)

        content = client.messages.create.call_args.kwargs["messages"][0]["content"]
        assert "x" * 50 in content
        assert "x" * 51 not in content

    @pytest.mark.asyncio
    async def test_api_error_raises_classification_failure(self):
        client = MagicMock()
        client.messages.create = AsyncMock(side_effect=RuntimeError("overloaded"))
        classifier = AIDocumentClassifier(client, "m")

        with pytest.raises(ClassificationFailure, match="overloaded"):
            await classifier.classify("s", None, "b")

    @pytest.mark.asyncio
    async def test_timeout_raises_classification_failure(self):
        async def slow(**kwargs):
            await asyncio.sleep(1)

        client = MagicMock()
        client.messages.create = slow
        classifier = AIDocumentClassifier(client, "m", timeout_seconds=0.01)

        with pytest.raises(ClassificationFailure, match="Timed out"):
            await classifier.classify("s", None, "b")

    @pytest.mark.asyncio
    async def test_empty_response_raises(self):
        client = MagicMock()
        response = MagicMock()
        response.content = []
        client.messages.create = AsyncMock(return_value=response)
        classifier = AIDocumentClassifier(client, "m")

        with pytest.raises(ClassificationFailure, match="Empty"):
            await classifier.classify("s", None, "b")


# ── DocumentClassificationService ──


class TestClassificationService:
    @pytest.mark.asyncio
    async def test_pattern_match_skips_ai(self, classification_service, ai_classifier):
        result = await classification_service.classify(
            subject="Cosco Shipping Line Booking Confirmation - COSU6441804980",
            sender="noreply@coscon.com",
            body="Booking confirmed",
            attachment_filenames=["COSU6441804980.pdf"],
        )

        assert result.document_type == DocumentType.BOOKING_CONFIRMATION
        assert result.method == ClassificationMethod.PATTERN
        assert result.confidence == 100
        assert result.matched_pattern_id == "cosco.booking_confirmation"
        assert result.direction == Direction.INBOUND
        ai_classifier.classify.assert_not_called()

    @pytest.mark.asyncio
    async def test_low_confidence_rule_defers_to_ai(self, classification_service, ai_classifier):
        ai_classifier.classify.return_value = AIClassification(
            DocumentType.GENERAL_CORRESPONDENCE, 80, "case update"
        )

        result = await classification_service.classify(
            subject="Your Case Number : 12345678-9",
            sender="support@maersk.com",
            body="We are looking into your request.",
        )

        assert result.method == ClassificationMethod.AI
        assert result.reason_code == ReasonCode.AI_CLASSIFIED
        assert "below threshold" in result.reason
        assert result.carrier_id == "maersk"

    @pytest.mark.asyncio
    async def test_ai_failure_falls_back_to_unknown(self, classification_service, ai_classifier):
        ai_classifier.classify.side_effect = ClassificationFailure("timed out")

        result = await classification_service.classify(
            subject="Shipment update",
            sender="buyer@customer.example",
            body="Where is my cargo?",
        )

        assert result.document_type == DocumentType.UNKNOWN
        assert result.confidence == 0
        assert result.method == ClassificationMethod.FALLBACK
        assert result.reason_code == ReasonCode.CLASSIFICATION_FAILED

    @pytest.mark.asyncio
    async def test_reply_without_new_content_is_correspondence(self, classification_service, ai_classifier):
        result = await classification_service.classify(
            subject="RE: Cosco Shipping Line Booking Confirmation - COSU6441804980",
            sender="ops@intoglo.com",
            body="Noted, thanks.\n\nOn Tue, Cosco <noreply@coscon.com> wrote:\n> Booking confirmed",
        )

        assert result.document_type == DocumentType.GENERAL_CORRESPONDENCE
        assert result.method == ClassificationMethod.THREAD
        assert result.confidence == THREAD_CONFIDENCE
        assert result.direction == Direction.OUTBOUND
        ai_classifier.classify.assert_not_called()

    @pytest.mark.asyncio
    async def test_forward_with_attachment_uses_clean_subject(self, classification_service):
        result = await classification_service.classify(
            subject="FW: Cosco Shipping Line Booking Confirmation - COSU6441804980",
            sender="noreply@coscon.com",
            body="",
            attachment_filenames=["bc.pdf"],
        )

        assert result.method == ClassificationMethod.PATTERN
        assert result.thread.depth == 1

    @pytest.mark.asyncio
    async def test_reply_sends_only_fresh_body_to_ai(self, classification_service, ai_classifier):
        ai_classifier.classify.return_value = AIClassification(DocumentType.BOOKING_AMENDMENT, 85, "vessel change")

        await classification_service.classify(
            subject="RE: Booking 12345678",
            sender="ops@forwarder.example",
            body=(
                "Please change the vessel to CMA CGM MARCO POLO for this booking, voyage 0FL3RW1MA.\n"
                "> Original booking text quoted here"
            ),
        )

        excerpt = ai_classifier.classify.call_args.kwargs["body_excerpt"]
        assert "MARCO POLO" in excerpt
        assert "Original booking text" not in excerpt

    def test_default_ai_classifier_built_from_settings(self, test_settings):
        service = DocumentClassificationService(test_settings)
        assert isinstance(service.ai_classifier, AIDocumentClassifier)
        assert service.ai_classifier.model == test_settings.claude_haiku_model


# ── Idempotence ──


@pytest.mark.parametrize("subject,sender,body,filenames", [
    ("Cosco Shipping Line Booking Confirmation - COSU6441804980", "noreply@coscon.com", "Booking confirmed", ["bc.pdf"]),
    ("RE: Cosco Shipping Line Booking Confirmation - COSU6441804980", "ops@intoglo.com", "Noted, thanks.", []),
    ("Shipment update", "buyer@customer.example", "Where is my cargo?", []),
    ("Arrival", None, "Your cargo has arrived", []),
])
@pytest.mark.asyncio
async def test_classification_is_idempotent(classification_service, ai_classifier, subject, sender, body, filenames):
    ai_classifier.classify.return_value = AIClassification(DocumentType.ARRIVAL_NOTICE, 77, "arrival wording")

    first = await classification_service.classify(
        subject=subject, sender=sender, body=body, attachment_filenames=filenames
    )
    second = await classification_service.classify(
        subject=subject, sender=sender, body=body, attachment_filenames=filenames
    )

    assert (first.document_type, first.direction, first.confidence) == (
        second.document_type, second.direction, second.confidence
    )
