"""
Document classification orchestration.

Order of evaluation:
1. Thread analysis (reply/forward depth, clean subject, fresh body).
2. Sender resolution (direction, sender category).
3. A reply or forward with nothing new in its fresh body and no attachments is
   final as general_correspondence; the quoted history does not reclassify it.
4. Carrier rule set for the sender domain, first match wins.
5. Below threshold or no match: Claude, constrained to the closed type set.
6. Claude failure of any kind: unknown with confidence 0, never an exception.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass

import anthropic

from shiplink.config import Settings
from shiplink.document_classifier.ai_classifier import AIDocumentClassifier
from shiplink.document_classifier.direction import SenderContext, resolve_sender
from shiplink.document_classifier.patterns import (
    CARRIER_RULE_SETS,
    CarrierRuleSet,
    ClassificationInput,
    carrier_for_sender,
    match_patterns,
)
from shiplink.document_classifier.thread import ThreadContext, analyze_thread
from shiplink.errors import ClassificationFailure, ReasonCode
from shiplink.schemas.classification import ClassificationMethod, Direction, DocumentType

logger = logging.getLogger("shiplink.classifier")

# Confidence reported for replies/forwards settled by thread analysis alone.
THREAD_CONFIDENCE = 75


@dataclass(frozen=True)
class ClassificationResult:
    document_type: DocumentType
    confidence: int
    method: ClassificationMethod
    sender: SenderContext
    thread: ThreadContext
    reason_code: ReasonCode
    reason: str
    matched_pattern_id: str | None = None
    carrier_id: str | None = None

    @property
    def direction(self) -> Direction:
        return self.sender.direction


class DocumentClassificationService:
    def __init__(
        self,
        settings: Settings,
        ai_classifier: AIDocumentClassifier | None = None,
        rule_sets: Sequence[CarrierRuleSet] = CARRIER_RULE_SETS,
    ):
        self.settings = settings
        self.rule_sets = rule_sets
        if ai_classifier is None:
            client = anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key)
            ai_classifier = AIDocumentClassifier(
                client,
                settings.claude_haiku_model,
                timeout_seconds=settings.ai_request_timeout_seconds,
                excerpt_chars=settings.ai_body_excerpt_chars,
            )
        self.ai_classifier = ai_classifier

    async def classify(
        self,
        subject: str | None,
        sender: str | None,
        body: str | None = "",
        attachment_filenames: Sequence[str] = (),
    ) -> ClassificationResult:
        attachments = tuple(attachment_filenames or ())
        thread = analyze_thread(subject, body)
        sender_ctx = resolve_sender(
            sender,
            self.settings.own_org_domains,
            unrecognized_direction=Direction(self.settings.unrecognized_sender_direction),
        )
        carrier = carrier_for_sender(sender, self.rule_sets)
        carrier_id = carrier.carrier_id if carrier else None

        if thread.is_reply_or_forward and not attachments and not thread.has_new_content(
            self.settings.thread_min_fresh_chars
        ):
            return ClassificationResult(
                document_type=DocumentType.GENERAL_CORRESPONDENCE,
                confidence=THREAD_CONFIDENCE,
                method=ClassificationMethod.THREAD,
                sender=sender_ctx,
                thread=thread,
                reason_code=ReasonCode.THREAD_NO_NEW_CONTENT,
                reason=(
                    f"{thread.role.value} (depth {thread.depth}) with no new content in the "
                    f"current message; quoted history is not reclassified"
                ),
                carrier_id=carrier_id,
            )

        item = ClassificationInput(
            subject=thread.clean_subject,
            sender=sender,
            body=thread.fresh_body,
            attachment_filenames=attachments,
        )
        match = match_patterns(item, self.rule_sets)
        threshold = self.settings.classification_confidence_threshold

        if match is not None and match.confidence >= threshold:
            logger.info(
                "Pattern %s classified %r as %s (%d)",
                match.pattern_id, thread.clean_subject, match.document_type.value, match.confidence,
            )
            return ClassificationResult(
                document_type=match.document_type,
                confidence=match.confidence,
                method=ClassificationMethod.PATTERN,
                sender=sender_ctx,
                thread=thread,
                reason_code=ReasonCode.PATTERN_MATCH,
                reason=f"Matched carrier rule {match.pattern_id} with confidence {match.confidence}",
                matched_pattern_id=match.pattern_id,
                carrier_id=match.carrier_id,
            )

        excerpt = thread.fresh_body if thread.is_reply_or_forward else (body or "")
        try:
            ai_result = await self.ai_classifier.classify(
                subject=subject or "",
                sender=sender,
                body_excerpt=excerpt,
                attachment_filenames=attachments,
            )
        except ClassificationFailure as e:
            logger.warning("Classification fell back to unknown for %r: %s", subject, e)
            return ClassificationResult(
                document_type=DocumentType.UNKNOWN,
                confidence=0,
                method=ClassificationMethod.FALLBACK,
                sender=sender_ctx,
                thread=thread,
                reason_code=ReasonCode.CLASSIFICATION_FAILED,
                reason=f"AI classification failed: {e}",
                carrier_id=carrier_id,
            )

        pattern_note = (
            f"rule {match.pattern_id} below threshold ({match.confidence} < {threshold})"
            if match is not None
            else "no carrier rule matched"
        )
        return ClassificationResult(
            document_type=ai_result.document_type,
            confidence=ai_result.confidence,
            method=ClassificationMethod.AI,
            sender=sender_ctx,
            thread=thread,
            reason_code=ReasonCode.AI_CLASSIFIED,
            reason=f"{pattern_note}; AI: {ai_result.reasoning}".strip(),
            carrier_id=carrier_id,
        )
