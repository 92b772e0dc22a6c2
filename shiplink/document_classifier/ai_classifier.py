"""
Fallback document classifier using Claude Haiku.

Used when no carrier rule fires or the rule's confidence is below threshold.
The answer is constrained to the closed DocumentType set; anything else, an
API error or a timeout raises ClassificationFailure for the caller to degrade.
"""

import asyncio
import json
import logging
from dataclasses import dataclass

import anthropic

from shiplink.errors import ClassificationFailure
from shiplink.schemas.classification import DocumentType

logger = logging.getLogger("shiplink.classifier.ai")

ALLOWED_TYPES = [t for t in DocumentType if t is not DocumentType.UNKNOWN]

CLASSIFICATION_PROMPT = """Classify this freight forwarding email into exactly one of the following types:
- booking_confirmation: Carrier confirms a booking (booking number, vessel, cutoffs).
- booking_amendment: Carrier or forwarder changes an existing booking (new vessel, dates, equipment).
- booking_cancellation: The booking is cancelled.
- shipping_instruction: Shipping instruction (SI) draft or carrier acknowledgement of a submitted SI.
- vgm_confirmation: Verified Gross Mass submission accepted or confirmed.
- sob_confirmation: Shipped-on-board confirmation; cargo loaded on the vessel.
- bill_of_lading: Master bill of lading or sea waybill, draft or final, issued by the carrier.
- house_bl: House bill of lading issued by the forwarder.
- invoice: Freight invoice or debit note for the shipment.
- arrival_notice: Notice that cargo is arriving or has arrived at the port of discharge.
- duty_invoice: Customs duty or tax invoice at destination.
- customs_clearance: Customs entry released or cargo cleared by customs.
- delivery_order: Delivery order issued for pickup at destination.
- container_release: Container or freight release at destination.
- proof_of_delivery: Proof of delivery (POD) to the consignee.
- general_correspondence: Operational discussion that is none of the above.

Respond with ONLY a JSON object:
{"document_type": "<type>", "confidence": <0-100>, "reasoning": "<one sentence>"}"""


@dataclass(frozen=True)
class AIClassification:
    document_type: DocumentType
    confidence: int
    reasoning: str


def parse_classification(result_text: str) -> AIClassification:
    """Parse the model's JSON answer, tolerating markdown fences."""
    result_text = result_text.strip()

    if "```" in result_text:
        for part in result_text.split("```"):
            cleaned = part.strip().removeprefix("json").strip()
            if cleaned.startswith("{"):
                result_text = cleaned
                break

    try:
        data = json.loads(result_text)
    except json.JSONDecodeError as e:
        raise ClassificationFailure(f"Unparseable classifier response: {result_text[:200]!r}") from e

    doc_type_str = str(data.get("document_type", "")).strip().lower()
    try:
        document_type = DocumentType(doc_type_str)
    except ValueError as e:
        raise ClassificationFailure(f"Out-of-set document type from classifier: {doc_type_str!r}") from e
    if document_type not in ALLOWED_TYPES:
        raise ClassificationFailure(f"Out-of-set document type from classifier: {doc_type_str!r}")

    try:
        confidence = int(round(float(data.get("confidence", 0))))
    except (TypeError, ValueError):
        confidence = 0
    confidence = max(0, min(100, confidence))

    return AIClassification(
        document_type=document_type,
        confidence=confidence,
        reasoning=str(data.get("reasoning") or ""),
    )


class AIDocumentClassifier:
    """Classifies documents with Claude Haiku inside a hard timeout."""

    def __init__(
        self,
        client: anthropic.AsyncAnthropic,
        model: str,
        timeout_seconds: float = 30.0,
        excerpt_chars: int = 2000,
    ):
        self.client = client
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.excerpt_chars = excerpt_chars

    async def classify(
        self,
        subject: str,
        sender: str | None,
        body_excerpt: str,
        attachment_filenames: list[str] | tuple[str, ...] = (),
    ) -> AIClassification:
        content = self._build_content(subject, sender, body_excerpt, attachment_filenames)

        try:
            response = await asyncio.wait_for(
                self.client.messages.create(
                    model=self.model,
                    max_tokens=200,
                    temperature=0,
                    system=CLASSIFICATION_PROMPT,
                    messages=[{"role": "user", "content": content}],
                ),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            logger.warning("AI classification timed out after %.1fs", self.timeout_seconds)
            raise ClassificationFailure(f"Timed out after {self.timeout_seconds}s") from e
        except anthropic.APIError as e:
            logger.error("AI classification API error: %s", e)
            raise ClassificationFailure(str(e)) from e
        except Exception as e:
            logger.error("Classification failed: %s", e)
            raise ClassificationFailure(str(e)) from e

        if not response.content:
            raise ClassificationFailure("Empty classifier response")

        result = parse_classification(getattr(response.content[0], "text", "") or "")
        logger.info(
            "AI classified as %s (confidence %d)", result.document_type.value, result.confidence
        )
        return result

    def _build_content(
        self,
        subject: str,
        sender: str | None,
        body_excerpt: str,
        attachment_filenames,
    ) -> str:
        # Bounded input: only the first excerpt_chars of the body are sent.
        preview = (body_excerpt or "")[: self.excerpt_chars]
        attachments = ", ".join(attachment_filenames) if attachment_filenames else "none"
        return (
            f"Subject: {subject or ''}\n"
            f"From: {sender or 'unknown'}\n"
            f"Attachments: {attachments}\n\n"
            f"Body:\n{preview}"
        )
