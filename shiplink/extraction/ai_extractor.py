"""
Claude entity extraction for freight emails and attachment text.

Returns flat (entity_type, value, confidence) records. Entities under the
acceptance confidence are dropped here, before they reach the aggregator.
"""

import asyncio
import json
import logging

import anthropic
from pydantic import ValidationError

from shiplink.config import Settings
from shiplink.errors import ExtractionFailure
from shiplink.schemas.entities import EntityType, ExtractedEntity

logger = logging.getLogger("shiplink.extraction")

EXTRACTION_SYSTEM_PROMPT = """You are a freight forwarding data extraction specialist. Extract shipment identifiers and schedule facts from carrier and customer emails and their attachments.

Only report values that literally appear in the text. Do not guess. For dates use ISO 8601 (YYYY-MM-DD). Container numbers are 4 letters followed by 7 digits; do not report booking numbers as container numbers.

Respond with valid JSON only, no additional text."""

ENTITY_TYPES_TEXT = ", ".join(e.value for e in EntityType)


def _parse_json_response(response_text: str):
    """Parse JSON from Claude response, handling markdown code blocks."""
    text = response_text.strip()
    if "```json" in text:
        text = text.split("```json")[1].split("```")[0].strip()
    elif "```" in text:
        text = text.split("```")[1].split("```")[0].strip()

    try:
        return json.loads(text)
    except (json.JSONDecodeError, IndexError) as e:
        logger.error("Failed to parse Claude response as JSON: %s", e)
        raise ExtractionFailure(f"Claude response was not valid JSON: {e}") from e


class EntityExtractionService:
    def __init__(self, settings: Settings, client: anthropic.AsyncAnthropic | None = None):
        self.client = client or anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key)
        self.model = settings.claude_haiku_model
        self.max_tokens = settings.claude_max_tokens
        self.timeout_seconds = settings.ai_request_timeout_seconds
        self.max_chars = settings.ai_attachment_excerpt_chars
        self.acceptance_confidence = settings.entity_acceptance_confidence

    async def extract(self, text: str, document_type_hint: str | None = None) -> list[ExtractedEntity]:
        """Extract entities from ``text``.

        Raises ExtractionFailure on an API error, a timeout, an empty or
        unparseable response.
        """
        if not text or not text.strip():
            return []

        prompt = (
            f"Document type: {document_type_hint or 'unknown'}\n"
            f"Entity types: {ENTITY_TYPES_TEXT}\n\n"
            "Return a JSON array of objects: "
            '[{"entity_type": "<type>", "value": "<value>", "confidence": <0-100>}]\n\n'
            f"Content:\n{text[: self.max_chars]}"
        )

        try:
            message = await asyncio.wait_for(
                self.client.messages.create(
                    model=self.model,
                    max_tokens=self.max_tokens,
                    temperature=0,
                    system=EXTRACTION_SYSTEM_PROMPT,
                    messages=[{"role": "user", "content": prompt}],
                ),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            logger.warning("Entity extraction timed out after %.1fs", self.timeout_seconds)
            raise ExtractionFailure(f"Timed out after {self.timeout_seconds}s") from e
        except anthropic.APIError as e:
            logger.error("Entity extraction API error: %s", e)
            raise ExtractionFailure(str(e)) from e

        if not message.content:
            raise ExtractionFailure("Empty extraction response")

        data = _parse_json_response(getattr(message.content[0], "text", "") or "")
        if isinstance(data, dict):
            data = data.get("entities", [])
        if not isinstance(data, list):
            raise ExtractionFailure("Claude response was not a JSON array of entities")

        accepted: list[ExtractedEntity] = []
        for raw in data:
            try:
                entity = ExtractedEntity.model_validate(raw)
            except ValidationError as e:
                logger.warning("Skipping malformed entity %r: %s", raw, e)
                continue
            if entity.confidence < self.acceptance_confidence:
                logger.debug(
                    "Discarding %s=%r below acceptance (%d < %d)",
                    entity.entity_type, entity.value, entity.confidence, self.acceptance_confidence,
                )
                continue
            accepted.append(entity)

        logger.info("Extracted %d/%d entities above acceptance", len(accepted), len(data))
        return accepted
