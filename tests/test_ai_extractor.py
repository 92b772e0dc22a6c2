"""Tests for Claude entity extraction with a mocked client."""

import asyncio
import json

import anthropic
import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock

from shiplink.errors import ExtractionFailure
from shiplink.extraction.ai_extractor import EntityExtractionService


def _response(text: str):
    response = MagicMock()
    response.content = [MagicMock(text=text)]
    return response


def _client(**create_kwargs):
    client = MagicMock()
    client.messages.create = AsyncMock(**create_kwargs)
    return client


class TestEntityExtractionService:
    @pytest.mark.asyncio
    async def test_low_confidence_entities_dropped(self, test_settings):
        client = _client(return_value=_response(json.dumps([
            {"entity_type": "booking_number", "value": "COSU6441804980", "confidence": 95},
            {"entity_type": "vessel_name", "value": "CSCL Star", "confidence": 40},
        ])))
        service = EntityExtractionService(test_settings, client=client)

        entities = await service.extract("Booking COSU6441804980 on CSCL Star", "booking_confirmation")

        assert [e.value for e in entities] == ["COSU6441804980"]
        assert client.messages.create.call_args.kwargs["temperature"] == 0

    @pytest.mark.asyncio
    async def test_blank_text_skips_the_call(self, test_settings):
        client = _client()
        service = EntityExtractionService(test_settings, client=client)

        assert await service.extract("   ") == []
        client.messages.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_connection_error_raises_extraction_failure(self, test_settings):
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        client = _client(side_effect=anthropic.APIConnectionError(request=request))
        service = EntityExtractionService(test_settings, client=client)

        with pytest.raises(ExtractionFailure, match="Connection error"):
            await service.extract("Booking COSU6441804980")

    @pytest.mark.asyncio
    async def test_empty_content_raises_extraction_failure(self, test_settings):
        response = MagicMock()
        response.content = []
        service = EntityExtractionService(test_settings, client=_client(return_value=response))

        with pytest.raises(ExtractionFailure, match="Empty"):
            await service.extract("Booking COSU6441804980")

    @pytest.mark.asyncio
    async def test_timeout_raises_extraction_failure(self, test_settings):
        async def slow(**kwargs):
            await asyncio.sleep(1)

        client = MagicMock()
        client.messages.create = slow
        service = EntityExtractionService(test_settings, client=client)
        service.timeout_seconds = 0.01

        with pytest.raises(ExtractionFailure, match="Timed out"):
            await service.extract("Booking COSU6441804980")

    @pytest.mark.asyncio
    async def test_non_json_answer_raises_extraction_failure(self, test_settings):
        service = EntityExtractionService(test_settings, client=_client(return_value=_response("no entities found")))

        with pytest.raises(ExtractionFailure, match="not valid JSON"):
            await service.extract("Booking COSU6441804980")
