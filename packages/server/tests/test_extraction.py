"""
Tests for the extraction orchestrator.

Tests cover:
- Fence stripping and strict parsing of model replies
- Degraded results for every upstream failure mode
- Request shape (inline bytes, key in header)
"""

from __future__ import annotations

import json
from decimal import Decimal

import httpx
import pytest

from invoicehub_shared.schemas.invoices import Confidence

from app.services.extraction import parse_extraction_text, strip_code_fence
from helpers import GEMINI_HOST, gemini_reply


class TestParsing:
    def test_fenced_json_reply(self):
        result = parse_extraction_text('```json\n{"supplier_name":"Google","total_amount":1500}\n```')
        assert result.confidence == Confidence.SUCCESS
        assert result.supplier_name == "Google"
        assert result.total_amount == Decimal("1500")

    def test_bare_fence(self):
        assert strip_code_fence('```\n{"a": 1}\n```') == '{"a": 1}'

    def test_plain_json(self):
        result = parse_extraction_text('  {"supplier_name": "חברת חשמל", "total_amount": "1,234.50"}  ')
        assert result.supplier_name == "חברת חשמל"
        assert result.total_amount == Decimal("1234.50")

    def test_prose_is_degraded(self):
        result = parse_extraction_text("The supplier is Google and the total is 1500.")
        assert result.confidence == Confidence.DEGRADED
        assert result.supplier_name is None
        assert result.total_amount is None

    def test_json_array_is_degraded(self):
        assert parse_extraction_text("[1, 2]").confidence == Confidence.DEGRADED

    def test_wrong_field_types_become_null(self):
        result = parse_extraction_text('{"supplier_name": 42, "total_amount": true}')
        assert result.confidence == Confidence.SUCCESS
        assert result.supplier_name is None
        assert result.total_amount is None


@pytest.mark.asyncio
class TestInvoiceExtractor:
    async def test_success(self, services):
        result = await services.extractor().extract(b"%PDF", "application/pdf")
        assert result.succeeded
        assert result.supplier_name == "Acme Ltd"
        assert result.total_amount == Decimal("250.5")

        [req] = services.sent_to(GEMINI_HOST)
        assert req.url.path == "/v1beta/models/gemini-2.0-flash:generateContent"
        assert req.headers["x-goog-api-key"] == "gemini-key"
        assert "key=" not in str(req.url)
        body = json.loads(req.content)
        inline = body["contents"][0]["parts"][1]["inline_data"]
        assert inline == {"mime_type": "application/pdf", "data": "JVBERg=="}
        assert "code fences" in body["contents"][0]["parts"][0]["text"]

    async def test_fenced_reply(self, services):
        services.gemini = lambda req: gemini_reply(
            '```json\n{"supplier_name":"Google","total_amount":1500}\n```'
        )
        result = await services.extractor().extract(b"%PDF", "application/pdf")
        assert result.confidence == Confidence.SUCCESS
        assert result.supplier_name == "Google"
        assert result.total_amount == Decimal("1500")

    async def test_http_error_degrades(self, services):
        services.gemini = lambda req: httpx.Response(429, text="quota exceeded")
        result = await services.extractor().extract(b"%PDF", "application/pdf")
        assert result.confidence == Confidence.DEGRADED
        assert result.reason == "http_error"

    async def test_timeout_degrades(self, services):
        def slow(req):
            raise httpx.ReadTimeout("timed out", request=req)

        services.gemini = slow
        result = await services.extractor().extract(b"%PDF", "application/pdf")
        assert result.reason == "transport_error"

    async def test_no_text_part_degrades(self, services):
        services.gemini = lambda req: httpx.Response(200, json={"candidates": []})
        result = await services.extractor().extract(b"%PDF", "application/pdf")
        assert result.reason == "no_content"

    async def test_non_json_envelope_degrades(self, services):
        services.gemini = lambda req: httpx.Response(200, text="<html>")
        result = await services.extractor().extract(b"%PDF", "application/pdf")
        assert result.reason == "invalid_json_envelope"

    async def test_not_configured_skips_call(self, services):
        result = await services.extractor(api_key="").extract(b"%PDF", "application/pdf")
        assert result.reason == "not_configured"
        assert services.sent_to(GEMINI_HOST) == []
