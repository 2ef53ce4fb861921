"""
Extraction orchestrator: asks a multimodal model for the supplier name and
total amount of an invoice.

Extraction is advisory: every failure mode returns a degraded
``ExtractionResult`` with both fields empty, and nothing raises past
``InvoiceExtractor.extract``.
"""

from __future__ import annotations

import base64
import json
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import httpx
import structlog

from invoicehub_shared.schemas.common import ErrorKind
from invoicehub_shared.schemas.invoices import Confidence, ExtractionResult

from app.core.config import Settings

log = structlog.get_logger()

EXTRACTION_PROMPT = (
    "Analyze this invoice. Extract the 'supplier_name' (Hebrew/English) and "
    "'total_amount'.\n"
    'Return ONLY a clean JSON object: { "supplier_name": "...", "total_amount": 0.00 }.\n'
    "Do not include Markdown formatting or code fences."
)

# One layer of ```lang ... ``` or ``` ... ``` around the whole reply.
_FENCE_RE = re.compile(r"^```[A-Za-z0-9_-]*[ \t]*\n?(.*?)\n?[ \t]*```$", re.DOTALL)


def strip_code_fence(text: str) -> str:
    text = text.strip()
    match = _FENCE_RE.match(text)
    if match:
        return match.group(1).strip()
    return text


def _coerce_supplier(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    return value.strip() or None


def _coerce_amount(value: Any) -> Optional[Decimal]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        value = str(value)
    if not isinstance(value, str):
        return None
    try:
        amount = Decimal(value.strip().replace(",", ""))
    except InvalidOperation:
        return None
    return amount if amount.is_finite() else None


def parse_extraction_text(text: str) -> ExtractionResult:
    """Strip known wrappers, then parse strictly; anything else is degraded."""
    candidate = strip_code_fence(text)
    try:
        parsed = json.loads(candidate)
    except ValueError:
        return ExtractionResult.degraded("unparseable_response")
    if not isinstance(parsed, dict):
        return ExtractionResult.degraded("unexpected_response_shape")

    return ExtractionResult(
        supplier_name=_coerce_supplier(parsed.get("supplier_name")),
        total_amount=_coerce_amount(parsed.get("total_amount")),
        confidence=Confidence.SUCCESS,
    )


def build_request_payload(data: bytes, content_type: str) -> dict:
    return {
        "contents": [
            {
                "parts": [
                    {"text": EXTRACTION_PROMPT},
                    {
                        "inline_data": {
                            "mime_type": content_type,
                            "data": base64.b64encode(data).decode("ascii"),
                        }
                    },
                ]
            }
        ],
        "generationConfig": {
            "temperature": 0.1,
            "maxOutputTokens": 300,
        },
    }


def response_text(body: Any) -> Optional[str]:
    """First text part of the first candidate, if any."""
    if not isinstance(body, dict):
        return None
    candidates = body.get("candidates") or []
    if not candidates or not isinstance(candidates[0], dict):
        return None
    parts = (candidates[0].get("content") or {}).get("parts") or []
    for part in parts:
        if isinstance(part, dict) and isinstance(part.get("text"), str):
            return part["text"]
    return None


class InvoiceExtractor:
    """Gemini ``generateContent`` client for invoice field extraction."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        api_key: str,
        model: str,
        api_url: str,
        timeout_seconds: float = 30.0,
    ):
        self._client = client
        self._api_key = api_key
        self._model = model
        self._api_url = api_url.rstrip("/")
        self._timeout = httpx.Timeout(timeout_seconds)

    @classmethod
    def from_settings(cls, client: httpx.AsyncClient, settings: Settings) -> "InvoiceExtractor":
        return cls(
            client,
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            api_url=settings.gemini_api_url,
            timeout_seconds=settings.extraction_timeout_seconds,
        )

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    def _unavailable(self, reason: str, **context) -> ExtractionResult:
        log.warning(
            "extraction.unavailable",
            kind=ErrorKind.EXTRACTION_UNAVAILABLE.value,
            reason=reason,
            model=self._model,
            **context,
        )
        return ExtractionResult.degraded(reason)

    async def extract(self, data: bytes, content_type: str) -> ExtractionResult:
        if not self.configured:
            return self._unavailable("not_configured")

        url = f"{self._api_url}/models/{self._model}:generateContent"
        try:
            resp = await self._client.post(
                url,
                json=build_request_payload(data, content_type),
                headers={"x-goog-api-key": self._api_key},
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            return self._unavailable("transport_error", error=exc.__class__.__name__)

        if resp.status_code != 200:
            return self._unavailable(
                "http_error", status=resp.status_code, body=resp.text[:1000]
            )

        try:
            body = resp.json()
        except ValueError:
            return self._unavailable("invalid_json_envelope")

        text = response_text(body)
        if text is None:
            return self._unavailable(
                "no_content", candidates=len(body.get("candidates") or []) if isinstance(body, dict) else 0
            )

        result = parse_extraction_text(text)
        if not result.succeeded:
            return self._unavailable(result.reason or "unparseable_response", content=text[:200])

        log.info(
            "extraction.succeeded",
            model=self._model,
            has_supplier=result.supplier_name is not None,
            has_amount=result.total_amount is not None,
        )
        return result
