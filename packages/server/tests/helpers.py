"""Test helpers: tokens and fake outbound HTTP services."""

from __future__ import annotations

import json
import time
import uuid
from typing import Callable, Optional

import httpx
import jwt

from app.services.extraction import InvoiceExtractor
from app.services.notifications import NotificationDispatcher
from app.services.storage import ObjectStore

TEST_SECRET = "test-secret-with-enough-length-for-hs256"
AUDIENCE = "authenticated"

STORAGE_HOST = "storage.test"
PUBLIC_STORAGE_BASE = "https://cdn.storage.test"
GEMINI_HOST = "gemini.test"
SMS_HOST = "sms.test"

PDF_PAYLOAD = "data:application/pdf;base64,JVBERi0xLjQK"


def make_token(
    user_id: uuid.UUID,
    *,
    secret: str = TEST_SECRET,
    expires_in: int = 3600,
    audience: Optional[str] = AUDIENCE,
    email: Optional[str] = None,
) -> str:
    payload = {"sub": str(user_id), "exp": int(time.time()) + expires_in}
    if audience:
        payload["aud"] = audience
    if email:
        payload["email"] = email
    return jwt.encode(payload, secret, algorithm="HS256")


def bearer(user_id: uuid.UUID) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


def gemini_reply(text: str) -> httpx.Response:
    return httpx.Response(
        200,
        json={"candidates": [{"content": {"parts": [{"text": text}], "role": "model"}}]},
    )


Responder = Callable[[httpx.Request], httpx.Response]


class FakeServices:
    """Outbound HTTP collaborators; each responder builds a fresh response."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.storage: Responder = lambda req: httpx.Response(
            200, json={"Key": req.url.path.split("/object/", 1)[-1]}
        )
        self.gemini: Responder = lambda req: gemini_reply(
            json.dumps({"supplier_name": "Acme Ltd", "total_amount": 250.50})
        )
        self.sms: Responder = lambda req: httpx.Response(
            200, json={"response_code": "SUCCESS"}
        )
        self.client = httpx.AsyncClient(transport=httpx.MockTransport(self._handle))

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        responder = {
            STORAGE_HOST: self.storage,
            GEMINI_HOST: self.gemini,
            SMS_HOST: self.sms,
        }[request.url.host]
        return responder(request)

    def sent_to(self, host: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.host == host]

    def object_store(self, service_key: str = "service-key") -> ObjectStore:
        return ObjectStore(
            self.client,
            base_url=f"http://{STORAGE_HOST}",
            public_base_url=PUBLIC_STORAGE_BASE,
            bucket="invoices",
            service_key=service_key,
        )

    def extractor(self, api_key: str = "gemini-key") -> InvoiceExtractor:
        return InvoiceExtractor(
            self.client,
            api_key=api_key,
            model="gemini-2.0-flash",
            api_url=f"http://{GEMINI_HOST}/v1beta",
            timeout_seconds=30,
        )

    def dispatcher(self, api_key: str = "sms-key") -> NotificationDispatcher:
        return NotificationDispatcher(
            self.client,
            username="invoices@example.com",
            api_key=api_key,
            destination="+15550001111",
            api_url=f"http://{SMS_HOST}/v3/sms/send",
            timeout_seconds=5,
        )

