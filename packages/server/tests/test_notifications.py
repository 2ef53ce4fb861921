"""
Tests for the notification dispatcher.
"""

from __future__ import annotations

import asyncio
import json
from decimal import Decimal

import httpx
import pytest

from app.services.notifications import InvoiceUploadedEvent, compose_message
from helpers import SMS_HOST

EVENT = InvoiceUploadedEvent(
    invoice_id="inv-1",
    organization_id="org-1",
    supplier_name="Acme Ltd",
    total_amount=Decimal("250.50"),
    file_url="https://cdn.storage.test/storage/v1/object/public/invoices/org-1/1_ab.pdf",
)


def test_compose_message():
    assert compose_message(EVENT) == (
        "New Invoice Uploaded!\n"
        "Supplier: Acme Ltd\n"
        "Amount: 250.50\n"
        "File: https://cdn.storage.test/storage/v1/object/public/invoices/org-1/1_ab.pdf"
    )


@pytest.mark.asyncio
class TestNotificationDispatcher:
    async def test_sends_sms_with_basic_auth(self, services):
        dispatcher = services.dispatcher()
        dispatcher.notify(EVENT)
        assert dispatcher.pending == 1
        await dispatcher.drain()
        assert dispatcher.pending == 0

        [req] = services.sent_to(SMS_HOST)
        assert req.url.path == "/v3/sms/send"
        assert req.headers["authorization"].startswith("Basic ")
        message = json.loads(req.content)["messages"][0]
        assert message["to"] == "+15550001111"
        assert message["source"] == "invoice-hub"
        assert message["body"] == compose_message(EVENT)

    async def test_missing_credentials_skip(self, services):
        dispatcher = services.dispatcher(api_key="")
        assert not dispatcher.configured
        dispatcher.notify(EVENT)
        assert dispatcher.pending == 0
        assert services.sent_to(SMS_HOST) == []

    async def test_gateway_error_is_swallowed(self, services):
        services.sms = lambda req: httpx.Response(401, json={"response_code": "INVALID_CREDENTIALS"})
        dispatcher = services.dispatcher()
        assert await dispatcher.deliver(EVENT) is False

    async def test_transport_error_is_swallowed(self, services):
        def down(req):
            raise httpx.ConnectTimeout("timeout", request=req)

        services.sms = down
        assert await services.dispatcher().deliver(EVENT) is False

    async def test_unexpected_error_drained_by_callback(self, services, monkeypatch):
        dispatcher = services.dispatcher()

        async def explode(event):
            raise RuntimeError("boom")

        monkeypatch.setattr(dispatcher, "deliver", explode)
        dispatcher.notify(EVENT)
        await dispatcher.drain()
        # Let the done-callback run.
        await asyncio.sleep(0)
        assert dispatcher.pending == 0

    async def test_notify_does_not_wait_for_delivery(self, services):
        release = asyncio.Event()

        async def slow(request):
            await release.wait()
            return httpx.Response(200, json={"response_code": "SUCCESS"})

        client = httpx.AsyncClient(transport=httpx.MockTransport(slow))
        dispatcher = services.dispatcher()
        dispatcher._client = client

        dispatcher.notify(EVENT)
        assert dispatcher.pending == 1
        release.set()
        await dispatcher.drain(timeout=5)
        await client.aclose()
