"""
Notification dispatcher: SMS alerts for newly ingested invoices.

Delivery runs as a detached task. Its outcome is drained by a done-callback
that logs and discards it; the request that scheduled it never awaits it.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from decimal import Decimal

import httpx
import structlog

from invoicehub_shared.schemas.common import ErrorKind

from app.core.config import Settings

log = structlog.get_logger()


@dataclass(frozen=True)
class InvoiceUploadedEvent:
    invoice_id: str
    organization_id: str
    supplier_name: str
    total_amount: Decimal
    file_url: str


def compose_message(event: InvoiceUploadedEvent) -> str:
    return (
        "New Invoice Uploaded!\n"
        f"Supplier: {event.supplier_name}\n"
        f"Amount: {event.total_amount}\n"
        f"File: {event.file_url}"
    )


class NotificationDispatcher:
    """Fire-and-forget SMS sender over the ClickSend REST API."""

    def __init__(
        self,
        client: httpx.AsyncClient | None,
        *,
        username: str,
        api_key: str,
        destination: str,
        api_url: str,
        source: str = "invoice-hub",
        timeout_seconds: float = 5.0,
    ):
        self._client = client
        self._username = username
        self._api_key = api_key
        self._destination = destination
        self._api_url = api_url
        self._source = source
        self._timeout = httpx.Timeout(timeout_seconds)
        self._pending: set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, client: httpx.AsyncClient | None, settings: Settings) -> "NotificationDispatcher":
        return cls(
            client,
            username=settings.clicksend_username,
            api_key=settings.clicksend_api_key,
            destination=settings.notification_phone_number,
            api_url=settings.clicksend_api_url,
            source=settings.notification_source,
            timeout_seconds=settings.notification_timeout_seconds,
        )

    @property
    def configured(self) -> bool:
        return bool(self._client and self._username and self._api_key and self._destination)

    @property
    def pending(self) -> int:
        return len(self._pending)

    def notify(self, event: InvoiceUploadedEvent) -> None:
        """Schedule delivery and return immediately."""
        if not self.configured:
            log.info(
                "notification.skipped",
                reason="missing_credentials",
                username_present=bool(self._username),
                api_key_present=bool(self._api_key),
                destination_present=bool(self._destination),
            )
            return
        task = asyncio.create_task(self.deliver(event), name=f"notify-{event.invoice_id}")
        self._pending.add(task)
        task.add_done_callback(self._drain)

    def _drain(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            log.warning("notification.cancelled", task=task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            log.error(
                "notification.failed",
                kind=ErrorKind.NOTIFICATION_FAILED.value,
                task=task.get_name(),
                error=repr(exc),
            )

    async def deliver(self, event: InvoiceUploadedEvent) -> bool:
        """Send one SMS. Returns whether the gateway acknowledged it."""
        payload = {
            "messages": [
                {
                    "source": self._source,
                    "body": compose_message(event),
                    "to": self._destination,
                }
            ]
        }
        try:
            resp = await self._client.post(
                self._api_url,
                json=payload,
                auth=httpx.BasicAuth(self._username, self._api_key),
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            log.error(
                "notification.failed",
                kind=ErrorKind.NOTIFICATION_FAILED.value,
                invoice_id=event.invoice_id,
                error=exc.__class__.__name__,
            )
            return False

        if resp.is_error:
            log.error(
                "notification.failed",
                kind=ErrorKind.NOTIFICATION_FAILED.value,
                invoice_id=event.invoice_id,
                status=resp.status_code,
                body=resp.text[:500],
            )
            return False

        try:
            ack = resp.json()
        except ValueError:
            ack = {}
        log.info(
            "notification.sent",
            invoice_id=event.invoice_id,
            response_code=ack.get("response_code") if isinstance(ack, dict) else None,
        )
        return True

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for in-flight deliveries (shutdown and tests)."""
        if not self._pending:
            return
        await asyncio.wait(set(self._pending), timeout=timeout)
