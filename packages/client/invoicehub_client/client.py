"""
Async HTTP client for the Invoice Hub API.

The caller's session and organization travel explicitly: every call takes
the token from ``fetch_session`` (through the freshness guard), and invoice
calls take the organization id from an ``OrgContext``.
"""

from __future__ import annotations

import base64
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

import httpx
import structlog

from invoicehub_shared.schemas.common import ErrorResponse
from invoicehub_shared.schemas.invoices import (
    ExtractionResult,
    InvoiceListResponse,
    InvoiceResponse,
    InvoiceUploadResponse,
)
from invoicehub_shared.schemas.organizations import (
    OrgCreateResponse,
    OrgListResponse,
    OrgResponse,
)

from .config import ClientConfig
from .session import ClientSession, SessionSource, with_fresh_session

log = structlog.get_logger()


class ApiError(Exception):
    """A non-2xx reply from the API, carrying its error body."""

    def __init__(self, status_code: int, error: ErrorResponse):
        super().__init__(f"{status_code}: {error.error}")
        self.status_code = status_code
        self.error = error

    @property
    def field(self) -> Optional[str]:
        return self.error.field


@dataclass
class OrgContext:
    """The organizations the signed-in user belongs to and the one in use."""

    memberships: list[OrgResponse] = field(default_factory=list)
    current_org: Optional[OrgResponse] = None

    @property
    def needs_onboarding(self) -> bool:
        return not self.memberships

    @classmethod
    def from_listing(cls, listing: OrgListResponse) -> "OrgContext":
        current = listing.organizations[0] if listing.organizations else None
        return cls(memberships=list(listing.organizations), current_org=current)

    def select(self, org_id: uuid.UUID) -> OrgResponse:
        for org in self.memberships:
            if org.id == org_id:
                self.current_org = org
                return org
        raise KeyError(f"Not a member of organization {org_id}")

    def require_org(self) -> OrgResponse:
        if self.current_org is None:
            raise LookupError("No organization selected; create one first")
        return self.current_org


def encode_file(data: bytes, content_type: str) -> str:
    """Build the ``data:<type>;base64,<body>`` payload the upload endpoint takes."""
    return f"data:{content_type};base64,{base64.b64encode(data).decode('ascii')}"


class InvoiceHubClient:
    def __init__(
        self,
        base_url: str,
        fetch_session: SessionSource,
        *,
        verify_tls: bool = True,
        request_timeout: float = 60,
        retry_delay: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._fetch_session = fetch_session
        self._retry_delay = retry_delay
        self._client = httpx.AsyncClient(
            base_url=f"{self._base_url}/api/v1",
            timeout=httpx.Timeout(request_timeout),
            verify=verify_tls,
            transport=transport,
        )

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        fetch_session: SessionSource,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "InvoiceHubClient":
        return cls(
            config.api.url,
            fetch_session,
            verify_tls=config.api.verify_tls,
            request_timeout=config.api.request_timeout_seconds,
            retry_delay=config.session.retry_delay_seconds,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "InvoiceHubClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # --- transport ---

    async def _request(self, method: str, path: str, json: Any = None) -> Any:
        async def send(session: ClientSession) -> Any:
            resp = await self._client.request(
                method,
                path,
                json=json,
                headers={"Authorization": f"Bearer {session.access_token}"},
            )
            if resp.is_error:
                try:
                    error = ErrorResponse.model_validate(resp.json())
                except ValueError:
                    error = ErrorResponse(error=resp.text or resp.reason_phrase)
                log.warning(
                    "client.request_failed",
                    method=method,
                    path=path,
                    status=resp.status_code,
                    error=error.error,
                )
                raise ApiError(resp.status_code, error)
            return resp.json()

        return await with_fresh_session(
            self._fetch_session, send, retry_delay=self._retry_delay
        )

    # --- organizations ---

    async def list_organizations(self) -> OrgListResponse:
        return OrgListResponse.model_validate(await self._request("GET", "/orgs"))

    async def load_org_context(self) -> OrgContext:
        return OrgContext.from_listing(await self.list_organizations())

    async def create_organization(
        self, name: str, tax_id: Optional[str] = None, context: Optional[OrgContext] = None
    ) -> OrgResponse:
        """Create an org (the caller becomes owner) and make it current in ``context``."""
        body = await self._request("POST", "/orgs", json={"name": name, "tax_id": tax_id})
        org = OrgCreateResponse.model_validate(body).organization
        if context is not None:
            context.memberships.append(org)
            context.current_org = org
        log.info("client.org_created", org_id=str(org.id))
        return org

    # --- invoices ---

    async def list_invoices(self, context: OrgContext) -> list[InvoiceResponse]:
        org = context.require_org()
        body = await self._request("GET", f"/orgs/{org.id}/invoices")
        return InvoiceListResponse.model_validate(body).invoices

    async def analyze_invoice(
        self,
        context: OrgContext,
        data: bytes,
        content_type: str,
        file_name: Optional[str] = None,
    ) -> ExtractionResult:
        org = context.require_org()
        body = await self._request(
            "POST",
            f"/orgs/{org.id}/invoices/analyze",
            json={"fileData": encode_file(data, content_type), "fileName": file_name},
        )
        return ExtractionResult.model_validate(body)

    async def upload_invoice(
        self,
        context: OrgContext,
        data: bytes,
        content_type: str,
        file_name: str,
        *,
        supplier_name: Optional[str] = None,
        total_amount: Optional[Decimal] = None,
        extract: bool = True,
    ) -> InvoiceUploadResponse:
        org = context.require_org()
        payload: dict[str, Any] = {
            "fileName": file_name,
            "fileData": encode_file(data, content_type),
            "extract": extract,
        }
        if supplier_name is not None:
            payload["supplierName"] = supplier_name
        if total_amount is not None:
            payload["totalAmount"] = float(total_amount)
        body = await self._request("POST", f"/orgs/{org.id}/invoices/upload", json=payload)
        return InvoiceUploadResponse.model_validate(body)

    async def upload_invoice_file(
        self,
        context: OrgContext,
        path: str | Path,
        content_type: str,
        **fields: Any,
    ) -> InvoiceUploadResponse:
        path = Path(path)
        return await self.upload_invoice(
            context, path.read_bytes(), content_type, path.name, **fields
        )

    async def delete_invoice(self, context: OrgContext, invoice_id: uuid.UUID) -> None:
        org = context.require_org()
        await self._request("DELETE", f"/orgs/{org.id}/invoices/{invoice_id}")
