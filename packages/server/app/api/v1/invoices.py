"""
Invoice endpoints (org-scoped).

GET    /api/v1/orgs/{org_id}/invoices               Caller's invoices, newest first
POST   /api/v1/orgs/{org_id}/invoices/upload        Ingest an invoice file
POST   /api/v1/orgs/{org_id}/invoices/analyze       Extraction only, nothing stored
DELETE /api/v1/orgs/{org_id}/invoices/{invoice_id}  Delete one of the caller's invoices
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from invoicehub_shared.schemas.invoices import (
    ExtractionResult,
    InvoiceAnalyzeRequest,
    InvoiceDeleteResponse,
    InvoiceListResponse,
    InvoiceResponse,
    InvoiceUploadRequest,
    InvoiceUploadResponse,
)

from app.core.auth import OrgScope, require_member
from app.core.config import get_settings
from app.core.database import get_session
from app.core.http import get_http_client
from app.services import invoices as invoice_service
from app.services.extraction import InvoiceExtractor
from app.services.ingestion import InvoiceIngestionPipeline
from app.services.notifications import NotificationDispatcher
from app.services.storage import ObjectStore

router = APIRouter()

_dispatcher: NotificationDispatcher | None = None


# ---------------------------------------------------------------------------
# Collaborators (overridden in tests)
# ---------------------------------------------------------------------------

async def get_object_store() -> ObjectStore:
    return ObjectStore.from_settings(await get_http_client(), get_settings())


async def get_extractor() -> InvoiceExtractor:
    return InvoiceExtractor.from_settings(await get_http_client(), get_settings())


async def get_dispatcher() -> NotificationDispatcher:
    """One dispatcher per process so shutdown can drain its pending sends."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = NotificationDispatcher.from_settings(await get_http_client(), get_settings())
    return _dispatcher


async def drain_dispatcher(timeout: float | None = None) -> None:
    global _dispatcher
    if _dispatcher is not None:
        await _dispatcher.drain(timeout=timeout)
        _dispatcher = None


async def get_pipeline(
    store: ObjectStore = Depends(get_object_store),
    extractor: InvoiceExtractor = Depends(get_extractor),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> InvoiceIngestionPipeline:
    return InvoiceIngestionPipeline(store, extractor, dispatcher)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("", response_model=InvoiceListResponse)
async def list_invoices_endpoint(
    scope: OrgScope = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    invoices = await invoice_service.list_invoices(session, scope.user_id, scope.org_id)
    return InvoiceListResponse(
        invoices=[InvoiceResponse.model_validate(inv) for inv in invoices]
    )


@router.post("/upload", response_model=InvoiceUploadResponse, response_model_by_alias=True)
async def upload_invoice_endpoint(
    body: InvoiceUploadRequest,
    scope: OrgScope = Depends(require_member),
    session: AsyncSession = Depends(get_session),
    pipeline: InvoiceIngestionPipeline = Depends(get_pipeline),
):
    """Store the file, fill missing fields by extraction, record the invoice."""
    result = await pipeline.ingest(scope, body, session)
    return InvoiceUploadResponse(
        invoice=InvoiceResponse.model_validate(result.invoice),
        storage_url=result.storage_url,
        extraction=result.extraction,
    )


@router.post("/analyze", response_model=ExtractionResult)
async def analyze_invoice_endpoint(
    body: InvoiceAnalyzeRequest,
    scope: OrgScope = Depends(require_member),
    pipeline: InvoiceIngestionPipeline = Depends(get_pipeline),
):
    """Propose supplier name and total for a file without storing anything."""
    return await pipeline.analyze(body)


@router.delete("/{invoice_id}", response_model=InvoiceDeleteResponse)
async def delete_invoice_endpoint(
    invoice_id: uuid.UUID,
    scope: OrgScope = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    await invoice_service.delete_invoice(session, invoice_id, scope.user_id, scope.org_id)
    await session.commit()
    return InvoiceDeleteResponse()
