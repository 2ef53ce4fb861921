"""
Invoice ingestion pipeline.

    decode -> store object -> (extract) -> insert row -> notify (detached)

The object write always precedes the insert, and any failure before the
insert aborts the request, so no invoice row ever references an object that
was not written. Extraction only proposes values for fields the caller left
out; caller-supplied values always win.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from invoicehub_shared.schemas.invoices import (
    ExtractionResult,
    InvoiceAnalyzeRequest,
    InvoiceUploadRequest,
)

from app.core.auth import OrgScope
from app.core.errors import ServiceError
from app.models.invoice import Invoice
from app.services import payload
from app.services.extraction import InvoiceExtractor
from app.services.invoices import create_invoice, normalize_amount
from app.services.notifications import InvoiceUploadedEvent, NotificationDispatcher
from app.services.storage import ObjectStore

log = structlog.get_logger()


@dataclass(frozen=True)
class IngestionResult:
    invoice: Invoice
    storage_url: str
    extraction: Optional[ExtractionResult] = None


def _present(value: Optional[str]) -> bool:
    return value is not None and bool(value.strip())


def check_caller(scope: OrgScope, claimed_user_id: Optional[str]) -> None:
    """A ``userId`` in the body, when sent, must be the authenticated caller."""
    if not _present(claimed_user_id):
        return
    try:
        claimed = uuid.UUID(claimed_user_id.strip())
    except ValueError:
        raise ServiceError.validation("userId", "User ID must be a valid UUID")
    if claimed != scope.user_id:
        raise ServiceError.validation("userId", "User ID does not match the authenticated user")


def precheck_fields(request: InvoiceUploadRequest) -> None:
    """
    Reject values that can never be stored before anything is uploaded.

    With extraction on, missing fields may still be proposed by the model,
    so only values the caller actually sent are checked here.
    """
    if not request.extract and not _present(request.supplier_name):
        raise ServiceError.validation("supplierName", "Supplier name is required")
    if request.total_amount is not None or not request.extract:
        normalize_amount(request.total_amount)


class InvoiceIngestionPipeline:
    def __init__(
        self,
        store: ObjectStore,
        extractor: InvoiceExtractor,
        dispatcher: NotificationDispatcher,
    ):
        self.store = store
        self.extractor = extractor
        self.dispatcher = dispatcher

    async def analyze(self, request: InvoiceAnalyzeRequest) -> ExtractionResult:
        decoded = payload.decode(request.file_data, request.file_name)
        log.info(
            "invoice.analyze",
            content_type=decoded.content_type,
            bytes=decoded.byte_length,
        )
        return await self.extractor.extract(decoded.data, decoded.content_type)

    async def ingest(
        self,
        scope: OrgScope,
        request: InvoiceUploadRequest,
        session: AsyncSession,
    ) -> IngestionResult:
        check_caller(scope, request.user_id)
        if not request.file_data:
            raise ServiceError.validation("fileData", "File data is required")

        decoded = payload.decode(request.file_data, request.file_name)
        precheck_fields(request)

        stored = await self.store.store(
            str(scope.org_id),
            decoded.data,
            decoded.content_type,
            decoded.safe_file_name,
        )

        supplier_name = request.supplier_name if _present(request.supplier_name) else None
        total_amount: Optional[Decimal] = request.total_amount
        extraction: Optional[ExtractionResult] = None
        if request.extract and (supplier_name is None or total_amount is None):
            extraction = await self.extractor.extract(decoded.data, decoded.content_type)
            if supplier_name is None:
                supplier_name = extraction.supplier_name
            if total_amount is None:
                total_amount = extraction.total_amount

        invoice = await create_invoice(
            session,
            user_id=scope.user_id,
            supplier_name=supplier_name,
            total_amount=total_amount,
            file_url=stored.public_url,
            organization_id=scope.org_id,
        )
        await session.commit()

        log.info(
            "invoice.uploaded",
            invoice_id=str(invoice.id),
            path=stored.path,
            bytes=stored.byte_length,
            extracted=extraction.confidence.value if extraction else None,
        )

        self.dispatcher.notify(
            InvoiceUploadedEvent(
                invoice_id=str(invoice.id),
                organization_id=str(scope.org_id),
                supplier_name=invoice.supplier_name,
                total_amount=invoice.total_amount,
                file_url=invoice.file_url,
            )
        )
        return IngestionResult(
            invoice=invoice,
            storage_url=stored.public_url,
            extraction=extraction,
        )
