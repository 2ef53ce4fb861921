"""
Invoice record store: validation and persistence of invoice rows.

Callers must have written the invoice file to object storage before calling
``create_invoice``; a row never points at an object that was not written.
"""

from __future__ import annotations

import uuid
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from invoicehub_shared.schemas.common import ErrorKind, InvoiceStatus

from app.core.database import apply_identity_scope
from app.core.errors import ServiceError, persistence_failed
from app.models.invoice import Invoice

log = structlog.get_logger()

CENTS = Decimal("0.01")
# NUMERIC(10, 2)
MAX_TOTAL_AMOUNT = Decimal("99999999.99")


def _require_user_id(user_id: Any) -> uuid.UUID:
    if user_id is None or (isinstance(user_id, str) and not user_id.strip()):
        raise ServiceError.validation("userId", "User ID is required")
    if isinstance(user_id, uuid.UUID):
        return user_id
    try:
        return uuid.UUID(str(user_id).strip())
    except ValueError:
        raise ServiceError.validation("userId", "User ID must be a valid UUID")


def normalize_amount(total_amount: Any) -> Decimal:
    """Return the amount as a 2-place Decimal; reject missing, non-numeric and non-positive."""
    invalid = ServiceError.validation("totalAmount", "Valid total amount is required")
    if total_amount is None or isinstance(total_amount, bool):
        raise invalid
    try:
        amount = Decimal(str(total_amount).strip())
    except InvalidOperation:
        raise invalid
    if not amount.is_finite():
        raise invalid
    amount = amount.quantize(CENTS, rounding=ROUND_HALF_UP)
    if amount <= 0:
        raise ServiceError.validation("totalAmount", "Total amount must be greater than zero")
    if amount > MAX_TOTAL_AMOUNT:
        raise ServiceError.validation("totalAmount", "Total amount is too large")
    return amount


def validate_invoice_fields(
    user_id: Any,
    supplier_name: Optional[str],
    total_amount: Any,
    file_url: Optional[str],
) -> tuple[uuid.UUID, str, Decimal, str]:
    """Fail fast in a fixed order: userId, fileUrl, supplierName, totalAmount."""
    uid = _require_user_id(user_id)
    if not file_url or not file_url.strip():
        raise ServiceError.validation("fileUrl", "File URL is required")
    if supplier_name is None or not supplier_name.strip():
        raise ServiceError.validation("supplierName", "Supplier name is required")
    amount = normalize_amount(total_amount)
    return uid, supplier_name.strip(), amount, file_url.strip()


async def create_invoice(
    session: AsyncSession,
    *,
    user_id: Any,
    supplier_name: Optional[str],
    total_amount: Any,
    file_url: Optional[str],
    organization_id: uuid.UUID,
) -> Invoice:
    uid, supplier, amount, url = validate_invoice_fields(
        user_id, supplier_name, total_amount, file_url
    )
    await apply_identity_scope(session, uid)
    invoice = Invoice(
        user_id=uid,
        organization_id=organization_id,
        supplier_name=supplier,
        total_amount=amount,
        file_url=url,
        status=InvoiceStatus.PROCESSED.value,
    )
    try:
        session.add(invoice)
        await session.flush()
    except SQLAlchemyError as exc:
        log.error("invoice.insert_failed", user_id=str(uid), file_url=url, error=str(exc))
        raise persistence_failed("Database insert failed", exc) from exc

    log.info(
        "invoice.created",
        invoice_id=str(invoice.id),
        org_id=str(organization_id),
        supplier=supplier,
        amount=str(amount),
    )
    return invoice


async def list_invoices(
    session: AsyncSession, user_id: uuid.UUID, organization_id: uuid.UUID
) -> list[Invoice]:
    """The caller's invoices in an org, newest first."""
    await apply_identity_scope(session, user_id)
    result = await session.execute(
        select(Invoice)
        .where(Invoice.user_id == user_id, Invoice.organization_id == organization_id)
        .order_by(Invoice.created_at.desc())
    )
    return list(result.scalars().all())


async def delete_invoice(
    session: AsyncSession,
    invoice_id: uuid.UUID,
    user_id: uuid.UUID,
    organization_id: uuid.UUID,
) -> None:
    """Delete an invoice owned by ``user_id``; other users' rows are invisible."""
    await apply_identity_scope(session, user_id)
    result = await session.execute(
        select(Invoice).where(
            Invoice.id == invoice_id,
            Invoice.user_id == user_id,
            Invoice.organization_id == organization_id,
        )
    )
    invoice = result.scalar_one_or_none()
    if invoice is None:
        raise ServiceError(ErrorKind.NOT_FOUND, "Invoice not found")
    try:
        await session.delete(invoice)
        await session.flush()
    except SQLAlchemyError as exc:
        raise persistence_failed("Failed to delete invoice", exc) from exc
    log.info("invoice.deleted", invoice_id=str(invoice_id))
