"""Invoice ingestion schemas: upload, analyze, extraction results."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .common import Amount, InvoiceStatus


class Confidence(str, Enum):
    SUCCESS = "success"
    DEGRADED = "degraded"


class ExtractionResult(BaseModel):
    """Advisory field values proposed by the vision model. Never persisted."""

    supplier_name: Optional[str] = None
    total_amount: Optional[Amount] = None
    confidence: Confidence = Confidence.DEGRADED
    reason: Optional[str] = None

    @classmethod
    def degraded(cls, reason: str) -> "ExtractionResult":
        return cls(confidence=Confidence.DEGRADED, reason=reason)

    @property
    def succeeded(self) -> bool:
        return self.confidence == Confidence.SUCCESS


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class InvoiceUploadRequest(BaseModel):
    """
    Upload body. Field presence is checked by the ingestion pipeline, not
    here, so that failures name the offending field in a fixed order.
    """

    model_config = ConfigDict(populate_by_name=True)

    file_name: Optional[str] = Field(None, alias="fileName", max_length=255)
    file_data: Optional[str] = Field(None, alias="fileData")
    user_id: Optional[str] = Field(None, alias="userId")
    supplier_name: Optional[str] = Field(None, alias="supplierName")
    total_amount: Optional[Decimal] = Field(None, alias="totalAmount")
    extract: bool = Field(True, description="Propose missing fields with the vision model")


class InvoiceAnalyzeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file_data: str = Field(..., alias="fileData", min_length=1)
    file_name: Optional[str] = Field(None, alias="fileName", max_length=255)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class InvoiceResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    organization_id: uuid.UUID
    supplier_name: str
    total_amount: Amount
    file_url: str
    status: InvoiceStatus
    created_at: datetime

    model_config = {"from_attributes": True}


class InvoiceUploadResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    invoice: InvoiceResponse
    storage_url: str = Field(..., alias="storageUrl")
    extraction: Optional[ExtractionResult] = None


class InvoiceListResponse(BaseModel):
    invoices: list[InvoiceResponse]


class InvoiceDeleteResponse(BaseModel):
    success: bool = True
