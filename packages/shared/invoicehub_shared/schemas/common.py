from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional

from pydantic import BaseModel, PlainSerializer


class ErrorKind(str, Enum):
    UNAUTHENTICATED = "Unauthenticated"
    FORBIDDEN = "Forbidden"
    NOT_FOUND = "NotFound"
    VALIDATION_FAILED = "ValidationFailed"
    INVALID_PAYLOAD_FORMAT = "InvalidPayloadFormat"
    STORAGE_WRITE_FAILED = "StorageWriteFailed"
    PERSISTENCE_FAILED = "PersistenceFailed"
    EXTRACTION_UNAVAILABLE = "ExtractionUnavailable"
    NOTIFICATION_FAILED = "NotificationFailed"
    NO_ACTIVE_SESSION = "NoActiveSession"


# HTTP status per terminal error kind. Extraction and notification failures
# are absorbed server-side and NoActiveSession never leaves the client.
ERROR_STATUS: dict[ErrorKind, int] = {
    ErrorKind.UNAUTHENTICATED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.VALIDATION_FAILED: 400,
    ErrorKind.INVALID_PAYLOAD_FORMAT: 400,
    ErrorKind.STORAGE_WRITE_FAILED: 500,
    ErrorKind.PERSISTENCE_FAILED: 500,
}


class Role(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


class InvoiceStatus(str, Enum):
    PROCESSED = "processed"


# Fixed-point amounts travel as JSON numbers.
Amount = Annotated[
    Decimal,
    PlainSerializer(lambda v: float(v), return_type=float, when_used="json"),
]


class ErrorResponse(BaseModel):
    error: str
    details: Optional[str] = None
    code: Optional[str] = None
    field: Optional[str] = None
