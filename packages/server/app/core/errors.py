"""
Service error taxonomy and its HTTP mapping.

Services raise ``ServiceError``; one exception handler renders it as
``{error, details?, code?, field?}`` with the status of its kind.
"""

from __future__ import annotations

from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from invoicehub_shared.schemas.common import ERROR_STATUS, ErrorKind, ErrorResponse

log = structlog.get_logger()

# Request-body attribute names as the caller sent them.
_FIELD_ALIASES = {
    "file_name": "fileName",
    "file_data": "fileData",
    "user_id": "userId",
    "supplier_name": "supplierName",
    "total_amount": "totalAmount",
}


class ServiceError(Exception):
    """A terminal pipeline failure of a known kind."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        field: Optional[str] = None,
        details: Optional[str] = None,
        code: Optional[str] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.field = field
        self.details = details
        self.code = code

    @property
    def status_code(self) -> int:
        return ERROR_STATUS.get(self.kind, 500)

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(
            error=self.message,
            details=self.details,
            code=self.code or self.kind.value,
            field=self.field,
        )

    @classmethod
    def unauthenticated(cls, details: Optional[str] = None) -> "ServiceError":
        return cls(ErrorKind.UNAUTHENTICATED, "Unauthorized", details=details)

    @classmethod
    def validation(cls, field: str, message: str) -> "ServiceError":
        return cls(ErrorKind.VALIDATION_FAILED, message, field=field)


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        log.error(
            "request.failed",
            kind=exc.kind.value,
            error=exc.message,
            details=exc.details,
            code=exc.code,
            path=request.url.path,
        )
    else:
        log.info(
            "request.rejected",
            kind=exc.kind.value,
            error=exc.message,
            field=exc.field,
            path=request.url.path,
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response().model_dump(exclude_none=True),
    )


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report malformed request bodies as ValidationFailed naming the first field."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    loc = [str(part) for part in first.get("loc", ()) if part != "body"]
    field = _FIELD_ALIASES.get(loc[-1], loc[-1]) if loc else "body"
    err = ServiceError.validation(field, f"Invalid value for {field}")
    err.details = first.get("msg")
    return await service_error_handler(request, err)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)


def persistence_failed(message: str, exc: SQLAlchemyError) -> ServiceError:
    """Wrap a database error, keeping the store's code and message for operators."""
    orig = getattr(exc, "orig", None)
    code = (
        getattr(orig, "sqlstate", None)
        or getattr(orig, "pgcode", None)
        or getattr(exc, "code", None)
    )
    details = str(orig if orig is not None else exc).splitlines()[0][:500]
    return ServiceError(
        ErrorKind.PERSISTENCE_FAILED,
        message,
        details=details,
        code=str(code) if code else None,
    )
