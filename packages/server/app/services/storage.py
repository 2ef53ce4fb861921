"""
Object placement: writes invoice files to the storage bucket.

Keys are ``{owner_id}/{safe_file_name}``. Uploads never overwrite, and the
public address is derived from configuration without another round trip.
The storage service key is the only elevated credential the service holds;
callers reach this module only after their own token has been verified.
"""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import quote

import httpx
import structlog

from invoicehub_shared.schemas.common import ErrorKind

from app.core.config import Settings
from app.core.errors import ServiceError

log = structlog.get_logger()


@dataclass(frozen=True)
class StoredObject:
    path: str
    content_type: str
    byte_length: int
    public_url: str


def _storage_failed(details: str, code: str | None = None) -> ServiceError:
    return ServiceError(
        ErrorKind.STORAGE_WRITE_FAILED,
        "Storage upload failed",
        details=details,
        code=code,
    )


def build_storage_key(owner_id: str, safe_file_name: str) -> str:
    owner_id = str(owner_id).strip()
    if not owner_id or "/" in owner_id or ".." in owner_id:
        raise _storage_failed("Invalid storage owner", code="invalid_key")
    if not safe_file_name or "/" in safe_file_name or ".." in safe_file_name:
        raise _storage_failed("Invalid storage file name", code="invalid_key")
    return f"{owner_id}/{safe_file_name}"


def _provider_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:500]
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body)[:500]
    return str(body)[:500]


def _is_conflict(resp: httpx.Response) -> bool:
    if resp.status_code == 409:
        return True
    # Some storage gateways report duplicates as 400 with statusCode "409".
    try:
        body = resp.json()
    except ValueError:
        return False
    return isinstance(body, dict) and str(body.get("statusCode")) == "409"


class ObjectStore:
    """Bucket writer over the storage REST API."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        base_url: str,
        public_base_url: str,
        bucket: str,
        service_key: str,
    ):
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._public_base_url = public_base_url.rstrip("/")
        self._bucket = bucket
        self._service_key = service_key

    @classmethod
    def from_settings(cls, client: httpx.AsyncClient, settings: Settings) -> "ObjectStore":
        return cls(
            client,
            base_url=settings.storage_url,
            public_base_url=settings.public_storage_base,
            bucket=settings.storage_bucket,
            service_key=settings.storage_service_key,
        )

    def public_url(self, key: str) -> str:
        return f"{self._public_base_url}/storage/v1/object/public/{self._bucket}/{quote(key)}"

    async def store(
        self,
        owner_id: str,
        data: bytes,
        content_type: str,
        safe_file_name: str,
    ) -> StoredObject:
        key = build_storage_key(owner_id, safe_file_name)
        if not self._service_key:
            raise _storage_failed("Storage credentials not configured", code="not_configured")

        url = f"{self._base_url}/storage/v1/object/{self._bucket}/{quote(key)}"
        try:
            resp = await self._client.post(
                url,
                content=data,
                headers={
                    "Authorization": f"Bearer {self._service_key}",
                    "apikey": self._service_key,
                    "Content-Type": content_type,
                    "x-upsert": "false",
                },
            )
        except httpx.HTTPError as exc:
            log.error("storage.write_failed", key=key, error=str(exc))
            raise _storage_failed(f"Storage unreachable: {exc.__class__.__name__}") from exc

        if _is_conflict(resp):
            log.error("storage.write_conflict", key=key)
            raise _storage_failed(f"Object already exists: {key}", code="conflict")

        if resp.is_error:
            message = _provider_message(resp)
            log.error("storage.write_failed", key=key, status=resp.status_code, error=message)
            raise _storage_failed(message, code=str(resp.status_code))

        stored = StoredObject(
            path=key,
            content_type=content_type,
            byte_length=len(data),
            public_url=self.public_url(key),
        )
        log.info("storage.written", key=key, bytes=stored.byte_length, content_type=content_type)
        return stored
