"""
Payload codec: turns a data-URI style upload into bytes plus a storage-safe
file name.

    data:<content-type>;base64,<body>
"""

from __future__ import annotations

import base64
import binascii
import re
import secrets
import time
from dataclasses import dataclass
from typing import Optional

from invoicehub_shared.schemas.common import ErrorKind

from app.core.errors import ServiceError

DEFAULT_CONTENT_TYPE = "application/octet-stream"
DEFAULT_EXTENSION = "bin"
MAX_EXTENSION_LENGTH = 10

CONTENT_TYPE_EXTENSIONS = {
    "application/pdf": "pdf",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
}

_CONTENT_TYPE_RE = re.compile(r"^data:([^;,]+)")
_EXTENSION_UNSAFE_RE = re.compile(r"[^a-z0-9]")


@dataclass(frozen=True)
class DecodedPayload:
    data: bytes
    content_type: str
    extension: str
    safe_file_name: str
    base64_body: str

    @property
    def byte_length(self) -> int:
        return len(self.data)


def _invalid(details: str) -> ServiceError:
    return ServiceError(
        ErrorKind.INVALID_PAYLOAD_FORMAT,
        "Invalid file data format",
        field="fileData",
        details=details,
    )


def split_payload(encoded: str) -> tuple[str, str]:
    """Split into (metadata prefix, base64 body). Raises on a missing delimiter."""
    if not encoded or "," not in encoded:
        raise _invalid("Expected 'data:<content-type>;base64,<body>'")
    prefix, body = encoded.split(",", 1)
    return prefix, body


def parse_content_type(prefix: str) -> str:
    match = _CONTENT_TYPE_RE.match(prefix.strip())
    if not match:
        return DEFAULT_CONTENT_TYPE
    return match.group(1).strip().lower() or DEFAULT_CONTENT_TYPE


def decode_body(body: str) -> bytes:
    """Strict standard-alphabet base64 decode; never truncates."""
    cleaned = "".join(body.split())
    if not cleaned:
        raise _invalid("File body is empty")
    try:
        data = base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise _invalid(f"Malformed base64 body: {exc}") from exc
    # Non-zero padding bits decode fine but would not re-encode to the same body.
    if base64.b64encode(data).decode("ascii") != cleaned:
        raise _invalid("Non-canonical base64 body")
    return data


def derive_extension(file_name: Optional[str], content_type: str) -> str:
    """Prefer the caller's extension, then the content type, then ``bin``."""
    if file_name and "." in file_name:
        candidate = file_name.rsplit(".", 1)[-1].lower()
        candidate = _EXTENSION_UNSAFE_RE.sub("", candidate)[:MAX_EXTENSION_LENGTH]
        if candidate:
            return candidate
    return CONTENT_TYPE_EXTENSIONS.get(content_type, DEFAULT_EXTENSION)


def generate_safe_file_name(extension: str) -> str:
    """ASCII-only name; nothing from the original file name except its extension."""
    timestamp = int(time.time() * 1000)
    return f"{timestamp}_{secrets.token_hex(8)}.{extension}"


def decode(encoded: str, file_name: Optional[str] = None) -> DecodedPayload:
    prefix, body = split_payload(encoded)
    content_type = parse_content_type(prefix)
    data = decode_body(body)
    extension = derive_extension(file_name, content_type)
    return DecodedPayload(
        data=data,
        content_type=content_type,
        extension=extension,
        safe_file_name=generate_safe_file_name(extension),
        base64_body="".join(body.split()),
    )
