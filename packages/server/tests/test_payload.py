"""
Tests for the payload codec.

Tests cover:
- Delimiter and base64 validation
- Content-type parsing and extension derivation
- Storage-safe file names
"""

from __future__ import annotations

import base64
import re

import pytest

from invoicehub_shared.schemas.common import ErrorKind

from app.core.errors import ServiceError
from app.services import payload


class TestDecode:
    def test_pdf_payload(self):
        decoded = payload.decode("data:application/pdf;base64,JVBERi0xLjQK", "invoice.pdf")
        assert decoded.data == b"%PDF-1.4\n"
        assert decoded.content_type == "application/pdf"
        assert decoded.extension == "pdf"
        assert decoded.safe_file_name.endswith(".pdf")
        assert decoded.byte_length == 9

    def test_body_round_trips(self):
        body = base64.b64encode(bytes(range(256))).decode()
        decoded = payload.decode(f"data:image/png;base64,{body}")
        assert base64.b64encode(decoded.data).decode() == body
        assert decoded.base64_body == body

    def test_missing_delimiter_rejected(self):
        with pytest.raises(ServiceError) as exc_info:
            payload.decode("data:application/pdf;base64JVBERi0x")
        assert exc_info.value.kind == ErrorKind.INVALID_PAYLOAD_FORMAT
        assert exc_info.value.field == "fileData"
        assert exc_info.value.status_code == 400

    def test_malformed_base64_rejected_not_truncated(self):
        with pytest.raises(ServiceError) as exc_info:
            payload.decode("data:application/pdf;base64,JVBE!!Ri0x")
        assert exc_info.value.kind == ErrorKind.INVALID_PAYLOAD_FORMAT

    def test_bad_padding_rejected(self):
        with pytest.raises(ServiceError):
            payload.decode("data:application/pdf;base64,JVBERi0")

    @pytest.mark.parametrize("body", ["QR==", "QUJ=", "JVBERi0xLjR="])
    def test_non_canonical_padding_bits_rejected(self, body):
        with pytest.raises(ServiceError) as exc_info:
            payload.decode(f"data:text/plain;base64,{body}")
        assert exc_info.value.kind == ErrorKind.INVALID_PAYLOAD_FORMAT

    def test_empty_body_rejected(self):
        with pytest.raises(ServiceError):
            payload.decode("data:application/pdf;base64,")

    def test_whitespace_in_body_ignored(self):
        decoded = payload.decode("data:application/pdf;base64,JVBE\nRi0x\nLjQK")
        assert decoded.data == b"%PDF-1.4\n"


class TestContentType:
    def test_default_when_prefix_missing(self):
        assert payload.parse_content_type("base64") == "application/octet-stream"

    def test_lowercased(self):
        assert payload.parse_content_type("data:Image/PNG;base64") == "image/png"


class TestExtension:
    @pytest.mark.parametrize(
        "file_name,content_type,expected",
        [
            ("scan.PDF", "application/octet-stream", "pdf"),
            ("archive.tar.gz", "application/pdf", "gz"),
            (None, "image/jpeg", "jpg"),
            (None, "image/jpg", "jpg"),
            ("noext", "image/webp", "webp"),
            (None, "text/plain", "bin"),
            ("weird.$$$", "image/gif", "gif"),
            ("long.abcdefghijklmnop", "image/png", "abcdefghij"),
        ],
    )
    def test_derive_extension(self, file_name, content_type, expected):
        assert payload.derive_extension(file_name, content_type) == expected


class TestSafeFileName:
    def test_shape(self):
        name = payload.generate_safe_file_name("pdf")
        assert re.fullmatch(r"\d{13}_[0-9a-f]{16}\.pdf", name)

    def test_never_reuses_original_name(self):
        decoded = payload.decode("data:application/pdf;base64,JVBERi0x", "חשבונית מס.pdf")
        assert decoded.safe_file_name.isascii()
        assert "חשבונית" not in decoded.safe_file_name

    def test_unique(self):
        names = {payload.generate_safe_file_name("png") for _ in range(50)}
        assert len(names) == 50
