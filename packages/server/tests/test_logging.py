"""Tests for structlog configuration."""

from __future__ import annotations

import pytest
import structlog
from structlog.testing import capture_logs

from app.core.logging import configure_logging


@pytest.fixture(autouse=True)
def restore_logging():
    yield
    configure_logging("info", "text")


def emitted(*levels: str) -> list[str]:
    log = structlog.get_logger()
    with capture_logs() as logs:
        for level in levels:
            getattr(log, level)(f"event.{level}")
    return [entry["event"] for entry in logs]


class TestConfigureLogging:
    def test_debug_text(self):
        configure_logging("debug", "text")
        assert emitted("debug", "info") == ["event.debug", "event.info"]

    def test_level_name_is_case_insensitive(self):
        configure_logging("WARNING", "json")
        assert emitted("info", "warning", "error") == ["event.warning", "event.error"]

    def test_unknown_level_falls_back_to_info(self):
        configure_logging("chatty", "json")
        assert emitted("debug", "info") == ["event.info"]
