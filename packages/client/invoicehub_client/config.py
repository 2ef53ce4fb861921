"""
Client configuration loading and validation.

Loads client configuration from a YAML file. Access tokens are never stored
in the file; they come from the session source at call time.
"""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, Field


class ApiConfig(BaseModel):
    url: str = "http://localhost:8000"
    verify_tls: bool = True
    request_timeout_seconds: int = 60


class SessionConfig(BaseModel):
    # Wait before the single retry when no session token is available yet.
    retry_delay_seconds: float = 1.0


class ClientConfig(BaseModel):
    api: ApiConfig = Field(default_factory=ApiConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)


def load_config(path: str | Path) -> ClientConfig:
    """Load and validate client configuration from a YAML file."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    return ClientConfig.model_validate(raw)
