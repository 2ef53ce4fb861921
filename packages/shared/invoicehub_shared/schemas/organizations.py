"""
Organization-related Pydantic schemas shared between server and client.

Covers: org create request, org list/detail responses, onboarding state.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, computed_field, field_validator

from .common import Role


# ---------------------------------------------------------------------------
# Onboarding state
# ---------------------------------------------------------------------------

class OnboardingState(str, Enum):
    NO_ORGANIZATION = "no_organization"
    HAS_ORGANIZATION = "has_organization"


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class OrgCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200, description="Organization display name")
    tax_id: Optional[str] = Field(None, max_length=50, description="Company tax / VAT number")

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Organization name is required")
        return v

    @field_validator("tax_id")
    @classmethod
    def _blank_tax_id_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class OrgResponse(BaseModel):
    id: uuid.UUID
    name: str
    tax_id: Optional[str] = None
    created_at: datetime
    role: Role  # the requesting user's role in this org

    model_config = {"from_attributes": True}


class OrgCreateResponse(BaseModel):
    success: bool = True
    organization: OrgResponse


class OrgListResponse(BaseModel):
    organizations: list[OrgResponse]
    onboarding: OnboardingState

    @computed_field
    @property
    def needs_onboarding(self) -> bool:
        return self.onboarding == OnboardingState.NO_ORGANIZATION
