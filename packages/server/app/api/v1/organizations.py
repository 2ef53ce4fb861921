"""
Organization API endpoints.

GET    /api/v1/orgs    List orgs for the authenticated user (+ onboarding state)
POST   /api/v1/orgs    Create a new org; the creator becomes its owner
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from invoicehub_shared.schemas.common import Role
from invoicehub_shared.schemas.organizations import (
    OrgCreateRequest,
    OrgCreateResponse,
    OrgListResponse,
    OrgResponse,
)

from app.core.auth import AuthContext, get_auth_context
from app.core.database import get_session
from app.services import organizations as org_service

router = APIRouter()


@router.get("/orgs", response_model=OrgListResponse, tags=["Organizations"])
async def list_orgs(
    auth: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_session),
):
    """List orgs the authenticated user belongs to."""
    items = await org_service.list_user_orgs(auth.user_id, session)
    return OrgListResponse(
        organizations=[OrgResponse.model_validate(item) for item in items],
        onboarding=org_service.onboarding_state(items),
    )


@router.post("/orgs", response_model=OrgCreateResponse, status_code=201, tags=["Organizations"])
async def create_org(
    body: OrgCreateRequest,
    auth: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_session),
):
    """Create a new organization. The creator becomes its owner."""
    org = await org_service.create_org(body, auth.user_id, session)
    await session.commit()
    return OrgCreateResponse(
        organization=OrgResponse(
            id=org.id,
            name=org.name,
            tax_id=org.tax_id,
            created_at=org.created_at,
            role=Role.OWNER,
        )
    )
