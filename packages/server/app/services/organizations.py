"""
Organization service: onboarding and membership lookups.

All queries run in the caller-scoped session, so the database's row-level
policies apply on top of the explicit ``user_id`` filters below.
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from invoicehub_shared.schemas.common import Role
from invoicehub_shared.schemas.organizations import OnboardingState, OrgCreateRequest

from app.core.errors import persistence_failed
from app.models.membership import OrganizationMember
from app.models.organization import Organization

log = structlog.get_logger()


async def list_user_orgs(
    user_id: uuid.UUID, session: AsyncSession
) -> list[dict]:
    """List all orgs a user belongs to, with their role, oldest membership first."""
    result = await session.execute(
        select(Organization, OrganizationMember.role)
        .join(OrganizationMember, OrganizationMember.organization_id == Organization.id)
        .where(OrganizationMember.user_id == user_id)
        .order_by(OrganizationMember.created_at)
    )
    rows = result.all()
    return [
        {
            "id": org.id,
            "name": org.name,
            "tax_id": org.tax_id,
            "created_at": org.created_at,
            "role": role,
        }
        for org, role in rows
    ]


def onboarding_state(orgs: list[dict]) -> OnboardingState:
    if not orgs:
        return OnboardingState.NO_ORGANIZATION
    return OnboardingState.HAS_ORGANIZATION


async def create_org(
    req: OrgCreateRequest,
    creator_id: uuid.UUID,
    session: AsyncSession,
) -> Organization:
    """Create an org and make the creator its owner, in one transaction."""
    org = Organization(
        name=req.name,
        tax_id=req.tax_id,
        created_by=creator_id,
    )
    try:
        session.add(org)
        await session.flush()

        membership = OrganizationMember(
            organization_id=org.id,
            user_id=creator_id,
            role=Role.OWNER.value,
        )
        session.add(membership)
        await session.flush()
    except SQLAlchemyError as exc:
        log.error("org.create_failed", creator=str(creator_id), error=str(exc))
        raise persistence_failed("Failed to create organization", exc) from exc

    log.info("org.created", org_id=str(org.id), creator=str(creator_id))
    return org
