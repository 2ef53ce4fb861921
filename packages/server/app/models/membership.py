"""Organization membership (join table, RLS-scoped)."""

import uuid

from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin


class OrganizationMember(CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "organization_members"

    organization_id: uuid.UUID = Field(foreign_key="organizations.id", primary_key=True)
    user_id: uuid.UUID = Field(primary_key=True, index=True)
    role: str = Field(nullable=False, default="member")  # owner | admin | member
