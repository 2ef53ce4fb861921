"""Organization model (RLS-scoped through memberships)."""

from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin, UUIDMixin


class Organization(UUIDMixin, CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "organizations"

    name: str = Field(nullable=False, index=True)
    tax_id: Optional[str] = None
    # First owner; lets the creator read the row before the membership exists.
    created_by: uuid.UUID = Field(nullable=False, index=True)
