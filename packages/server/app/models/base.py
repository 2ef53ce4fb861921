"""Shared columns for the RLS-scoped tables."""

from datetime import datetime, timezone
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UUIDMixin(SQLModel):
    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
        nullable=False,
    )


class CreatedAtMixin(SQLModel):
    # Rows are insert-only, so there is no updated_at.
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
        sa_column_kwargs={"server_default": sa.func.now()},
    )


class UserOwnedMixin(SQLModel):
    """Visible only to the identity bound to ``app.current_user_id``."""

    user_id: uuid.UUID = Field(nullable=False, index=True)
