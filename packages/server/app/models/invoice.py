"""Invoice model (RLS-scoped, immutable once created)."""

from decimal import Decimal
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin, UserOwnedMixin, UUIDMixin


class Invoice(UUIDMixin, UserOwnedMixin, CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "invoices"
    __table_args__ = (
        sa.CheckConstraint("total_amount > 0", name="invoice_total_positive"),
    )

    organization_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    supplier_name: str = Field(nullable=False, index=True)
    total_amount: Decimal = Field(nullable=False, sa_type=sa.Numeric(10, 2))
    file_url: str = Field(nullable=False)
    status: str = Field(default="processed", nullable=False, index=True)
