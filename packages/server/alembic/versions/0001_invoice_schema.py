"""Invoice schema with per-user row-level security.

Revision ID: 0001_invoice_schema
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "0001_invoice_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

# The identity bound by the API for the current transaction (NULL if unset).
CURRENT_USER = "nullif(current_setting('app.current_user_id', true), '')::uuid"

IS_MEMBER = f"""EXISTS (
    SELECT 1 FROM organization_members m
    WHERE m.organization_id = {{org_column}} AND m.user_id = {CURRENT_USER}
)"""

RLS_TABLES = ["organizations", "organization_members", "invoices"]

# Role every app transaction switches to. The login role needs membership:
#   GRANT invoicehub_app TO <login role>;
APP_ROLE = "invoicehub_app"

APP_GRANTS = {
    "organizations": "SELECT, INSERT",
    "organization_members": "SELECT, INSERT",
    "invoices": "SELECT, INSERT, DELETE",
}

# (table, policy, command, USING, WITH CHECK)
POLICIES = [
    (
        "organizations", "org_select", "SELECT",
        f"created_by = {CURRENT_USER} OR " + IS_MEMBER.format(org_column="organizations.id"),
        None,
    ),
    ("organizations", "org_insert", "INSERT", None, f"created_by = {CURRENT_USER}"),
    (
        "organization_members", "member_select", "SELECT",
        f"user_id = {CURRENT_USER}",
        None,
    ),
    # Only the creator of an org may add the first (owner) membership row.
    (
        "organization_members", "member_insert_owner", "INSERT",
        None,
        f"""user_id = {CURRENT_USER} AND role = 'owner' AND EXISTS (
            SELECT 1 FROM organizations o
            WHERE o.id = organization_id AND o.created_by = {CURRENT_USER}
        )""",
    ),
    (
        "invoices", "invoice_select", "SELECT",
        f"user_id = {CURRENT_USER} AND " + IS_MEMBER.format(org_column="invoices.organization_id"),
        None,
    ),
    (
        "invoices", "invoice_insert", "INSERT",
        None,
        f"user_id = {CURRENT_USER} AND " + IS_MEMBER.format(org_column="invoices.organization_id"),
    ),
    (
        "invoices", "invoice_delete", "DELETE",
        f"user_id = {CURRENT_USER}",
        None,
    ),
]


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    op.create_table(
        "organizations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("tax_id", sa.Text(), nullable=True),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("idx_organizations_created_by", "organizations", ["created_by"])

    op.create_table(
        "organization_members",
        sa.Column(
            "organization_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("role", sa.Text(), nullable=False, server_default="member"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("role IN ('owner', 'admin', 'member')", name="member_role_valid"),
    )
    op.create_index("idx_organization_members_user", "organization_members", ["user_id"])

    op.create_table(
        "invoices",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "organization_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("organizations.id"),
            nullable=False,
        ),
        sa.Column("supplier_name", sa.Text(), nullable=False),
        sa.Column("total_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("file_url", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False, server_default="processed"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("total_amount > 0", name="invoice_total_positive"),
        sa.CheckConstraint("status IN ('processed')", name="invoice_status_valid"),
    )
    op.create_index("idx_invoices_user", "invoices", ["user_id", "created_at"])
    op.create_index("idx_invoices_org", "invoices", ["organization_id"])
    op.create_index("idx_invoices_supplier", "invoices", ["supplier_name"])

    # -----------------------------------------------------------------------
    # Row Level Security (RLS) policies
    # -----------------------------------------------------------------------

    for table in RLS_TABLES:
        op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")
        # Applies to the table owner as well.
        op.execute(f"ALTER TABLE {table} FORCE ROW LEVEL SECURITY")

    for table, name, command, using, check in POLICIES:
        sql = f"CREATE POLICY {name} ON {table} FOR {command}"
        if using:
            sql += f" USING ({using})"
        if check:
            sql += f" WITH CHECK ({check})"
        op.execute(sql)

    op.execute(
        f"""
        DO $$
        BEGIN
            IF NOT EXISTS (SELECT 1 FROM pg_roles WHERE rolname = '{APP_ROLE}') THEN
                CREATE ROLE {APP_ROLE} NOLOGIN NOSUPERUSER NOBYPASSRLS;
            END IF;
        END
        $$
        """
    )
    op.execute(f"GRANT USAGE ON SCHEMA public TO {APP_ROLE}")
    for table, privileges in APP_GRANTS.items():
        op.execute(f"GRANT {privileges} ON {table} TO {APP_ROLE}")


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    for table, privileges in APP_GRANTS.items():
        op.execute(f"REVOKE {privileges} ON {table} FROM {APP_ROLE}")
    op.execute(f"REVOKE USAGE ON SCHEMA public FROM {APP_ROLE}")
    op.execute(f"DROP ROLE IF EXISTS {APP_ROLE}")

    for table, name, _, _, _ in reversed(POLICIES):
        op.execute(f"DROP POLICY IF EXISTS {name} ON {table}")
    for table in reversed(RLS_TABLES):
        op.execute(f"ALTER TABLE {table} DISABLE ROW LEVEL SECURITY")

    op.drop_table("invoices")
    op.drop_table("organization_members")
    op.drop_table("organizations")
