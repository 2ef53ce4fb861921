# SQLModel definitions, imported here so Alembic sees the full metadata.
from .base import CreatedAtMixin, UserOwnedMixin, UUIDMixin  # noqa: F401
from .organization import Organization  # noqa: F401
from .membership import OrganizationMember  # noqa: F401
from .invoice import Invoice  # noqa: F401
