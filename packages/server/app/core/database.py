"""
Database connection and session management.

Every request session is scoped to the calling identity: on PostgreSQL each
transaction switches to the unprivileged application role and writes the
verified user id to ``app.current_user_id``, which the row-level security
policies read. The application role has neither superuser nor BYPASSRLS, so
the policies hold even when the login role is more privileged.
"""

from collections.abc import AsyncGenerator
import uuid

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from app.core.config import get_settings

settings = get_settings()

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    future=True,
)

async_session_factory = sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for database sessions."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def apply_identity_scope(
    session: AsyncSession,
    user_id: uuid.UUID,
    role: str | None = None,
) -> None:
    """
    Bind the caller's identity to the session's current transaction for RLS.

    Both settings are transaction-local, so this must run again after every
    commit or rollback before the next scoped query.
    """
    if session.bind is None or session.bind.dialect.name != "postgresql":
        return
    role = settings.database_role if role is None else role
    if role:
        quoted = session.bind.dialect.identifier_preparer.quote(role)
        await session.execute(text(f"SET LOCAL ROLE {quoted}"))
    await session.execute(
        text("SELECT set_config('app.current_user_id', :user_id, true)"),
        {"user_id": str(user_id)},
    )


async def release_connection(session: AsyncSession) -> None:
    """End the current transaction so no connection is held across outbound calls."""
    if session.in_transaction():
        await session.commit()
