"""
Shared fixtures for server tests.

- In-memory SQLite (aiosqlite) instead of PostgreSQL
- HS256 tokens signed with a test secret
- Storage, Gemini and ClickSend served by one ``httpx.MockTransport``
"""

from __future__ import annotations

import os
import uuid

os.environ.setdefault("INVOICEHUB_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("INVOICEHUB_LOG_FORMAT", "text")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from app.api.v1.invoices import get_dispatcher, get_extractor, get_object_store
from app.core.auth import JWTVerifier, get_token_verifier
from app.core.database import get_session
from app.main import app
from helpers import AUDIENCE, TEST_SECRET, FakeServices, bearer


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


# ---------------------------------------------------------------------------
# External services
# ---------------------------------------------------------------------------

@pytest.fixture
async def services():
    fake = FakeServices()
    yield fake
    await fake.client.aclose()


@pytest.fixture
def dispatcher(services):
    return services.dispatcher()


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------

@pytest.fixture
async def client(session_factory, services, dispatcher):
    async def override_session():
        async with session_factory() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    async def override_verifier():
        return JWTVerifier(TEST_SECRET, audience=AUDIENCE)

    async def override_store():
        return services.object_store()

    async def override_extractor():
        return services.extractor()

    async def override_dispatcher():
        return dispatcher

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_token_verifier] = override_verifier
    app.dependency_overrides[get_object_store] = override_store
    app.dependency_overrides[get_extractor] = override_extractor
    app.dependency_overrides[get_dispatcher] = override_dispatcher

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    await dispatcher.drain(timeout=5)
    app.dependency_overrides.clear()


@pytest.fixture
def user_id():
    return uuid.uuid4()


@pytest.fixture
async def org_id(client, user_id) -> uuid.UUID:
    """An organization owned by ``user_id``, created through the API."""
    resp = await client.post(
        "/api/v1/orgs", json={"name": "Acme Holdings"}, headers=bearer(user_id)
    )
    assert resp.status_code == 201, resp.text
    return uuid.UUID(resp.json()["organization"]["id"])
