"""
Authentication and Authorization for Invoice Hub.

Supports:
- Bearer token verification against the identity provider
  (local JWT verification or a remote ``/user`` lookup)
- Caller-scoped database sessions for RLS
- Org-scoping with role checks based on membership rows
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx
import jwt
import structlog
from fastapi import Depends
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from invoicehub_shared.schemas.common import ErrorKind, Role

from app.core.config import Settings, get_settings
from app.core.database import apply_identity_scope, get_session, release_connection
from app.core.errors import ServiceError
from app.core.http import get_http_client
from app.models.membership import OrganizationMember
from app.models.organization import Organization

log = structlog.get_logger()

authorization_header = APIKeyHeader(name="Authorization", auto_error=False)


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Identity:
    id: uuid.UUID
    email: Optional[str] = None


@dataclass(frozen=True)
class AuthContext:
    """The verified caller plus the token they presented."""

    identity: Identity
    token: str

    @property
    def user_id(self) -> uuid.UUID:
        return self.identity.id


@dataclass(frozen=True)
class OrgScope:
    """An authenticated caller acting inside one of their organizations."""

    auth: AuthContext
    organization: Organization
    role: Role

    @property
    def user_id(self) -> uuid.UUID:
        return self.auth.user_id

    @property
    def org_id(self) -> uuid.UUID:
        return self.organization.id


def parse_bearer(header: Optional[str]) -> str:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    if not header:
        raise ServiceError.unauthenticated("Missing Authorization header")
    scheme, _, token = header.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise ServiceError.unauthenticated("Expected a Bearer token")
    return token.strip()


def _subject_to_uuid(subject: object) -> uuid.UUID:
    try:
        return uuid.UUID(str(subject))
    except ValueError:
        raise ServiceError.unauthenticated("Token subject is not a valid user id")


# ---------------------------------------------------------------------------
# Token verifiers
# ---------------------------------------------------------------------------

class TokenVerifier(Protocol):
    async def verify(self, token: str) -> Identity: ...


class JWTVerifier:
    """Verifies identity-provider JWTs locally with the shared signing secret."""

    def __init__(self, secret: str, algorithm: str = "HS256", audience: Optional[str] = None):
        self._secret = secret
        self._algorithm = algorithm
        self._audience = audience

    async def verify(self, token: str) -> Identity:
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                audience=self._audience,
                options={"require": ["sub", "exp"], "verify_aud": bool(self._audience)},
            )
        except jwt.PyJWTError as exc:
            raise ServiceError.unauthenticated(f"Invalid or expired token: {exc}")
        return Identity(id=_subject_to_uuid(payload["sub"]), email=payload.get("email"))


class RemoteVerifier:
    """Resolves the caller by asking the identity provider who owns the token."""

    def __init__(self, client: httpx.AsyncClient, auth_url: str, api_key: str = ""):
        self._client = client
        self._auth_url = auth_url.rstrip("/")
        self._api_key = api_key

    async def verify(self, token: str) -> Identity:
        headers = {"Authorization": f"Bearer {token}"}
        if self._api_key:
            headers["apikey"] = self._api_key
        try:
            resp = await self._client.get(f"{self._auth_url}/user", headers=headers)
        except httpx.HTTPError as exc:
            log.error("auth.provider_unreachable", error=exc.__class__.__name__)
            raise ServiceError.unauthenticated("Identity provider unavailable")

        if resp.status_code != 200:
            raise ServiceError.unauthenticated(f"Identity provider rejected token ({resp.status_code})")
        try:
            body = resp.json()
        except ValueError:
            raise ServiceError.unauthenticated("Identity provider returned an invalid response")
        if not isinstance(body, dict) or not body.get("id"):
            raise ServiceError.unauthenticated("No user found for token")
        return Identity(id=_subject_to_uuid(body["id"]), email=body.get("email"))


def build_verifier(settings: Settings, client: Optional[httpx.AsyncClient] = None) -> TokenVerifier:
    if settings.identity_provider == "remote":
        if client is None:
            raise ValueError("Remote identity verification needs an HTTP client")
        return RemoteVerifier(client, settings.auth_url, settings.auth_api_key)
    return JWTVerifier(settings.jwt_secret, settings.jwt_algorithm, settings.jwt_audience or None)


async def get_token_verifier() -> TokenVerifier:
    settings = get_settings()
    client = await get_http_client() if settings.identity_provider == "remote" else None
    return build_verifier(settings, client)


# ---------------------------------------------------------------------------
# Gateway operations
# ---------------------------------------------------------------------------

async def authorize(bearer: Optional[str], verifier: TokenVerifier) -> AuthContext:
    token = parse_bearer(bearer)
    identity = await verifier.verify(token)
    return AuthContext(identity=identity, token=token)


async def authorize_for_org(
    auth: AuthContext, org_id: uuid.UUID, session: AsyncSession
) -> OrgScope:
    """Resolve the caller's membership in ``org_id``; deny when there is none."""
    result = await session.execute(
        select(Organization, OrganizationMember.role)
        .join(OrganizationMember, OrganizationMember.organization_id == Organization.id)
        .where(
            Organization.id == org_id,
            OrganizationMember.user_id == auth.user_id,
        )
    )
    row = result.first()
    if row is None:
        log.info("auth.org_denied", user_id=str(auth.user_id), org_id=str(org_id))
        raise ServiceError(
            ErrorKind.FORBIDDEN,
            "Not a member of this organization",
            details="Create or join an organization before managing invoices",
        )
    org, role = row
    return OrgScope(auth=auth, organization=org, role=Role(role))


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

async def get_auth_context(
    authorization: Optional[str] = Depends(authorization_header),
    verifier: TokenVerifier = Depends(get_token_verifier),
    session: AsyncSession = Depends(get_session),
) -> AuthContext:
    """Main authentication dependency. Also scopes the request session to the caller."""
    auth = await authorize(authorization, verifier)
    await apply_identity_scope(session, auth.user_id)
    structlog.contextvars.bind_contextvars(user_id=str(auth.user_id))
    return auth


async def get_org_scope(
    org_id: uuid.UUID,
    auth: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_session),
) -> OrgScope:
    """
    Resolve the caller's membership. No transaction is open on return;
    services re-apply the identity scope before their next query.
    """
    scope = await authorize_for_org(auth, org_id, session)
    await release_connection(session)
    structlog.contextvars.bind_contextvars(org_id=str(org_id))
    return scope


async def require_member(scope: OrgScope = Depends(get_org_scope)) -> OrgScope:
    """Any org member can access this endpoint."""
    return scope

