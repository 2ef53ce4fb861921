"""
Session freshness guard.

Right after sign-in the session store may not have the token yet. Actions
that need a token fetch it through ``with_fresh_session``, which waits once
and retries once before giving up.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

import structlog

from invoicehub_shared.schemas.common import ErrorKind

log = structlog.get_logger()

T = TypeVar("T")

DEFAULT_RETRY_DELAY = 1.0


@dataclass(frozen=True)
class ClientSession:
    access_token: str
    user_id: Optional[str] = None


class NoActiveSessionError(Exception):
    """No session token after the retry; the user has to sign in again."""

    kind = ErrorKind.NO_ACTIVE_SESSION

    def __init__(self, message: str = "No active session. Please sign in again."):
        super().__init__(message)


SessionSource = Callable[[], Awaitable[Optional[ClientSession]]]


def _usable(session: Optional[ClientSession]) -> bool:
    return session is not None and bool(session.access_token)


async def with_fresh_session(
    fetch_session: SessionSource,
    action: Callable[[ClientSession], Awaitable[T]],
    *,
    retry_delay: float = DEFAULT_RETRY_DELAY,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run ``action`` with a session that has a token.

    Errors raised by ``fetch_session`` propagate immediately; only an absent
    token is retried, exactly once. ``action`` runs at most once.
    """
    session = await fetch_session()
    if not _usable(session):
        log.info("session.not_ready", retry_in=retry_delay)
        await sleep(retry_delay)
        session = await fetch_session()
        if not _usable(session):
            log.warning("session.missing", kind=ErrorKind.NO_ACTIVE_SESSION.value)
            raise NoActiveSessionError()
    return await action(session)
