"""Tests for the session freshness guard."""

from __future__ import annotations

import pytest

from invoicehub_client.session import ClientSession, NoActiveSessionError, with_fresh_session


class SessionSource:
    """Returns the queued sessions in order, then the last one forever."""

    def __init__(self, *sessions):
        self._sessions = list(sessions)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if len(self._sessions) > 1:
            return self._sessions.pop(0)
        return self._sessions[0]


class Recorder:
    def __init__(self):
        self.sleeps: list[float] = []
        self.actions: list[str] = []

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)

    async def action(self, session: ClientSession) -> str:
        self.actions.append(session.access_token)
        return f"done:{session.access_token}"


@pytest.mark.asyncio
class TestWithFreshSession:
    async def test_token_available_immediately(self):
        source, rec = SessionSource(ClientSession("tok-1")), Recorder()
        result = await with_fresh_session(source, rec.action, sleep=rec.sleep)
        assert result == "done:tok-1"
        assert source.calls == 1
        assert rec.sleeps == []

    async def test_token_arrives_after_signup(self):
        source, rec = SessionSource(None, ClientSession("fresh")), Recorder()
        result = await with_fresh_session(source, rec.action, sleep=rec.sleep)
        assert result == "done:fresh"
        assert source.calls == 2
        assert rec.sleeps == [1.0]
        assert rec.actions == ["fresh"]

    async def test_empty_token_counts_as_absent(self):
        source, rec = SessionSource(ClientSession(""), ClientSession("fresh")), Recorder()
        await with_fresh_session(source, rec.action, sleep=rec.sleep, retry_delay=0.25)
        assert rec.sleeps == [0.25]
        assert rec.actions == ["fresh"]

    async def test_gives_up_after_one_retry(self):
        source, rec = SessionSource(None), Recorder()
        with pytest.raises(NoActiveSessionError):
            await with_fresh_session(source, rec.action, sleep=rec.sleep)
        assert source.calls == 2
        assert rec.actions == []

    async def test_source_errors_are_not_retried(self):
        calls = 0

        async def broken():
            nonlocal calls
            calls += 1
            raise ConnectionError("session store unavailable")

        rec = Recorder()
        with pytest.raises(ConnectionError):
            await with_fresh_session(broken, rec.action, sleep=rec.sleep)
        assert calls == 1
        assert rec.sleeps == []

    async def test_action_errors_propagate_without_retry(self):
        source, rec = SessionSource(ClientSession("tok")), Recorder()

        async def failing(session):
            rec.actions.append(session.access_token)
            raise ValueError("rejected")

        with pytest.raises(ValueError):
            await with_fresh_session(source, failing, sleep=rec.sleep)
        assert rec.actions == ["tok"]
