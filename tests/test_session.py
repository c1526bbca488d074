"""Test the session manager's refresh protocol"""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from spot_radio.core.exceptions import ErrorKind, SpotifyError
from spot_radio.core.result import FetchResult
from spot_radio.spotify.auth import (
    ACCESS_TOKEN_KEY,
    SP_DC_KEY,
    SP_KEY_KEY,
    TOKEN_EXPIRY_KEY,
    SessionManager,
)
from spot_radio.spotify.models import AccessToken


def make_session(database, clock, fetch_result=None):
    client = Mock()
    client.fetch_access_token = AsyncMock(return_value=fetch_result)
    return SessionManager(database, client, now_ms=clock.now_ms), client


def token_result(clock, token="fresh", lifetime_s=3600) -> FetchResult:
    return FetchResult.success(AccessToken(access_token=token, expires_at_ms=clock.now_ms() + lifetime_s * 1000))


class TestEnsureAuthenticated:
    """Test ensure_authenticated()"""

    @pytest.mark.asyncio
    async def test_valid_token_needs_no_network(self, database, clock):
        session, client = make_session(database, clock)
        database.set(ACCESS_TOKEN_KEY, b"stored")
        database.set(TOKEN_EXPIRY_KEY, str(clock.now_ms() + 60_000).encode())

        assert await session.ensure_authenticated() is True

        client.fetch_access_token.assert_not_called()
        client.set_access_token.assert_called_with("stored")

    @pytest.mark.asyncio
    async def test_no_cookie_returns_false(self, database, clock):
        session, client = make_session(database, clock)

        assert await session.ensure_authenticated() is False
        client.fetch_access_token.assert_not_called()
        assert session.needs_re_login.value is False

    @pytest.mark.asyncio
    async def test_expired_token_is_refreshed_and_persisted(self, database, clock):
        session, client = make_session(database, clock, token_result(clock))
        session.store_credentials("dc", "key")
        database.set(ACCESS_TOKEN_KEY, b"old")
        database.set(TOKEN_EXPIRY_KEY, str(clock.now_ms() - 1).encode())

        assert await session.ensure_authenticated() is True

        client.fetch_access_token.assert_awaited_once_with("dc", "key")
        client.set_access_token.assert_called_with("fresh")
        assert database.get(ACCESS_TOKEN_KEY) == b"fresh"
        assert session.token_expires_at_ms == clock.now_ms() + 3_600_000

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_refresh(self, database, clock):
        session, client = make_session(database, clock)
        session.store_credentials("dc")

        async def slow_fetch(sp_dc, sp_key):
            await asyncio.sleep(0.01)
            return token_result(clock)

        client.fetch_access_token = AsyncMock(side_effect=slow_fetch)

        results = await asyncio.gather(*(session.ensure_authenticated() for _ in range(5)))

        assert results == [True] * 5
        assert client.fetch_access_token.await_count == 1

    @pytest.mark.asyncio
    async def test_rejected_cookie_wipes_credentials(self, database, clock):
        rejected = FetchResult.failure(SpotifyError("expired", kind=ErrorKind.UNAUTHENTICATED))
        session, client = make_session(database, clock, rejected)
        session.store_credentials("dc", "key")
        seen = []
        session.needs_re_login.subscribe(seen.append)

        assert await session.ensure_authenticated() is False

        assert session.needs_re_login.value is True
        assert seen == [True]
        assert not session.has_credentials
        assert database.get(SP_KEY_KEY) is None
        client.set_access_token.assert_called_with(None)

    @pytest.mark.asyncio
    async def test_transient_failure_keeps_credentials(self, database, clock):
        unreachable = FetchResult.failure(SpotifyError("down", kind=ErrorKind.UNREACHABLE))
        session, client = make_session(database, clock, unreachable)
        session.store_credentials("dc")

        assert await session.ensure_authenticated() is False

        assert session.has_credentials
        assert session.needs_re_login.value is False

        client.fetch_access_token.return_value = token_result(clock)
        assert await session.ensure_authenticated() is True


class TestCredentials:
    """Test login/logout bookkeeping"""

    def test_store_credentials_clears_old_token_and_flag(self, database, clock):
        session, client = make_session(database, clock)
        database.set(ACCESS_TOKEN_KEY, b"old")
        session.needs_re_login.set(True)

        session.store_credentials("  dc  ")

        assert database.get(SP_DC_KEY) == b"dc"
        assert database.get(ACCESS_TOKEN_KEY) is None
        assert session.needs_re_login.value is False
        client.set_access_token.assert_called_with(None)

    def test_logout_does_not_raise_re_login(self, database, clock):
        session, _ = make_session(database, clock)
        session.store_credentials("dc")

        session.logout()

        assert not session.has_credentials
        assert session.needs_re_login.value is False

    def test_invalidate_token_keeps_cookie(self, database, clock):
        session, _ = make_session(database, clock)
        session.store_credentials("dc")
        database.set(ACCESS_TOKEN_KEY, b"tok")

        session.invalidate_token()

        assert database.get(ACCESS_TOKEN_KEY) is None
        assert session.has_credentials

    def test_invalidate_token_keeps_a_replacement(self, database, clock):
        session, client = make_session(database, clock)
        database.set(ACCESS_TOKEN_KEY, b"replacement")

        session.invalidate_token("rejected")

        assert database.get(ACCESS_TOKEN_KEY) == b"replacement"
        client.set_access_token.assert_not_called()


UNAUTHORIZED = FetchResult.failure(SpotifyError("401", kind=ErrorKind.UNAUTHENTICATED, status=401))


class TestAuthorized:
    """Test authorized() around single requests"""

    @pytest.fixture
    def session(self, database, clock):
        session, client = make_session(database, clock, token_result(clock))
        session.store_credentials("dc")
        database.set(ACCESS_TOKEN_KEY, b"old")
        database.set(TOKEN_EXPIRY_KEY, str(clock.now_ms() + 60_000).encode())
        return session, client

    @pytest.mark.asyncio
    async def test_rejected_token_is_refreshed_once(self, session, database):
        session, client = session
        request = AsyncMock(side_effect=[UNAUTHORIZED, FetchResult.success("ok")])

        result = await session.authorized(request)

        assert result.value == "ok"
        assert request.await_count == 2
        client.fetch_access_token.assert_awaited_once_with("dc", None)
        assert database.get(ACCESS_TOKEN_KEY) == b"fresh"

    @pytest.mark.asyncio
    async def test_second_rejection_is_returned(self, session):
        session, client = session
        request = AsyncMock(return_value=UNAUTHORIZED)

        result = await session.authorized(request)

        assert result.error.kind is ErrorKind.UNAUTHENTICATED
        assert request.await_count == 2
        assert client.fetch_access_token.await_count == 1

    @pytest.mark.asyncio
    async def test_other_failures_are_not_retried(self, session):
        session, client = session
        rate_limited = FetchResult.failure(SpotifyError("429", kind=ErrorKind.RATE_LIMITED, status=429))
        request = AsyncMock(return_value=rate_limited)

        result = await session.authorized(request)

        assert result is rate_limited
        assert request.await_count == 1
        client.fetch_access_token.assert_not_called()

    @pytest.mark.asyncio
    async def test_expired_token_is_refreshed_first(self, session, clock):
        session, client = session
        clock.advance(61)
        request = AsyncMock(return_value=FetchResult.success("ok"))

        result = await session.authorized(request)

        assert result.ok
        assert request.await_count == 1
        client.fetch_access_token.assert_awaited_once()
        client.set_access_token.assert_called_with("fresh")
