"""
Session management for the Spotify web-player token.

The web player authenticates with a short-lived bearer token (about one
hour) minted from two long-lived session cookies, sp_dc and sp_key. The
cookies come from a browser login and are handed to store_credentials();
everything after that is automatic.

Refresh Protocol:
    ensure_authenticated() is called before any batch of Spotify requests.

    1. Read token + expiry from the database. If now < expiry, install the
       token on the client and return True. No lock, no suspension.
    2. Otherwise take the refresh lock and read again: another task may
       have refreshed while we waited. If so, use its token.
    3. Exchange the cookies for a new token.
         - success: persist token + expiry, clear "needs re-login"
         - cookie rejected (UNAUTHENTICATED): wipe every stored credential
           and raise the "needs re-login" signal
         - anything else (network, 5xx, 429): report and keep state, the
           next call will try again

    At most one exchange is in flight per process, and every waiter sees
    its outcome.

    authorized() wraps a single request in this protocol and retries it
    once after a refresh when Spotify answers 401.

Usage:
    session = SessionManager(database, client)
    session.store_credentials(sp_dc, sp_key)
    if await session.ensure_authenticated():
        tracks = await client.liked_songs()

    result = await session.authorized(lambda: client.album_tracks(album_id))
"""

import asyncio
import time
from typing import Awaitable, Callable, TypeVar

from spot_radio.core.database import Database
from spot_radio.core.exceptions import ErrorKind
from spot_radio.core.logger import get_logger
from spot_radio.core.result import FetchResult
from spot_radio.core.signals import StateSignal
from spot_radio.spotify.client import SpotifyWebClient


logger = get_logger(__name__)


# Database keys
ACCESS_TOKEN_KEY = "spotify.access_token"
TOKEN_EXPIRY_KEY = "spotify.token_expiry_ms"
SP_DC_KEY = "spotify.sp_dc"
SP_KEY_KEY = "spotify.sp_key"

CREDENTIAL_KEYS = (ACCESS_TOKEN_KEY, TOKEN_EXPIRY_KEY, SP_DC_KEY, SP_KEY_KEY)

T = TypeVar("T")


def epoch_ms() -> int:
    """Current Unix time in milliseconds."""
    return int(time.time() * 1000)


class SessionManager:
    """
    Owns the access token and its refresh.

    Attributes:
        needs_re_login: StateSignal[bool], True once the stored session cookie
                        has been rejected. Cleared by store_credentials() or
                        clear_re_login_flag().
    """

    def __init__(
        self,
        database: Database,
        client: SpotifyWebClient,
        now_ms: Callable[[], int] = epoch_ms
    ) -> None:
        self._database = database
        self._client = client
        self._now_ms = now_ms
        self._refresh_lock = asyncio.Lock()
        self.needs_re_login: StateSignal[bool] = StateSignal(False)

    # =========================================================================
    # Stored values
    # =========================================================================

    def _read_text(self, key: str) -> str:
        raw = self._database.get(key)
        return raw.decode("utf-8") if raw else ""

    def _read_token(self) -> tuple[str, int]:
        token = self._read_text(ACCESS_TOKEN_KEY)
        try:
            expiry = int(self._read_text(TOKEN_EXPIRY_KEY) or 0)
        except ValueError:
            expiry = 0
        return token, expiry

    def _token_is_valid(self, token: str, expiry_ms: int) -> bool:
        return bool(token) and self._now_ms() < expiry_ms

    @property
    def has_credentials(self) -> bool:
        """True if a session cookie is stored."""
        return bool(self._read_text(SP_DC_KEY))

    @property
    def token_expires_at_ms(self) -> int:
        return self._read_token()[1]

    # =========================================================================
    # Login / logout
    # =========================================================================

    def store_credentials(self, sp_dc: str, sp_key: str | None = None) -> None:
        """
        Store a fresh session cookie pair from a browser login.

        Any previous token is discarded so the next ensure_authenticated()
        mints one from the new cookies.
        """
        self._database.delete(ACCESS_TOKEN_KEY, TOKEN_EXPIRY_KEY, SP_KEY_KEY)
        self._database.set(SP_DC_KEY, sp_dc.strip().encode("utf-8"))
        if sp_key:
            self._database.set(SP_KEY_KEY, sp_key.strip().encode("utf-8"))
        self._client.set_access_token(None)
        self.needs_re_login.set(False)
        logger.info("Stored Spotify session credentials")

    def logout(self) -> None:
        """Forget every stored credential. Does not raise needs_re_login."""
        self._database.delete(*CREDENTIAL_KEYS)
        self._client.set_access_token(None)
        logger.info("Cleared Spotify session")

    def invalidate_token(self, rejected: str | None = None) -> None:
        """
        Drop the current access token but keep the cookies.

        Used when Spotify rejects a token before its advertised expiry; the
        next ensure_authenticated() performs a refresh.

        Args:
            rejected: The token Spotify refused. If another task has already
                      replaced it, nothing is dropped.
        """
        if rejected is not None and self._read_text(ACCESS_TOKEN_KEY) not in ("", rejected):
            logger.debug("Rejected token was already replaced")
            return
        self._database.delete(ACCESS_TOKEN_KEY, TOKEN_EXPIRY_KEY)
        self._client.set_access_token(None)

    def clear_re_login_flag(self) -> None:
        """Acknowledge the re-login prompt without logging in again."""
        self.needs_re_login.set(False)

    # =========================================================================
    # Refresh
    # =========================================================================

    async def ensure_authenticated(self) -> bool:
        """
        Make sure the client holds a valid access token.

        Returns:
            True if a valid token is installed on the client, False if none
            could be obtained (no cookies, cookie rejected, or a transient
            failure during the exchange).
        """
        token, expiry = self._read_token()
        if self._token_is_valid(token, expiry):
            self._client.set_access_token(token)
            return True

        async with self._refresh_lock:
            token, expiry = self._read_token()
            if self._token_is_valid(token, expiry):
                logger.debug("Token already refreshed by another task")
                self._client.set_access_token(token)
                return True

            sp_dc = self._read_text(SP_DC_KEY)
            if not sp_dc:
                logger.debug("No Spotify session cookie stored, cannot refresh")
                return False

            sp_key = self._read_text(SP_KEY_KEY) or None
            logger.debug("Refreshing Spotify access token")
            result = await self._client.fetch_access_token(sp_dc, sp_key)

            if result.ok:
                new_token = result.value
                self._database.set(ACCESS_TOKEN_KEY, new_token.access_token.encode("utf-8"))
                self._database.set(TOKEN_EXPIRY_KEY, str(new_token.expires_at_ms).encode("utf-8"))
                self._client.set_access_token(new_token.access_token)
                self.needs_re_login.set(False)
                logger.info("Spotify access token refreshed")
                return True

            error = result.error
            if error.is_auth_error:
                logger.warning(f"Spotify session is no longer valid: {error.message}")
                self._database.delete(*CREDENTIAL_KEYS)
                self._client.set_access_token(None)
                self.needs_re_login.set(True)
                return False

            logger.warning(f"Token refresh failed ({error.kind.value}): {error.message}")
            return False

    async def authorized(self, request: Callable[[], Awaitable[FetchResult[T]]]) -> FetchResult[T]:
        """
        Run a Spotify request with a valid token, refreshing once on rejection.

        A token can be revoked before its advertised expiry. When the first
        attempt comes back UNAUTHENTICATED the token is dropped, a new one
        is minted and the request is sent again. A second rejection is
        returned as is.

        Args:
            request: Zero-argument callable returning the request coroutine.
        """
        if not await self.ensure_authenticated():
            return await request()

        used_token = self._read_text(ACCESS_TOKEN_KEY)
        result = await request()
        if result.ok or result.error.kind is not ErrorKind.UNAUTHENTICATED:
            return result

        logger.info("Spotify rejected the access token, refreshing")
        self.invalidate_token(used_token)
        if not await self.ensure_authenticated():
            return result
        return await request()
