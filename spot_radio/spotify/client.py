"""
Spotify web-player client for spot-radio.

This module talks to the two API surfaces the Spotify web player uses:

    - GraphQL "pathfinder" endpoint (persisted queries identified by a
      sha256 hash): library, albums, artist pages, search. These carry a
      generous rate limit.
    - REST api.spotify.com/v1: the only source for top tracks/artists per
      time range. Heavily rate limited.

Authentication:
    Requests carry a web-player bearer token minted from the sp_dc/sp_key
    session cookies (see fetch_access_token and spotify/auth.py). The
    client only stores the token; refreshing it is the session manager's job.

Error Handling:
    No method raises on request failure. Each returns a FetchResult whose
    error is a SpotifyError classified by ErrorKind:
        401                     -> UNAUTHENTICATED (never retried)
        429                     -> RATE_LIMITED, retried after Retry-After
                                   (or 2s, 4s, ...) while attempts remain.
                                   A Retry-After above max_retry_after fails
                                   immediately so the caller can cool down.
        5xx / connection errors -> retried with the same backoff
        other non-2xx           -> HTTP
        bad JSON / GQL "errors" / missing root object -> MALFORMED

    Pass retry=False for a single attempt (the profile cache does this on
    its Tier 2 path, where retries would burn the timeout budget).

Usage:
    async with SpotifyWebClient(config.spotify) as client:
        client.set_access_token(token)
        result = await client.liked_songs(limit=50)
        if result.ok:
            for track in result.value.items:
                print(track.name)
"""

import asyncio
import json
import random
from dataclasses import dataclass, field
from typing import Any, Callable

import aiohttp
from asyncio_throttle import Throttler

from spot_radio.core.config import SpotifyConfig
from spot_radio.core.exceptions import ErrorKind, SpotifyError
from spot_radio.core.logger import get_logger
from spot_radio.core.result import FetchResult
from spot_radio.spotify.models import (
    AccessToken,
    Artist,
    ArtistOverview,
    Page,
    SimpleAlbum,
    Track,
    UserProfile,
)


logger = get_logger(__name__)


# =============================================================================
# ENDPOINTS
# =============================================================================

GQL_URL = "https://api-partner.spotify.com/pathfinder/v2/query"
REST_BASE_URL = "https://api.spotify.com/v1/"
TOKEN_URL = "https://open.spotify.com/get_access_token"
WEB_PLAYER_ORIGIN = "https://open.spotify.com"

# Persisted query hashes used by the web player
OPERATION_HASHES = {
    "fetchLibraryTracks": "087278b20b743578a6262c2b0b4bcd20d879c503cc359a2285baf083ef944240",
    "libraryV3": "2de10199b2441d6e4ae875f27d2db361020c399fb10b03951120223fbed10b08",
    "getAlbum": "b9bfabef66ed756e5e13f68a942deb60bd4125ec1f1be8cc42769dc0259b4b10",
    "queryArtistOverview": "446130b4a0aa6522a686aafccddb0ae849165b5e0436fd802f96e0243617b5d8",
    "searchDesktop": "4801118d4a100f756e833d33984436a3899cff359c532f8fd3aaf174b60b3b49",
    "profileAttributes": "53bcb064f6cd18c23f752bc324a791194d20df612d8e1239c735144ab0399ced",
}

# Desktop Chrome user agents; one is picked per client instance
USER_AGENTS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/125.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/126.0.0.0 Safari/537.36",
)

# Valid values for the REST time_range parameter
TIME_RANGES = ("short_term", "medium_term", "long_term")


# =============================================================================
# RETRY CONFIGURATION
# =============================================================================

# Backoff step when the server gives no Retry-After: 2s, 4s, 6s, ...
BACKOFF_STEP_SECONDS = 2.0


@dataclass(frozen=True)
class RawResponse:
    """
    Minimal HTTP response captured by _send().

    Attributes:
        status: HTTP status code.
        headers: Response headers (case-insensitive lookups done by caller).
        text: Response body as text.
    """
    status: int
    headers: dict[str, str] = field(default_factory=dict)
    text: str = ""


def _retry_after_seconds(headers: dict[str, str]) -> float | None:
    """Parse a numeric Retry-After header, None if absent or not numeric."""
    for key, value in headers.items():
        if key.lower() == "retry-after":
            try:
                return max(0.0, float(value))
            except (TypeError, ValueError):
                return None
    return None


def _walk(payload: Any, path: tuple[str, ...]) -> dict[str, Any] | None:
    """Follow `path` through nested dicts, None if any step is missing."""
    node = payload
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node if isinstance(node, dict) else None


class SpotifyWebClient:
    """
    Async Spotify client over aiohttp.

    One instance is shared by the whole process. All requests pass through
    a single asyncio-throttle Throttler, so concurrent callers cannot exceed
    config.requests_per_second.

    Attributes:
        config: Request settings (retries, timeouts, throttle).
    """

    def __init__(
        self,
        config: SpotifyConfig,
        session: aiohttp.ClientSession | None = None,
        throttler: Throttler | None = None,
        sleep: Callable[[float], Any] = asyncio.sleep
    ) -> None:
        """
        Initialize the client.

        Args:
            config: Spotify request settings.
            session: Optional externally managed aiohttp session. When None a
                     session is created lazily and closed by close().
            throttler: Optional shared throttler.
            sleep: Coroutine function used for backoff waits.
        """
        self.config = config
        self._session = session
        self._owns_session = session is None
        self._throttler = throttler or Throttler(rate_limit=config.requests_per_second, period=1.0)
        self._sleep = sleep
        self._access_token: str | None = None
        self._user_agent = random.choice(USER_AGENTS)

    async def __aenter__(self) -> "SpotifyWebClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the aiohttp session if this client created it."""
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    # =========================================================================
    # Token handling
    # =========================================================================

    def set_access_token(self, token: str | None) -> None:
        """Install (or clear, with None) the bearer token used for requests."""
        self._access_token = token or None

    @property
    def access_token(self) -> str | None:
        return self._access_token

    @property
    def is_authenticated(self) -> bool:
        return self._access_token is not None

    # =========================================================================
    # Transport
    # =========================================================================

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.request_timeout)
            )
            self._owns_session = True
        return self._session

    def _headers(self, authenticated: bool) -> dict[str, str]:
        headers = {
            "User-Agent": self._user_agent,
            "Accept": "application/json",
            "App-Platform": "WebPlayer",
            "Origin": WEB_PLAYER_ORIGIN,
            "Referer": f"{WEB_PLAYER_ORIGIN}/",
        }
        if authenticated and self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"
        return headers

    async def _send(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        cookies: dict[str, str] | None = None
    ) -> RawResponse:
        """
        Perform one throttled HTTP request.

        Raises:
            aiohttp.ClientError: On connection-level failures.
            asyncio.TimeoutError: When the request exceeds the session timeout.
        """
        session = await self._get_session()
        async with self._throttler:
            async with session.request(
                method, url, params=params, json=json_body, headers=headers, cookies=cookies
            ) as response:
                text = await response.text()
                return RawResponse(status=response.status, headers=dict(response.headers), text=text)

    async def _request(
        self,
        label: str,
        method: str,
        url: str,
        *,
        retry: bool = True,
        authenticated: bool = True,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
        cookies: dict[str, str] | None = None
    ) -> FetchResult[Any]:
        """
        Send a request with classification and bounded retries.

        Args:
            label: Short operation name for logs and error messages.
            method: HTTP method.
            url: Absolute URL.
            retry: False for a single attempt.
            authenticated: Attach the bearer token (fails fast without one).
            params: Query parameters.
            json_body: JSON request body.
            cookies: Request cookies.

        Returns:
            FetchResult with the decoded JSON body on success.
        """
        if authenticated and not self._access_token:
            logger.debug(f"{label}: no access token")
            return FetchResult.failure(SpotifyError(
                f"{label}: not authenticated", kind=ErrorKind.UNAUTHENTICATED
            ))

        attempts = max(1, self.config.max_retries) if retry else 1

        for attempt in range(attempts):
            is_last = attempt == attempts - 1
            backoff = BACKOFF_STEP_SECONDS * (attempt + 1)
            suffix = f" [retry {attempt}]" if attempt else ""
            logger.debug(f"{method} {label}{suffix}")

            try:
                response = await self._send(
                    method, url,
                    params=params,
                    json_body=json_body,
                    headers=self._headers(authenticated),
                    cookies=cookies,
                )
            except asyncio.TimeoutError:
                error = SpotifyError(
                    f"{label}: request timed out", details={"url": url}, kind=ErrorKind.TIMEOUT
                )
                if is_last:
                    return FetchResult.failure(error)
                logger.warning(f"{label} timed out, retrying in {backoff:.0f}s")
                await self._sleep(backoff)
                continue
            except aiohttp.ClientError as e:
                error = SpotifyError(
                    f"{label}: connection failed: {e}",
                    details={"url": url, "original_error": str(e)},
                    kind=ErrorKind.UNREACHABLE,
                )
                if is_last:
                    return FetchResult.failure(error)
                logger.warning(f"{label} unreachable ({e}), retrying in {backoff:.0f}s")
                await self._sleep(backoff)
                continue

            status = response.status
            logger.debug(f"{method} {label} -> {status}")

            if status == 401:
                return FetchResult.failure(SpotifyError(
                    f"{label}: token expired or invalid",
                    details={"url": url}, kind=ErrorKind.UNAUTHENTICATED, status=401,
                ))

            if status == 429:
                retry_after = _retry_after_seconds(response.headers)
                wait = retry_after if retry_after is not None else backoff
                error = SpotifyError(
                    f"{label}: rate limited",
                    details={"url": url}, kind=ErrorKind.RATE_LIMITED, status=429, retry_after=wait,
                )
                if wait > self.config.max_retry_after:
                    logger.warning(f"{label} -> 429, Retry-After {wait:.0f}s too long, failing fast")
                    return FetchResult.failure(error)
                if is_last:
                    logger.warning(f"{label} -> 429 after {attempts} attempt(s)")
                    return FetchResult.failure(error)
                logger.warning(
                    f"{label} -> 429, waiting {wait:.0f}s (attempt {attempt + 1}/{attempts})"
                )
                await self._sleep(wait)
                continue

            if status >= 500 and not is_last:
                logger.warning(f"{label} -> {status}, retrying in {backoff:.0f}s")
                await self._sleep(backoff)
                continue

            if not 200 <= status < 300:
                logger.error(f"{label} FAILED: {status} {response.text[:200]}")
                return FetchResult.failure(SpotifyError(
                    f"{label}: Spotify returned HTTP {status}",
                    details={"url": url, "body": response.text[:200]},
                    kind=ErrorKind.HTTP, status=status,
                ))

            try:
                return FetchResult.success(json.loads(response.text))
            except ValueError as e:
                return FetchResult.failure(SpotifyError(
                    f"{label}: response is not valid JSON",
                    details={"url": url, "original_error": str(e)},
                    kind=ErrorKind.MALFORMED, status=status,
                ))

        # Only reachable with attempts == 0, which max() above rules out
        return FetchResult.failure(SpotifyError(f"{label}: no attempts made"))

    async def _gql(
        self,
        operation: str,
        variables: dict[str, Any],
        root: tuple[str, ...],
        retry: bool = True
    ) -> FetchResult[dict[str, Any]]:
        """
        Run a persisted GraphQL query and return the object at `root`.

        Args:
            operation: Operation name (key of OPERATION_HASHES).
            variables: Query variables.
            root: Path to the object of interest, e.g. ("data", "albumUnion").
            retry: False for a single attempt.

        Returns:
            FetchResult with the root object, MALFORMED if the payload has an
            "errors" array or the root is missing.
        """
        body = {
            "variables": variables,
            "operationName": operation,
            "extensions": {
                "persistedQuery": {"version": 1, "sha256Hash": OPERATION_HASHES[operation]},
            },
        }
        result = await self._request(f"GQL {operation}", "POST", GQL_URL, json_body=body, retry=retry)
        if not result.ok:
            return result

        payload = result.value
        errors = payload.get("errors") if isinstance(payload, dict) else None
        if errors:
            # Usually a list of {"message": ...}, occasionally a bare object
            if isinstance(errors, list):
                first = errors[0]
            else:
                first = errors
            message = first.get("message") if isinstance(first, dict) else None
            message = message or "Unknown GraphQL error"
            logger.error(f"GQL {operation} returned error: {message}")
            return FetchResult.failure(SpotifyError(
                f"GraphQL: {message}", details={"operation": operation}, kind=ErrorKind.MALFORMED
            ))

        node = _walk(payload, root)
        if node is None:
            return FetchResult.failure(SpotifyError(
                f"Invalid {operation} response",
                details={"operation": operation, "path": ".".join(root)},
                kind=ErrorKind.MALFORMED,
            ))
        return FetchResult.success(node)

    async def _rest(
        self,
        endpoint: str,
        params: dict[str, Any] | None = None,
        retry: bool = True
    ) -> FetchResult[dict[str, Any]]:
        """GET a REST endpoint relative to REST_BASE_URL."""
        result = await self._request(
            f"REST {endpoint}", "GET", REST_BASE_URL + endpoint, params=params, retry=retry
        )
        if result.ok and not isinstance(result.value, dict):
            return FetchResult.failure(SpotifyError(
                f"Invalid {endpoint} response", kind=ErrorKind.MALFORMED
            ))
        return result

    # =========================================================================
    # Session
    # =========================================================================

    async def fetch_access_token(self, sp_dc: str, sp_key: str | None = None) -> FetchResult[AccessToken]:
        """
        Exchange the session cookies for a web-player access token.

        Args:
            sp_dc: sp_dc cookie value.
            sp_key: sp_key cookie value (optional).

        Returns:
            FetchResult with the AccessToken. An anonymous token (Spotify
            ignored the cookie) is reported as an UNAUTHENTICATED failure whose
            message names the cause, since it means the cookie is dead.
        """
        cookies = {"sp_dc": sp_dc}
        if sp_key:
            cookies["sp_key"] = sp_key

        result = await self._request(
            "get_access_token", "GET", TOKEN_URL,
            authenticated=False,
            params={"reason": "transport", "productType": "web_player"},
            cookies=cookies,
        )
        if not result.ok:
            if result.error.is_auth_error:
                return FetchResult.failure(SpotifyError(
                    "Session cookie expired", kind=ErrorKind.UNAUTHENTICATED, status=result.error.status
                ))
            return result

        if not isinstance(result.value, dict):
            return FetchResult.failure(SpotifyError(
                "Invalid get_access_token response", kind=ErrorKind.MALFORMED
            ))

        token = AccessToken.from_response(result.value)
        if token.is_anonymous:
            return FetchResult.failure(SpotifyError(
                "Session cookie rejected: anonymous token issued", kind=ErrorKind.UNAUTHENTICATED
            ))
        if not token.access_token:
            return FetchResult.failure(SpotifyError(
                "get_access_token response has no token", kind=ErrorKind.MALFORMED
            ))
        return FetchResult.success(token)

    async def me(self) -> FetchResult[UserProfile]:
        """Fetch the logged-in user's profile."""
        result = await self._gql("profileAttributes", {}, ("data", "me", "profile"))
        return result.map(UserProfile.from_gql)

    # =========================================================================
    # Library (GQL)
    # =========================================================================

    async def liked_songs(self, limit: int = 50, offset: int = 0, retry: bool = True) -> FetchResult[Page]:
        """
        Fetch one page of the user's Liked Songs.

        Returns:
            FetchResult with a Page of Track items.
        """
        result = await self._gql(
            "fetchLibraryTracks",
            {"offset": offset, "limit": limit},
            ("data", "me", "library", "tracks"),
            retry=retry,
        )

        def parse(tracks_data: dict[str, Any]) -> Page:
            items = []
            for elem in tracks_data.get("items") or []:
                wrapper = elem.get("track") if isinstance(elem, dict) else None
                if not isinstance(wrapper, dict) or not isinstance(wrapper.get("data"), dict):
                    continue
                uri = wrapper.get("_uri") or wrapper.get("uri")
                items.append(Track.from_gql(wrapper["data"], uri_override=uri))
            total = tracks_data.get("totalCount")
            return Page(
                items=tuple(items),
                total=total if isinstance(total, int) else 0,
                offset=offset,
                limit=limit,
            )

        return result.map(parse)

    async def followed_artists(self, limit: int = 50, offset: int = 0) -> FetchResult[list[Artist]]:
        """Fetch artists the user follows (library filtered to Artists)."""
        variables = {
            "filters": ["Artists"],
            "order": None,
            "textFilter": "",
            "features": ["LIKED_SONGS", "YOUR_EPISODES_V2", "PRERELEASES", "EVENTS"],
            "limit": limit,
            "offset": offset,
            "flatten": False,
            "expandedFolders": [],
            "folderUri": None,
            "includeFoldersWhenFlattening": True,
        }
        result = await self._gql("libraryV3", variables, ("data", "me", "libraryV3"))

        def parse(library: dict[str, Any]) -> list[Artist]:
            artists = []
            for elem in library.get("items") or []:
                wrapper = elem.get("item") if isinstance(elem, dict) else None
                if not isinstance(wrapper, dict):
                    continue
                if wrapper.get("__typename") != "ArtistResponseWrapper":
                    continue
                data = wrapper.get("data")
                if not isinstance(data, dict) or data.get("__typename") != "Artist":
                    continue
                artist = Artist.from_gql(data, uri=wrapper.get("_uri"))
                if artist.id:
                    artists.append(artist)
            return artists

        return result.map(parse)

    # =========================================================================
    # Catalog (GQL)
    # =========================================================================

    async def album_tracks(self, album_id: str) -> FetchResult[list[Track]]:
        """Fetch the tracks of an album."""
        uri = f"spotify:album:{album_id}"
        result = await self._gql(
            "getAlbum",
            {"uri": uri, "locale": "", "offset": 0, "limit": 50},
            ("data", "albumUnion"),
        )

        def parse(album_data: dict[str, Any]) -> list[Track]:
            album = SimpleAlbum.from_gql({**album_data, "uri": uri})
            tracks_data = album_data.get("tracksV2") or {}
            tracks = []
            for elem in tracks_data.get("items") or []:
                track_obj = elem.get("track") if isinstance(elem, dict) else None
                if isinstance(track_obj, dict):
                    tracks.append(Track.from_gql(track_obj, album_override=album))
            return tracks

        return result.map(parse)

    async def artist_overview(self, artist_id: str) -> FetchResult[ArtistOverview]:
        """Fetch an artist page: profile, top tracks and related artists."""
        result = await self._gql(
            "queryArtistOverview",
            {"uri": f"spotify:artist:{artist_id}", "locale": ""},
            ("data", "artistUnion"),
        )
        return result.map(lambda union: ArtistOverview.from_gql(union, artist_id))

    async def artist(self, artist_id: str) -> FetchResult[Artist]:
        """Fetch an artist's profile (name, avatar)."""
        return (await self.artist_overview(artist_id)).map(lambda o: o.artist)

    async def artist_top_tracks(self, artist_id: str) -> FetchResult[list[Track]]:
        """Fetch an artist's most played tracks."""
        return (await self.artist_overview(artist_id)).map(lambda o: list(o.top_tracks))

    async def related_artists(self, artist_id: str) -> FetchResult[list[Artist]]:
        """Fetch the artist page's related artists ("Fans also like")."""
        return (await self.artist_overview(artist_id)).map(lambda o: list(o.related))

    async def search_tracks(self, query: str, limit: int = 20) -> FetchResult[list[Track]]:
        """Search the catalog for tracks."""
        variables = {
            "searchTerm": query,
            "offset": 0,
            "limit": limit,
            "numberOfTopResults": 5,
            "includeAudiobooks": False,
            "includeArtistHasConcertsField": False,
            "includePreReleases": False,
            "includeLocalConcertsField": False,
            "includeAuthors": False,
        }
        result = await self._gql("searchDesktop", variables, ("data", "searchV2"))

        def parse(search_data: dict[str, Any]) -> list[Track]:
            tracks = []
            for elem in (search_data.get("tracksV2") or {}).get("items") or []:
                wrapper = elem.get("item") if isinstance(elem, dict) else None
                if not isinstance(wrapper, dict) or wrapper.get("__typename") != "TrackResponseWrapper":
                    continue
                data = wrapper.get("data")
                if not isinstance(data, dict) or data.get("__typename") != "Track":
                    continue
                uri = wrapper.get("_uri") or wrapper.get("uri")
                tracks.append(Track.from_gql(data, uri_override=uri))
            return tracks

        return result.map(parse)

    # =========================================================================
    # REST (rate-limited)
    # =========================================================================

    async def track(self, track_id: str) -> FetchResult[Track]:
        """Fetch a single track by id."""
        return (await self._rest(f"tracks/{track_id}")).map(Track.from_rest)

    async def top_tracks(
        self,
        time_range: str = "medium_term",
        limit: int = 50,
        offset: int = 0,
        retry: bool = True
    ) -> FetchResult[list[Track]]:
        """
        Fetch the user's top tracks for a time range.

        Args:
            time_range: "short_term" (~4 weeks), "medium_term" (~6 months)
                        or "long_term" (years).
            limit: Maximum items (Spotify caps at 50).
            offset: Paging offset.
            retry: False for a single attempt.
        """
        result = await self._rest(
            "me/top/tracks",
            {"time_range": time_range, "limit": limit, "offset": offset},
            retry=retry,
        )
        return result.map(lambda page: [
            Track.from_rest(item) for item in page.get("items") or [] if isinstance(item, dict)
        ])

    async def top_artists(
        self,
        time_range: str = "medium_term",
        limit: int = 50,
        offset: int = 0,
        retry: bool = True
    ) -> FetchResult[list[Artist]]:
        """Fetch the user's top artists for a time range (see top_tracks)."""
        result = await self._rest(
            "me/top/artists",
            {"time_range": time_range, "limit": limit, "offset": offset},
            retry=retry,
        )
        return result.map(lambda page: [
            Artist.from_rest(item) for item in page.get("items") or [] if isinstance(item, dict)
        ])
