"""
Tiered cache of the user's Spotify taste data.

The REST endpoints that describe a user's taste best (me/top/tracks,
me/top/artists) are also the ones Spotify rate-limits hardest. This cache
blends three sources so callers always get something:

    Tier 1  GQL liked songs          low rate limit, always attempted
    Tier 2  REST top tracks/artists  best signal, may 429, behind a cooldown
    Tier 3  local play history       always available after first use

Cache Entries:
    taste     top tracks + top artists, TTL depends on quality
    followed  followed artists, long TTL
    related   lowercased names of artists related to followed ones

Each entry has its own asyncio.Lock, so refreshing one never blocks a read
of another. Every read follows the same shape:

    1. fresh in memory?           -> return (no await, no network)
    2. take the entry lock, recheck
    3. memory empty?              -> restore from the database, recheck
    4. still stale                -> refresh from the network

Quality:
    A taste refresh in which Tier 2 contributed is FULL and lives for
    cache.full_ttl. Without Tier 2 it is DEGRADED and lives only for
    cache.degraded_ttl, so the next read after a short while tries the
    REST path again.

With a SessionManager every request runs through session.authorized(),
so an expired or revoked token is refreshed before the tiers give up.

Usage:
    cache = ProfileCache(client, database, DatabasePlayHistory(database), config.cache, session)
    tracks = await cache.get_top_tracks(50)
    if cache.quality is ProfileQuality.DEGRADED:
        ...
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar

from spot_radio.core.config import CacheConfig
from spot_radio.core.database import Database
from spot_radio.core.exceptions import DatabaseError
from spot_radio.core.logger import get_logger
from spot_radio.core.result import FetchResult
from spot_radio.profile.history import PlayHistorySource
from spot_radio.spotify.auth import SessionManager, epoch_ms
from spot_radio.spotify.client import SpotifyWebClient
from spot_radio.spotify.models import Artist, Track


logger = get_logger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

TASTE_KEY = "profile.taste"
FOLLOWED_KEY = "profile.followed"
RELATED_KEY = "profile.related"

LIKED_SONGS_LIMIT = 100
TIER2_LIMIT = 50
HISTORY_LIMIT = 50

# Persisted sizes
PERSIST_TRACKS = 100
PERSIST_ARTISTS = 50

IMAGE_ENRICH_COUNT = 10
REST_BOOST_FACTOR = 2

FOLLOWED_PAGE_SIZE = 50
MAX_FOLLOWED = 200

DAY_MS = 24 * 60 * 60 * 1000

T = TypeVar("T")


class ProfileQuality(str, Enum):
    """How much of the taste entry came from the high-fidelity source."""
    FULL = "full"
    DEGRADED = "degraded"
    EMPTY = "empty"


@dataclass
class _TasteEntry:
    tracks: list[Track] = field(default_factory=list)
    artists: list[Artist] = field(default_factory=list)
    refreshed_at_ms: int = 0
    had_high_fidelity: bool = False


@dataclass
class _FollowedEntry:
    artists: list[Artist] = field(default_factory=list)
    refreshed_at_ms: int = 0


@dataclass
class _RelatedEntry:
    names: set[str] = field(default_factory=set)
    refreshed_at_ms: int = 0


@dataclass
class _ArtistTally:
    """Per-artist accumulator used while ranking taste artists."""
    artist: Artist
    mentions: int = 0
    rest_boost: bool = False

    @property
    def score(self) -> int:
        return self.mentions * REST_BOOST_FACTOR if self.rest_boost else self.mentions


class ProfileCache:
    """
    Process-wide taste cache. Construct one per process and share it.

    Thread Safety:
        Safe for concurrent use by tasks on one event loop. Not safe across
        event loops.
    """

    def __init__(
        self,
        client: SpotifyWebClient,
        database: Database,
        history: PlayHistorySource | None,
        config: CacheConfig,
        session: SessionManager | None = None,
        now_ms: Callable[[], int] = epoch_ms
    ) -> None:
        self._client = client
        self._database = database
        self._history = history
        self._config = config
        self._session = session
        self._now_ms = now_ms

        self._taste = _TasteEntry()
        self._followed = _FollowedEntry()
        self._related = _RelatedEntry()

        self._taste_lock = asyncio.Lock()
        self._followed_lock = asyncio.Lock()
        self._related_lock = asyncio.Lock()

        self._last_rest_fail_ms = 0

    # =========================================================================
    # Public API
    # =========================================================================

    @property
    def quality(self) -> ProfileQuality:
        if not self._taste.tracks:
            return ProfileQuality.EMPTY
        if self._taste.had_high_fidelity:
            return ProfileQuality.FULL
        return ProfileQuality.DEGRADED

    @property
    def refreshed_at_ms(self) -> int:
        """When the taste entry was last refreshed, 0 if never."""
        return self._taste.refreshed_at_ms

    @property
    def rest_cooldown_active(self) -> bool:
        return not self._rest_available()

    async def get_top_tracks(self, limit: int = 50) -> list[Track]:
        """
        Top tracks from the best available source.

        Never raises for network trouble; returns an empty list only when
        no tier produced anything.
        """
        await self._ensure_taste()
        return self._taste.tracks[:limit]

    async def get_top_artists(self, limit: int = 50) -> list[Artist]:
        """Top artists ranked by mentions, REST-backed artists counted double."""
        await self._ensure_taste()
        return self._taste.artists[:limit]

    async def get_followed_artists(self, limit: int = 50) -> list[Artist]:
        """Artists the user follows."""
        await self._ensure_followed()
        return self._followed.artists[:limit]

    async def get_related_artist_names(self, seed_limit: int | None = None) -> set[str]:
        """
        Names of artists related to the user's followed artists.

        Names are lowercased and stripped so callers can compare them with
        names from YouTube Music.

        Args:
            seed_limit: Followed artists to query (default
                        cache.related_seed_limit).
        """
        await self._ensure_related(seed_limit or self._config.related_seed_limit)
        return set(self._related.names)

    async def force_refresh(self) -> None:
        """Refresh the taste entry from the network regardless of its TTL."""
        async with self._taste_lock:
            await self._refresh_taste()

    def invalidate(self) -> None:
        """Forget every entry, in memory and in the database."""
        self._taste = _TasteEntry()
        self._followed = _FollowedEntry()
        self._related = _RelatedEntry()
        self._database.delete(TASTE_KEY, FOLLOWED_KEY, RELATED_KEY)
        logger.info("Profile cache invalidated")

    # =========================================================================
    # Freshness
    # =========================================================================

    def _taste_ttl_ms(self) -> int:
        ttl = self._config.full_ttl if self._taste.had_high_fidelity else self._config.degraded_ttl
        return int(ttl * 1000)

    def _is_fresh(self, refreshed_at_ms: int, ttl_ms: int, has_data: bool) -> bool:
        if not has_data or not refreshed_at_ms:
            return False
        return self._now_ms() - refreshed_at_ms < ttl_ms

    def _taste_is_fresh(self) -> bool:
        return self._is_fresh(self._taste.refreshed_at_ms, self._taste_ttl_ms(), bool(self._taste.tracks))

    def _followed_is_fresh(self) -> bool:
        return self._is_fresh(
            self._followed.refreshed_at_ms,
            int(self._config.followed_ttl * 1000),
            bool(self._followed.artists),
        )

    def _related_is_fresh(self) -> bool:
        return self._is_fresh(
            self._related.refreshed_at_ms,
            int(self._config.related_ttl * 1000),
            bool(self._related.names),
        )

    def _rest_available(self) -> bool:
        if not self._last_rest_fail_ms:
            return True
        return self._now_ms() - self._last_rest_fail_ms >= self._config.rest_cooldown * 1000

    # =========================================================================
    # Taste entry
    # =========================================================================

    async def _ensure_taste(self) -> None:
        if self._taste_is_fresh():
            return

        async with self._taste_lock:
            if self._taste_is_fresh():
                return

            if not self._taste.tracks:
                self._restore_taste()
                if self._taste_is_fresh():
                    return

            await self._refresh_taste()

    async def _refresh_taste(self) -> None:
        logger.debug("Refreshing taste profile from sources")

        tracks: list[Track] = []
        tallies: dict[str, _ArtistTally] = {}

        # Tier 1: liked songs
        liked = await self._fetch_liked_tracks()
        tier1_ok = bool(liked)
        tracks.extend(liked)
        for track in liked:
            self._tally_track(tallies, track)

        # Tier 2: REST top tracks / top artists
        tier2_contributed = False
        if self._rest_available():
            top_tracks = await self.rest_attempt(
                "top tracks",
                lambda: self._client.top_tracks("short_term", TIER2_LIMIT, retry=False),
            )
            if top_tracks:
                tier2_contributed = True
                top_ids = {t.id for t in top_tracks}
                tracks = list(top_tracks) + [t for t in tracks if t.id not in top_ids]
                for track in top_tracks:
                    self._tally_track(tallies, track, rest=True)

            if self._rest_available():
                top_artists = await self.rest_attempt(
                    "top artists",
                    lambda: self._client.top_artists("medium_term", TIER2_LIMIT, retry=False),
                )
                if top_artists:
                    tier2_contributed = True
                    for artist in top_artists:
                        self._tally_rest_artist(tallies, artist)
            else:
                logger.debug("Skipping Tier 2 top artists: REST cooldown started by top tracks")
        else:
            remaining = self._config.rest_cooldown - (self._now_ms() - self._last_rest_fail_ms) / 1000
            logger.debug(f"Skipping Tier 2: REST cooldown active ({remaining:.0f}s left)")

        # Tier 3: local play history
        if not tracks:
            played = self._read_history()
            if played:
                logger.debug(f"Using {len(played)} locally played tracks as the only source")
            for entry in played:
                tracks.append(entry.track)
                self._tally_track(tallies, entry.track, mentions=max(1, entry.play_count))
        elif tier1_ok and not tier2_contributed:
            tracks = self._reorder_by_play_rank(tracks)

        if not tracks:
            logger.warning("No taste data from any source")
            return

        seen: set[str] = set()
        deduped = []
        for track in tracks:
            if track.id and track.id not in seen:
                seen.add(track.id)
                deduped.append(track)

        ranked = [
            tally.artist
            for tally in sorted(tallies.values(), key=lambda t: t.score, reverse=True)
        ]
        artists = await self._enrich_artist_images(ranked)

        self._taste = _TasteEntry(
            tracks=deduped,
            artists=artists,
            refreshed_at_ms=self._now_ms(),
            had_high_fidelity=tier2_contributed,
        )
        logger.info(
            f"Taste profile cached: {len(deduped)} tracks, {len(artists)} artists "
            f"({self.quality.value})"
        )
        self._persist_taste()

    async def _fetch_liked_tracks(self) -> list[Track]:
        result = await self._fetch(lambda: self._client.liked_songs(limit=LIKED_SONGS_LIMIT))
        if not result.ok:
            logger.warning(f"Tier 1 liked songs failed ({result.error.kind.value}): {result.error.message}")
            return []
        tracks = [t for t in result.value.items if isinstance(t, Track)]
        logger.debug(f"Tier 1 liked songs returned {len(tracks)} tracks")
        return tracks

    async def _fetch(self, request: Callable[[], Awaitable[FetchResult[T]]]) -> FetchResult[T]:
        if self._session is None:
            return await request()
        return await self._session.authorized(request)

    async def rest_attempt(
        self,
        label: str,
        request: Callable[[], Awaitable[FetchResult[Any]]],
        timeout: float | None = None
    ) -> list[Any] | None:
        """
        One bounded attempt at a rate-limited REST request.

        A timeout, 429 or unreachable host starts the REST cooldown shared by
        every caller of this cache. Callers check rest_cooldown_active first.

        Args:
            label: Request name for the log.
            request: Zero-argument callable returning the request coroutine.
                     Pass retry=False to the client so one attempt is made.
            timeout: Seconds to wait (default cache.tier2_timeout).

        Returns:
            The fetched items, or None if the attempt failed.
        """
        timeout = timeout or self._config.tier2_timeout
        try:
            result = await asyncio.wait_for(self._fetch(request), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"REST {label} timed out after {timeout}s, entering REST cooldown")
            self._last_rest_fail_ms = self._now_ms()
            return None

        if not result.ok:
            error = result.error
            if error.triggers_cooldown:
                logger.warning(f"REST {label} failed ({error.kind.value}), entering REST cooldown")
                self._last_rest_fail_ms = self._now_ms()
            else:
                logger.warning(f"REST {label} failed ({error.kind.value}): {error.message}")
            return None

        logger.debug(f"REST {label} returned {len(result.value)} items")
        return result.value

    def _read_history(self) -> list:
        if self._history is None:
            return []
        since_ms = self._now_ms() - self._config.history_window_days * DAY_MS
        try:
            return self._history.most_played(since_ms, HISTORY_LIMIT)
        except DatabaseError as e:
            logger.warning(f"Local play history unavailable: {e}")
            return []

    def _reorder_by_play_rank(self, tracks: list[Track]) -> list[Track]:
        """Move locally played tracks to the front, most played first."""
        played = self._read_history()
        if not played:
            return tracks
        rank = {entry.track.id: index for index, entry in enumerate(played)}
        logger.debug(f"Reordering {len(tracks)} liked tracks by local play rank")
        return sorted(tracks, key=lambda t: rank.get(t.id, len(rank)))

    @staticmethod
    def _tally_track(
        tallies: dict[str, _ArtistTally],
        track: Track,
        rest: bool = False,
        mentions: int = 1
    ) -> None:
        for simple in track.artists:
            if not simple.id:
                continue
            tally = tallies.get(simple.id)
            if tally is None:
                tally = tallies[simple.id] = _ArtistTally(Artist.from_simple(simple))
            tally.mentions += mentions
            if rest:
                tally.rest_boost = True

    @staticmethod
    def _tally_rest_artist(tallies: dict[str, _ArtistTally], artist: Artist) -> None:
        if not artist.id:
            return
        tally = tallies.get(artist.id)
        if tally is None:
            tally = tallies[artist.id] = _ArtistTally(artist)
        else:
            # REST artists carry genres and images, track references do not
            tally.artist = artist
        tally.mentions += 1
        tally.rest_boost = True

    async def _enrich_artist_images(self, artists: list[Artist]) -> list[Artist]:
        """Fetch avatars for top artists that have none. Failures are skipped."""
        enriched = list(artists)
        missing = [
            (index, artist)
            for index, artist in enumerate(enriched[:IMAGE_ENRICH_COUNT])
            if not artist.images
        ]
        if not missing:
            return enriched

        results = await asyncio.gather(*(
            self._fetch(lambda a=a: self._client.artist(a.id)) for _, a in missing
        ))
        for (index, artist), result in zip(missing, results):
            if result.ok and result.value.images:
                enriched[index] = artist.with_images(result.value.images)
            elif not result.ok:
                logger.debug(f"No images for artist {artist.id}: {result.error.message}")
        return enriched

    def _persist_taste(self) -> None:
        self._database.set_json(TASTE_KEY, {
            "tracks": [t.to_dict() for t in self._taste.tracks[:PERSIST_TRACKS]],
            "artists": [a.to_dict() for a in self._taste.artists[:PERSIST_ARTISTS]],
            "refreshed_at_ms": self._taste.refreshed_at_ms,
            "had_high_fidelity": self._taste.had_high_fidelity,
        })

    def _restore_taste(self) -> None:
        data = self._database.get_json(TASTE_KEY)
        if not isinstance(data, dict):
            return
        tracks = [Track.from_dict(t) for t in data.get("tracks") or [] if isinstance(t, dict)]
        if not tracks:
            return
        self._taste = _TasteEntry(
            tracks=tracks,
            artists=[Artist.from_dict(a) for a in data.get("artists") or [] if isinstance(a, dict)],
            refreshed_at_ms=int(data.get("refreshed_at_ms") or 0),
            had_high_fidelity=bool(data.get("had_high_fidelity")),
        )
        age_min = (self._now_ms() - self._taste.refreshed_at_ms) // 60000
        logger.debug(
            f"Restored taste profile: {len(tracks)} tracks, "
            f"{len(self._taste.artists)} artists (age: {age_min}min)"
        )

    # =========================================================================
    # Followed artists
    # =========================================================================

    async def _ensure_followed(self) -> None:
        if self._followed_is_fresh():
            return

        async with self._followed_lock:
            if self._followed_is_fresh():
                return

            if not self._followed.artists:
                self._restore_followed()
                if self._followed_is_fresh():
                    return

            await self._refresh_followed()

    async def _refresh_followed(self) -> None:
        artists: list[Artist] = []
        offset = 0
        while offset < MAX_FOLLOWED:
            result = await self._fetch(
                lambda: self._client.followed_artists(limit=FOLLOWED_PAGE_SIZE, offset=offset)
            )
            if not result.ok:
                logger.warning(f"Followed artists failed ({result.error.kind.value}): {result.error.message}")
                if not artists:
                    return
                break
            artists.extend(result.value)
            if len(result.value) < FOLLOWED_PAGE_SIZE:
                break
            offset += FOLLOWED_PAGE_SIZE

        self._followed = _FollowedEntry(artists=artists, refreshed_at_ms=self._now_ms())
        logger.debug(f"Cached {len(artists)} followed artists")
        self._database.set_json(FOLLOWED_KEY, {
            "artists": [a.to_dict() for a in artists],
            "refreshed_at_ms": self._followed.refreshed_at_ms,
        })

    def _restore_followed(self) -> None:
        data = self._database.get_json(FOLLOWED_KEY)
        if not isinstance(data, dict):
            return
        artists = [Artist.from_dict(a) for a in data.get("artists") or [] if isinstance(a, dict)]
        if artists:
            self._followed = _FollowedEntry(
                artists=artists,
                refreshed_at_ms=int(data.get("refreshed_at_ms") or 0),
            )

    # =========================================================================
    # Related artist names
    # =========================================================================

    async def _ensure_related(self, seed_limit: int) -> None:
        if self._related_is_fresh():
            return

        async with self._related_lock:
            if self._related_is_fresh():
                return

            if not self._related.names:
                self._restore_related()
                if self._related_is_fresh():
                    return

            await self._refresh_related(seed_limit)

    async def _refresh_related(self, seed_limit: int) -> None:
        followed = await self.get_followed_artists(seed_limit)
        if not followed:
            logger.debug("No followed artists, related artist names stay empty")
            return

        results = await asyncio.gather(*(
            self._fetch(lambda a=a: self._client.related_artists(a.id)) for a in followed
        ))

        names: set[str] = set()
        failures = 0
        for artist, result in zip(followed, results):
            if not result.ok:
                failures += 1
                logger.debug(f"Related artists of {artist.name} skipped: {result.error.message}")
                continue
            names.update(r.name.strip().lower() for r in result.value if r.name.strip())

        if failures == len(followed):
            logger.warning("Related artists failed for every followed artist")
            return

        self._related = _RelatedEntry(names=names, refreshed_at_ms=self._now_ms())
        logger.debug(f"Cached {len(names)} related artist names from {len(followed) - failures} artists")
        self._database.set_json(RELATED_KEY, {
            "names": sorted(names),
            "refreshed_at_ms": self._related.refreshed_at_ms,
        })

    def _restore_related(self) -> None:
        data = self._database.get_json(RELATED_KEY)
        if not isinstance(data, dict):
            return
        names = {n for n in data.get("names") or [] if isinstance(n, str)}
        if names:
            self._related = _RelatedEntry(
                names=names,
                refreshed_at_ms=int(data.get("refreshed_at_ms") or 0),
            )
