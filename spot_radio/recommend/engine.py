"""
Recommendation engine.

Spotify's recommendations and related-artists endpoints are deprecated,
so queues are built locally from the user's taste profile and the seed
track's context.

Algorithm:
    1. Taste profile: top tracks + top artists for 3 time ranges (6 REST
       calls in parallel), see recommend.taste. Cached for
       recommend.profile_ttl. If every REST call fails, the profile is
       built from the ProfileCache's tiered data instead.
    2. Candidates, each deduplicated against the seed and earlier ones:
         SEED_ARTIST     top tracks of the seed's first artists
         SAME_ALBUM      tracks of the seed's album
         GENRE_NEIGHBOR  top tracks of profile artists similar to the seed
         USER_TOP        the profile's whole track pool
    3. Composite score, see recommend.scoring.
    4. Diversification: per-artist cap and bucket anti-monotony.

Usage:
    engine = RecommendationEngine(client, profile_cache, config.recommend, session)
    tracks = await engine.get_recommendations(seed, limit=50)
    if not tracks:
        # profile unavailable, build a simpler queue
"""

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

from spot_radio.core.config import RecommendConfig
from spot_radio.core.logger import get_logger
from spot_radio.core.result import FetchResult
from spot_radio.profile.cache import ProfileCache
from spot_radio.recommend.scoring import (
    ScoredCandidate,
    SourceBucket,
    diversify,
    rank_genre_neighbors,
    score_candidate,
)
from spot_radio.recommend.taste import (
    MEDIUM_TERM,
    TIME_RANGES,
    TasteProfile,
    build_taste_profile,
)
from spot_radio.spotify.auth import SessionManager, epoch_ms
from spot_radio.spotify.client import SpotifyWebClient
from spot_radio.spotify.models import Track


logger = get_logger(__name__)


PROFILE_FETCH_LIMIT = 50
FALLBACK_PROFILE_LIMIT = 50
DEFAULT_SEED_POPULARITY = 50

T = TypeVar("T")


class RecommendationEngine:
    """
    Builds personalized track lists from a seed track.

    Thread Safety:
        One profile rebuild at a time per engine (asyncio.Lock with a
        freshness recheck). Use from a single event loop.
    """

    def __init__(
        self,
        client: SpotifyWebClient,
        profile_cache: ProfileCache | None,
        config: RecommendConfig,
        session: SessionManager | None = None,
        now_ms: Callable[[], int] = epoch_ms
    ) -> None:
        self._client = client
        self._profile_cache = profile_cache
        self._config = config
        self._session = session
        self._now_ms = now_ms
        self._profile: TasteProfile | None = None
        self._profile_lock = asyncio.Lock()

    @property
    def profile(self) -> TasteProfile | None:
        return self._profile

    def _profile_is_fresh(self) -> bool:
        if self._profile is None or self._profile.is_empty:
            return False
        return self._now_ms() - self._profile.built_at_ms < self._config.profile_ttl * 1000

    # =========================================================================
    # Taste profile
    # =========================================================================

    async def ensure_profile_loaded(self) -> bool:
        """
        Build the taste profile unless a fresh one exists.

        Returns:
            True if a non-empty profile is available, False if no source
            produced any data.
        """
        if self._profile_is_fresh():
            return True

        async with self._profile_lock:
            if self._profile_is_fresh():
                return True

            logger.debug("Building taste profile")
            profile = await self._build_from_top_lists()
            if profile is None or profile.is_empty:
                profile = await self._build_from_profile_cache()

            if profile is None or profile.is_empty:
                logger.warning("Taste profile unavailable: no source returned data")
                return False

            self._profile = profile
            logger.info(
                f"Taste profile built: {len(profile.artist_affinity)} artists, "
                f"{len(profile.track_pool)} tracks, {len(profile.artist_genres)} artists with genres"
            )
            return True

    async def _build_from_top_lists(self) -> TasteProfile | None:
        cache = self._profile_cache
        if cache is not None and cache.rest_cooldown_active:
            logger.debug("REST cooldown active, skipping top tracks/artists")
            return None

        track_lists, artist_lists = await asyncio.gather(
            asyncio.gather(*(
                self._top_list(f"top tracks ({time_range})", self._client.top_tracks, time_range)
                for time_range in TIME_RANGES
            )),
            asyncio.gather(*(
                self._top_list(f"top artists ({time_range})", self._client.top_artists, time_range)
                for time_range in TIME_RANGES
            )),
        )

        if all(items is None for items in [*track_lists, *artist_lists]):
            logger.warning("All top tracks/artists requests failed")
            return None

        tracks_by_range = {
            time_range: items or [] for time_range, items in zip(TIME_RANGES, track_lists)
        }
        artists_by_range = {
            time_range: items or [] for time_range, items in zip(TIME_RANGES, artist_lists)
        }
        return build_taste_profile(tracks_by_range, artists_by_range, self._now_ms())

    async def _top_list(
        self,
        label: str,
        fetch: Callable[..., Awaitable[FetchResult[list[Any]]]],
        time_range: str
    ) -> list[Any] | None:
        """One attempt at a top list; None if it failed."""
        timeout = self._config.profile_fetch_timeout

        def request() -> Awaitable[FetchResult[list[Any]]]:
            return fetch(time_range, PROFILE_FETCH_LIMIT, retry=False)

        if self._profile_cache is not None:
            return await self._profile_cache.rest_attempt(label, request, timeout=timeout)

        try:
            result = await asyncio.wait_for(self._fetch(request), timeout=timeout)
        except asyncio.TimeoutError:
            logger.debug(f"{label} timed out after {timeout}s")
            return None
        if not result.ok:
            logger.debug(f"{label} failed ({result.error.kind.value}): {result.error.message}")
            return None
        return result.value

    async def _fetch(self, request: Callable[[], Awaitable[FetchResult[T]]]) -> FetchResult[T]:
        if self._session is None:
            return await request()
        return await self._session.authorized(request)

    async def _build_from_profile_cache(self) -> TasteProfile | None:
        if self._profile_cache is None:
            return None

        logger.info("Building taste profile from the profile cache")
        tracks = await self._profile_cache.get_top_tracks(FALLBACK_PROFILE_LIMIT)
        artists = await self._profile_cache.get_top_artists(FALLBACK_PROFILE_LIMIT)
        if not tracks and not artists:
            return None
        # Cached data has no time range; it counts as medium term, without recency boost
        return build_taste_profile({MEDIUM_TERM: tracks}, {MEDIUM_TERM: artists}, self._now_ms())

    def invalidate_profile(self) -> None:
        """Drop the taste profile; the next request rebuilds it."""
        self._profile = None
        logger.debug("Taste profile invalidated")

    # =========================================================================
    # Recommendations
    # =========================================================================

    async def get_recommendations(self, seed: Track, limit: int = 50) -> list[Track]:
        """
        Ranked, diversified tracks to play after `seed`.

        Args:
            seed: The track the queue starts from. Never part of the result.
            limit: Maximum tracks to return.

        Returns:
            Tracks best first. Empty if the taste profile is unavailable;
            callers then fall back to a simpler queue.
        """
        if not await self.ensure_profile_loaded():
            logger.warning("Profile not available, no recommendations")
            return []

        profile = self._profile
        config = self._config
        seed_artist_ids = list(seed.artist_ids[:config.seed_artist_limit])
        seed_genres = profile.genres_of(seed.artist_ids)
        seed_popularity = seed.popularity if seed.popularity is not None else DEFAULT_SEED_POPULARITY

        logger.debug(
            f"Generating recommendations for '{seed.name}' "
            f"(artists: {len(seed.artist_ids)}, genres: {len(seed_genres)}, pop: {seed_popularity})"
        )

        neighbor_ids = rank_genre_neighbors(
            profile,
            seed.artist_ids,
            seed_genres,
            count=config.genre_neighbor_count,
            floor=config.genre_similarity_floor,
        )
        logger.debug(f"Found {len(neighbor_ids)} genre-neighbor artists")

        album_id = seed.album.id if seed.album and seed.album.id else None
        seed_lists, album_list, neighbor_lists = await asyncio.gather(
            self._top_tracks_of(seed_artist_ids),
            self._album_tracks(album_id),
            self._top_tracks_of(neighbor_ids),
        )

        seen = {seed.id}
        candidates: list[ScoredCandidate] = []

        def add(tracks: list[Track], bucket: SourceBucket) -> None:
            for track in tracks:
                if track.id and track.id not in seen:
                    seen.add(track.id)
                    candidates.append(score_candidate(
                        track, bucket, profile, seed_popularity, seed_genres,
                        config.weights, config.bucket_weights,
                    ))

        for tracks in seed_lists:
            add(tracks, SourceBucket.SEED_ARTIST)
        add(album_list, SourceBucket.SAME_ALBUM)
        for tracks in neighbor_lists:
            add(tracks, SourceBucket.GENRE_NEIGHBOR)
        add([weighted.track for weighted in profile.track_pool], SourceBucket.USER_TOP)

        logger.debug(f"Total candidates: {len(candidates)}")

        return diversify(
            candidates,
            limit,
            max_per_artist=config.max_tracks_per_artist,
            max_bucket_run=config.max_bucket_run,
        )

    async def _top_tracks_of(self, artist_ids: list[str]) -> list[list[Track]]:
        results = await asyncio.gather(*(
            self._fetch(lambda a=a: self._client.artist_top_tracks(a)) for a in artist_ids
        ))
        lists = []
        for artist_id, result in zip(artist_ids, results):
            if result.ok:
                lists.append(result.value)
            else:
                logger.debug(f"Top tracks of artist {artist_id} skipped: {result.error.message}")
        return lists

    async def _album_tracks(self, album_id: str | None) -> list[Track]:
        if not album_id:
            return []
        result = await self._fetch(lambda: self._client.album_tracks(album_id))
        if not result.ok:
            logger.debug(f"Album {album_id} skipped: {result.error.message}")
            return []
        return result.value
