"""
Playback queues built from Spotify data and resolved on YouTube Music.

RadioQueue:
    Personalized radio from a seed track. Only the seed is resolved in
    start(), so playback can begin at once; the rest of the queue is
    resolved batch by batch in next_page().

    The track list comes from the RecommendationEngine, bounded by
    queue.recommendation_timeout. On timeout, an empty result or an
    engine error, a basic queue is built instead: top tracks of the seed's
    first artists plus the rest of its album, shuffled. The fallback
    signal tells the UI which of the two it got.

LikedSongsQueue:
    The user's Liked Songs, one library page per call.

Usage:
    queue = RadioQueue(seed, engine, resolver, client, config.queue, session=session)
    first = await queue.start()
    while queue.has_more:
        items = await queue.next_page()
"""

import asyncio
import random
from typing import Awaitable, Callable, TypeVar

from spot_radio.core.config import QueueConfig
from spot_radio.core.exceptions import SpotRadioError
from spot_radio.core.logger import format_fallback_message, get_logger
from spot_radio.core.result import FetchResult
from spot_radio.core.signals import INACTIVE_FALLBACK, FallbackState, StateSignal
from spot_radio.recommend.engine import RecommendationEngine
from spot_radio.spotify.auth import SessionManager
from spot_radio.spotify.client import SpotifyWebClient
from spot_radio.spotify.models import Track
from spot_radio.youtube.matcher import TrackResolver
from spot_radio.youtube.models import PlayableItem


logger = get_logger(__name__)


FALLBACK_SEED_ARTISTS = 2

T = TypeVar("T")


async def _authorized(
    session: SessionManager | None,
    request: Callable[[], Awaitable[FetchResult[T]]]
) -> FetchResult[T]:
    if session is None:
        return await request()
    return await session.authorized(request)


class RadioQueue:
    """
    Seeded radio queue.

    Args:
        seed: The track to start from.
        engine: Recommendation engine.
        resolver: Track resolver.
        client: Spotify client, used for the fallback queue.
        config: Batch size, recommendation timeout and limit.
        fallback_signal: Receives FallbackState updates; a private signal
                         is created when None.
        rng: Random source for the fallback shuffle.
        session: Refreshes the access token around fallback requests.
    """

    def __init__(
        self,
        seed: Track,
        engine: RecommendationEngine,
        resolver: TrackResolver,
        client: SpotifyWebClient,
        config: QueueConfig,
        fallback_signal: StateSignal[FallbackState] | None = None,
        rng: random.Random | None = None,
        session: SessionManager | None = None
    ) -> None:
        self._seed = seed
        self._engine = engine
        self._resolver = resolver
        self._client = client
        self._config = config
        self.fallback: StateSignal[FallbackState] = fallback_signal or StateSignal(INACTIVE_FALLBACK)
        self._rng = rng or random.Random()
        self._session = session
        self._tracks: list[Track] = []
        self._offset = 0

    @property
    def queued_tracks(self) -> tuple[Track, ...]:
        """Tracks queued after the seed, resolved or not."""
        return tuple(self._tracks)

    @property
    def has_more(self) -> bool:
        return self._offset < len(self._tracks)

    async def start(self) -> list[PlayableItem]:
        """
        Resolve the seed and build the track list.

        Returns:
            [seed item], or [] if the seed has no YouTube Music match (no
            queue is built then).
        """
        seed_item = await self._resolver.resolve(self._seed)
        if seed_item is None:
            logger.warning(f"Could not resolve seed track '{self._seed.name}'")
            return []

        reason = await self._load_recommendations()
        if reason is None:
            self.fallback.set(INACTIVE_FALLBACK)
        else:
            logger.warning(format_fallback_message(reason))
            await self._build_fallback_queue()
            self.fallback.set(FallbackState(active=True, reason=reason))

        logger.info(f"Radio for '{self._seed.name}': {len(self._tracks)} tracks queued")
        return [seed_item]

    async def _load_recommendations(self) -> str | None:
        """Fill the queue from the engine. Returns the fallback reason, or None."""
        timeout = self._config.recommendation_timeout
        try:
            tracks = await asyncio.wait_for(
                self._engine.get_recommendations(self._seed, self._config.recommendation_limit),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            return f"recommendations timed out after {timeout}s"
        except SpotRadioError as e:
            logger.error(f"Recommendation engine failed: {e}")
            return "recommendation engine failed"
        except Exception as e:
            logger.exception(f"Unexpected error in recommendation engine: {e}")
            return "recommendation engine failed"

        if not tracks:
            return "no recommendations available"

        self._tracks = list(tracks)
        logger.debug(f"Engine produced {len(tracks)} recommendations for '{self._seed.name}'")
        return None

    async def _build_fallback_queue(self) -> None:
        seen = {self._seed.id}
        tracks: list[Track] = []

        def add(candidates: list[Track]) -> None:
            for track in candidates:
                if track.id and track.id not in seen:
                    seen.add(track.id)
                    tracks.append(track)

        for artist_id in self._seed.artist_ids[:FALLBACK_SEED_ARTISTS]:
            result = await _authorized(self._session, lambda: self._client.artist_top_tracks(artist_id))
            if result.ok:
                add(result.value)
            else:
                logger.debug(f"Fallback: top tracks of {artist_id} unavailable: {result.error.message}")

        if self._seed.album and self._seed.album.id:
            result = await _authorized(self._session, lambda: self._client.album_tracks(self._seed.album.id))
            if result.ok:
                add(result.value)
            else:
                logger.debug(f"Fallback: album {self._seed.album.id} unavailable: {result.error.message}")

        self._rng.shuffle(tracks)
        self._tracks = tracks

    async def next_page(self) -> list[PlayableItem]:
        """Resolve the next batch. Unmatched tracks are skipped."""
        if not self.has_more:
            return []

        end = min(self._offset + self._config.batch_size, len(self._tracks))
        batch = self._tracks[self._offset:end]
        self._offset = end
        logger.debug(f"Resolving batch of {len(batch)} tracks ({self._offset}/{len(self._tracks)})")

        items: list[PlayableItem] = []
        async for _, resolved in self._resolver.resolve_batches(batch, len(batch)):
            items.extend(resolved)
        return items


class LikedSongsQueue:
    """
    The user's Liked Songs as a queue.

    Each page fetches `page_size` library tracks and resolves them in
    batches of `batch_size`.
    """

    def __init__(
        self,
        client: SpotifyWebClient,
        resolver: TrackResolver,
        page_size: int = 50,
        batch_size: int = 10,
        session: SessionManager | None = None
    ) -> None:
        self._client = client
        self._resolver = resolver
        self._session = session
        self._page_size = page_size
        self._batch_size = batch_size
        self._offset = 0
        self._has_more = True
        self.total = 0

    @property
    def has_more(self) -> bool:
        return self._has_more

    async def start(self) -> list[PlayableItem]:
        """Load and resolve the first page."""
        self._offset = 0
        self._has_more = True
        return await self.next_page()

    async def next_page(self) -> list[PlayableItem]:
        if not self._has_more:
            return []

        result = await _authorized(
            self._session,
            lambda: self._client.liked_songs(limit=self._page_size, offset=self._offset),
        )
        if not result.ok:
            logger.error(f"Failed to fetch liked songs at offset {self._offset}: {result.error.message}")
            self._has_more = False
            return []

        page = result.value
        self.total = page.total
        self._offset += len(page.items)
        self._has_more = page.has_more

        items: list[PlayableItem] = []
        async for _, resolved in self._resolver.resolve_batches(list(page.items), self._batch_size):
            items.extend(resolved)
        logger.debug(f"Liked songs page: {len(items)}/{len(page.items)} resolved ({self._offset}/{self.total})")
        return items
