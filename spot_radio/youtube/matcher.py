"""
Spotify -> YouTube Music track resolution.

Matching Algorithm:
    1. Query YouTube Music songs with "{primary artist} {title}".
    2. Drop candidates whose content type the user hides.
    3. Score every candidate:
           0.45 * title similarity
         + 0.35 * artist similarity
         + 0.20 * duration closeness
         + studio bonus if the candidate is official studio audio (ATV)
       Similarity is the Dice coefficient over character bigrams of
       normalized strings (lowercase, no feat./remix/remaster/live
       qualifiers, letters, digits and spaces only).
    4. Accept the best candidate only if it reaches the threshold.

Duration Closeness (absolute difference in seconds):
    <= 2   1.0
    <= 5   0.8
    <= 10  0.5
    <= 30  0.2
    else   0.0
    unknown duration on either side: 0.5

Match Cache:
    Accepted matches are stored in track_matches with
    is_manual_override = False. override_match() stores the user's choice
    with score 1.0 and is_manual_override = True; the database refuses any
    automatic write over such a row. A cached automatic match whose
    content type has since been hidden is deleted and resolved again;
    manual overrides are always honored.

Usage:
    resolver = TrackResolver(database, YouTubeMusicSearch(), config.match)
    item = await resolver.resolve(track)
    if item is None:
        # no acceptable match, skip the track
"""

import asyncio
import re
from typing import AsyncIterator, Callable, Iterable

from spot_radio.core.config import MatchConfig
from spot_radio.core.database import Database
from spot_radio.core.exceptions import YouTubeError
from spot_radio.core.logger import format_matched_message, get_logger, log_unmatched_track
from spot_radio.spotify.auth import epoch_ms
from spot_radio.spotify.models import Track
from spot_radio.youtube.models import (
    YOUTUBE_THUMBNAIL_URL,
    MatchResult,
    PlayableItem,
    TrackMatch,
    YouTubeResult,
    short_video_type,
)
from spot_radio.youtube.search import YouTubeMusicSearch


logger = get_logger(__name__)


# =============================================================================
# SCORING WEIGHTS
# =============================================================================

TITLE_WEIGHT = 0.45
ARTIST_WEIGHT = 0.35
DURATION_WEIGHT = 0.20

# (max difference in seconds, score), checked in order
DURATION_STEPS = (
    (2, 1.0),
    (5, 0.8),
    (10, 0.5),
    (30, 0.2),
)
UNKNOWN_DURATION_SCORE = 0.5

MANUAL_OVERRIDE_SCORE = 1.0

# Preferred artwork width range for Spotify covers
ARTWORK_MIN_WIDTH = 200
ARTWORK_MAX_WIDTH = 400

DEFAULT_BATCH_SIZE = 10


# =============================================================================
# NORMALIZATION AND SIMILARITY
# =============================================================================

_FEATURING = re.compile(r"\((?:feat|ft)\..*?\)")
_BRACKETED = re.compile(r"\[.*?\]")
_QUALIFIER_PARENS = re.compile(
    r"\([^)]*?(?:remaster|remix|live|version|edit|mono|stereo|acoustic|deluxe)[^)]*?\)"
)
_QUALIFIER_SUFFIX = re.compile(
    r"\s-\s[^-]*?(?:remaster|remix|live|version|edit|mono|stereo|acoustic|deluxe).*$"
)
_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_title(title: str) -> str:
    """
    Normalize a title or artist name for comparison.

    Lowercases, removes featuring credits, square-bracketed text and
    version qualifiers (remaster, remix, live, ...), then keeps only
    letters, digits and single spaces. Idempotent.

    Examples:
        "Song (feat. Someone)"            -> "song"
        "Song - Remastered 2011"          -> "song"
        "Song (Live at Wembley) [Video]"  -> "song"
        "AC/DC"                           -> "acdc"
    """
    text = title.lower()
    text = _FEATURING.sub("", text)
    text = _BRACKETED.sub("", text)
    text = _QUALIFIER_PARENS.sub("", text)
    text = _QUALIFIER_SUFFIX.sub("", text)
    text = _NON_ALNUM.sub("", text)
    return _WHITESPACE.sub(" ", text).strip()


def bigram_similarity(a: str, b: str) -> float:
    """
    Dice coefficient over the sets of adjacent character pairs.

    Returns:
        1.0 for identical strings, 0.0 if either string is shorter than
        two characters, else 2 * |common| / (|bigrams a| + |bigrams b|).
    """
    if a == b:
        return 1.0
    if len(a) < 2 or len(b) < 2:
        return 0.0

    bigrams_a = {a[i:i + 2] for i in range(len(a) - 1)}
    bigrams_b = {b[i:i + 2] for i in range(len(b) - 1)}
    common = len(bigrams_a & bigrams_b)
    return 2.0 * common / (len(bigrams_a) + len(bigrams_b))


def duration_score(spotify_duration_ms: int, candidate_seconds: int | None) -> float:
    """Step score of the duration difference, see module docstring."""
    if not candidate_seconds or spotify_duration_ms <= 0:
        return UNKNOWN_DURATION_SCORE

    diff = abs(spotify_duration_ms // 1000 - candidate_seconds)
    for max_diff, score in DURATION_STEPS:
        if diff <= max_diff:
            return score
    return 0.0


def match_score(
    spotify_title: str,
    spotify_artist: str,
    spotify_duration_ms: int,
    candidate_title: str,
    candidate_artist: str,
    candidate_seconds: int | None
) -> float:
    """Weighted title/artist/duration score in [0, 1], without bonuses."""
    title = bigram_similarity(normalize_title(spotify_title), normalize_title(candidate_title))
    artist = bigram_similarity(normalize_title(spotify_artist), normalize_title(candidate_artist))
    duration = duration_score(spotify_duration_ms, candidate_seconds)
    return TITLE_WEIGHT * title + ARTIST_WEIGHT * artist + DURATION_WEIGHT * duration


# =============================================================================
# RESOLVER
# =============================================================================

class TrackResolver:
    """
    Resolves Spotify tracks to playable YouTube Music items.

    Attributes:
        hidden_video_types: Content types excluded from automatic matches.
                            Settable at runtime; values may be given with or
                            without the MUSIC_VIDEO_TYPE_ prefix.

    Thread Safety:
        Safe for concurrent resolve() calls on one event loop. Two
        concurrent resolutions of the same track may both search; the
        database keeps whichever automatic row is written last, and never
        replaces a manual override.
    """

    def __init__(
        self,
        database: Database,
        searcher: YouTubeMusicSearch,
        config: MatchConfig,
        now_ms: Callable[[], int] = epoch_ms
    ) -> None:
        self._database = database
        self._searcher = searcher
        self._config = config
        self._now_ms = now_ms
        self._hidden: frozenset[str] = frozenset()
        self.hidden_video_types = config.hidden_video_types

    @property
    def hidden_video_types(self) -> frozenset[str]:
        return self._hidden

    @hidden_video_types.setter
    def hidden_video_types(self, video_types: Iterable[str]) -> None:
        self._hidden = frozenset(
            short_video_type(t.strip().upper()) for t in video_types if t and t.strip()
        )

    # =========================================================================
    # Resolution
    # =========================================================================

    async def resolve(self, track: Track) -> PlayableItem | None:
        """
        Resolve a Spotify track to a playable item.

        Returns:
            The PlayableItem, or None when no candidate reaches the
            threshold or the search fails. Callers skip such tracks.
        """
        if track.id:
            row = self._database.get_match(track.id)
            if row is not None:
                cached = TrackMatch.from_row(row)
                if not cached.is_manual_override and cached.music_video_type in self._hidden:
                    logger.debug(
                        f"Cached match for '{track.name}' has hidden type "
                        f"{cached.music_video_type}, resolving again"
                    )
                    self._database.delete_automatic_match(track.id)
                else:
                    logger.debug(
                        f"Match cache hit: {track.name} -> {cached.youtube_id} "
                        f"(manual={cached.is_manual_override})"
                    )
                    return self.build_playable(track, cached)

        result = await self.match(track)
        if not result.matched:
            log_unmatched_track(
                logger,
                track_name=track.name,
                artist=track.artist_names,
                spotify_url=track.spotify_url,
                reason=result.match_reason,
            )
            return None

        best = result.youtube_result
        match = TrackMatch(
            spotify_id=track.id,
            youtube_id=best.video_id,
            title=best.title,
            artist=best.primary_artist,
            match_score=result.confidence,
            music_video_type=best.music_video_type,
            cached_at_ms=self._now_ms(),
            is_manual_override=False,
        )

        if track.id and not self._database.upsert_match(match.to_row()):
            # A manual override was stored while we searched
            row = self._database.get_match(track.id)
            if row is not None:
                logger.debug(f"Keeping manual override for '{track.name}'")
                return self.build_playable(track, TrackMatch.from_row(row))

        logger.debug(format_matched_message(
            track.artist_names, track.name, best.video_id, result.confidence
        ))
        return self.build_playable(track, match, youtube_thumbnail=best.thumbnail_url)

    async def match(self, track: Track) -> MatchResult:
        """
        Search YouTube Music and pick the best candidate.

        Does not read or write the match cache.
        """
        query = track.search_query
        if not query:
            return MatchResult.failure(track.id, "track has no title or artist")

        try:
            results = await self._searcher.search(query)
        except YouTubeError as e:
            logger.warning(f"Search failed for '{query}': {e.message}")
            return MatchResult.failure(track.id, "search failed")

        candidates = [r for r in results if r.music_video_type not in self._hidden]
        if not candidates:
            reason = "no results" if not results else "all results have hidden content types"
            return MatchResult.failure(track.id, reason)

        spotify_artist = track.primary_artist.name if track.primary_artist else ""
        scored = [
            (self._score(track, spotify_artist, candidate), candidate)
            for candidate in candidates
        ]
        best_score, best = max(scored, key=lambda item: item[0])

        if best_score < self._config.threshold:
            return MatchResult.failure(
                track.id,
                f"best score {best_score:.2f} below threshold {self._config.threshold:.2f}",
                confidence=best_score,
            )

        return MatchResult.success(
            track.id, best, best_score, f"score {best_score:.2f} of {len(candidates)} candidates"
        )

    def _score(self, track: Track, spotify_artist: str, candidate: YouTubeResult) -> float:
        score = match_score(
            track.name,
            spotify_artist,
            track.duration_ms,
            candidate.title,
            candidate.primary_artist,
            candidate.duration_seconds,
        )
        if candidate.is_studio:
            score += self._config.studio_bonus
        return score

    async def resolve_batches(
        self,
        tracks: list[Track],
        batch_size: int | None = None
    ) -> AsyncIterator[tuple[list[Track], list[PlayableItem]]]:
        """
        Resolve tracks batch by batch.

        Tracks inside a batch resolve concurrently; batches run one after
        another, so the first items are playable before the whole list is
        done. Unresolved tracks are left out.

        Yields:
            (batch, items): the tracks of each batch and those of them that
            resolved, in track order.
        """
        size = batch_size or DEFAULT_BATCH_SIZE
        for start in range(0, len(tracks), size):
            batch = tracks[start:start + size]
            items = await asyncio.gather(*(self.resolve(t) for t in batch))
            yield batch, [item for item in items if item is not None]

    # =========================================================================
    # Overrides and lookups
    # =========================================================================

    def override_match(
        self,
        spotify_id: str,
        youtube_id: str,
        title: str,
        artist: str,
        music_video_type: str | None = None
    ) -> TrackMatch:
        """
        Store the user's chosen video for a Spotify track.

        This is the only way to replace an existing manual override.
        """
        match = TrackMatch(
            spotify_id=spotify_id,
            youtube_id=youtube_id,
            title=title,
            artist=artist,
            match_score=MANUAL_OVERRIDE_SCORE,
            music_video_type=short_video_type(music_video_type),
            cached_at_ms=self._now_ms(),
            is_manual_override=True,
        )
        self._database.upsert_match(match.to_row())
        logger.info(f"Manual override saved: {spotify_id} -> {youtube_id} ({title} by {artist})")
        return match

    def get_match(self, spotify_id: str) -> TrackMatch | None:
        row = self._database.get_match(spotify_id)
        return TrackMatch.from_row(row) if row else None

    def matches_for_youtube_id(self, youtube_id: str) -> list[TrackMatch]:
        """Every Spotify track currently mapped to this video, newest first."""
        return [TrackMatch.from_row(r) for r in self._database.get_matches_by_youtube_id(youtube_id)]

    # =========================================================================
    # Playable items
    # =========================================================================

    @staticmethod
    def _spotify_artwork(track: Track) -> str | None:
        if not track.album or not track.album.images:
            return None
        for image in track.album.images:
            if image.width and ARTWORK_MIN_WIDTH <= image.width <= ARTWORK_MAX_WIDTH:
                return image.url
        return track.album.images[0].url

    def build_playable(
        self,
        track: Track,
        match: TrackMatch,
        youtube_thumbnail: str | None = None
    ) -> PlayableItem:
        """
        Combine a Spotify track and its match into a PlayableItem.

        Artwork falls back from the Spotify cover to the YouTube thumbnail
        to the generic i.ytimg.com thumbnail. Title and artist fall back to
        the Spotify values when the match has none.
        """
        artwork = (
            self._spotify_artwork(track)
            or youtube_thumbnail
            or YOUTUBE_THUMBNAIL_URL.format(video_id=match.youtube_id)
        )
        return PlayableItem(
            media_id=match.youtube_id,
            title=match.title or track.name,
            artist=match.artist or track.artist_names,
            album=track.album.name if track.album else None,
            artwork_url=artwork,
            duration_ms=track.duration_ms,
            spotify_id=track.id,
            explicit=track.explicit,
            music_video_type=match.music_video_type,
        )
