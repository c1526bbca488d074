"""
Taste profile: what the user listens to, reduced to numbers.

A profile is built from the user's top tracks and top artists over three
time ranges. Each appearance contributes a position score (first place
1.0, decreasing linearly down the list) multiplied by a recency weight:

    short_term   x3  (~4 weeks)
    medium_term  x2  (~6 months)
    long_term    x1  (years)

Artists that only appear on top tracks count at half weight. The summed
affinities are divided by the maximum, so the best-liked artist is 1.0
and every other artist falls in [0, 1].
"""

from dataclasses import dataclass, field

from spot_radio.spotify.models import Artist, Track


# =============================================================================
# CONSTANTS
# =============================================================================

SHORT_TERM = "short_term"
MEDIUM_TERM = "medium_term"
LONG_TERM = "long_term"

TIME_RANGES = (SHORT_TERM, MEDIUM_TERM, LONG_TERM)

TIME_WEIGHTS = {
    SHORT_TERM: 3.0,
    MEDIUM_TERM: 2.0,
    LONG_TERM: 1.0,
}

TRACK_ARTIST_FACTOR = 0.5


@dataclass(frozen=True)
class WeightedTrack:
    """A pool track with the recency weight of the range it came from."""
    track: Track
    weight: float


@dataclass(frozen=True)
class TasteProfile:
    """
    Aggregated user taste.

    Attributes:
        artist_affinity: Artist id -> affinity in [0, 1].
        artist_genres: Artist id -> genres. Only artists with genre data.
        track_pool: Deduplicated top tracks, short-term ones first.
        short_term_artists: Ids of the user's current favorite artists.
        built_at_ms: Build time, Unix epoch milliseconds.
    """
    artist_affinity: dict[str, float] = field(default_factory=dict)
    artist_genres: dict[str, frozenset[str]] = field(default_factory=dict)
    track_pool: tuple[WeightedTrack, ...] = ()
    short_term_artists: frozenset[str] = frozenset()
    built_at_ms: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.artist_affinity and not self.track_pool

    def affinity(self, artist_id: str) -> float:
        return self.artist_affinity.get(artist_id, 0.0)

    def genres_of(self, artist_ids) -> frozenset[str]:
        """Union of the genres of several artists."""
        genres: set[str] = set()
        for artist_id in artist_ids:
            genres.update(self.artist_genres.get(artist_id, ()))
        return frozenset(genres)


def _position_score(index: int, size: int) -> float:
    return 1.0 - index / max(size, 1)


def build_taste_profile(
    tracks_by_range: dict[str, list[Track]],
    artists_by_range: dict[str, list[Artist]],
    built_at_ms: int = 0
) -> TasteProfile:
    """
    Combine per-range top tracks and top artists into a TasteProfile.

    Args:
        tracks_by_range: Time range -> top tracks, best first. Missing
                         ranges are treated as empty.
        artists_by_range: Time range -> top artists, best first.
        built_at_ms: Timestamp stored on the profile.

    Returns:
        The profile. Empty (is_empty True) if every input list was empty.

    Example:
        >>> profile = build_taste_profile({}, {"short_term": [artist]})
        >>> profile.affinity(artist.id)
        1.0
    """
    affinity: dict[str, float] = {}
    genres: dict[str, set[str]] = {}

    for time_range, artists in artists_by_range.items():
        weight = TIME_WEIGHTS.get(time_range, 1.0)
        for index, artist in enumerate(artists):
            if not artist.id:
                continue
            score = _position_score(index, len(artists)) * weight
            affinity[artist.id] = affinity.get(artist.id, 0.0) + score
            if artist.genres:
                genres.setdefault(artist.id, set()).update(artist.genres)

    for time_range, tracks in tracks_by_range.items():
        weight = TIME_WEIGHTS.get(time_range, 1.0) * TRACK_ARTIST_FACTOR
        for index, track in enumerate(tracks):
            score = _position_score(index, len(tracks)) * weight
            for artist_id in track.artist_ids:
                affinity[artist_id] = affinity.get(artist_id, 0.0) + score

    max_affinity = max(affinity.values(), default=0.0)
    if max_affinity > 0:
        affinity = {artist_id: value / max_affinity for artist_id, value in affinity.items()}

    seen: set[str] = set()
    pool = []
    for time_range in TIME_RANGES:
        weight = TIME_WEIGHTS[time_range]
        for track in tracks_by_range.get(time_range) or []:
            if track.id and track.id not in seen:
                seen.add(track.id)
                pool.append(WeightedTrack(track, weight))

    short_term = frozenset(a.id for a in artists_by_range.get(SHORT_TERM) or [] if a.id)

    return TasteProfile(
        artist_affinity=affinity,
        artist_genres={artist_id: frozenset(g) for artist_id, g in genres.items()},
        track_pool=tuple(pool),
        short_term_artists=short_term,
        built_at_ms=built_at_ms,
    )
