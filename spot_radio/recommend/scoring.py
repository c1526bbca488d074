"""
Candidate scoring and queue diversification.

Composite score of a candidate:

    source      bucket relevance (seed artist 1.0 ... user top 0.45)
    affinity    best affinity among the candidate's artists
    genre       Jaccard(seed genres, candidate genres)
    popularity  1 - |candidate popularity - seed popularity| / 100
    recency     1.0 if any candidate artist is a short-term favorite

    score = sum(weight_x * x), weights from RecommendConfig.weights

Unknown popularity counts as 50.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from spot_radio.core.config import BucketWeights, ScoreWeights
from spot_radio.core.logger import get_logger
from spot_radio.recommend.taste import TasteProfile
from spot_radio.spotify.models import Track


logger = get_logger(__name__)


DEFAULT_POPULARITY = 50
NEIGHBOR_GENRE_WEIGHT = 0.6
NEIGHBOR_AFFINITY_WEIGHT = 0.4


class SourceBucket(str, Enum):
    """Where a candidate came from."""
    SEED_ARTIST = "seed_artist"
    SAME_ALBUM = "same_album"
    GENRE_NEIGHBOR = "genre_neighbor"
    USER_TOP = "user_top"

    def weight(self, weights: BucketWeights) -> float:
        return getattr(weights, self.value)


@dataclass(frozen=True)
class ScoredCandidate:
    """A candidate track with its component scores."""
    track: Track
    bucket: SourceBucket
    source: float
    affinity: float
    genre: float
    popularity: float
    recency: float
    score: float

    @property
    def primary_artist_id(self) -> str:
        artist = self.track.primary_artist
        return artist.id if artist else ""


def jaccard(a: Iterable[str], b: Iterable[str]) -> float:
    """Jaccard similarity of two sets; 0.0 when either is empty."""
    set_a, set_b = set(a), set(b)
    if not set_a or not set_b:
        return 0.0
    return len(set_a & set_b) / len(set_a | set_b)


def rank_genre_neighbors(
    profile: TasteProfile,
    seed_artist_ids: Iterable[str],
    seed_genres: frozenset[str],
    count: int = 6,
    floor: float = 0.05
) -> list[str]:
    """
    Pick profile artists similar to the seed.

    Stands in for Spotify's deprecated related-artists endpoint, using the
    user's own listening as the similarity signal: an artist the user likes
    that shares genres with the seed is a good neighbor.

    Args:
        profile: Taste profile to pick from.
        seed_artist_ids: Excluded from the result.
        seed_genres: Genres of the seed artists.
        count: Neighbors to return.
        floor: Minimum combined score (genre path only).

    Returns:
        Artist ids, best first. Without seed genres, the highest-affinity
        artists are returned instead.
    """
    excluded = set(seed_artist_ids)

    if not seed_genres:
        by_affinity = sorted(
            (item for item in profile.artist_affinity.items() if item[0] not in excluded),
            key=lambda item: item[1],
            reverse=True,
        )
        return [artist_id for artist_id, _ in by_affinity[:count]]

    scored = []
    for artist_id, genres in profile.artist_genres.items():
        if artist_id in excluded:
            continue
        similarity = (
            NEIGHBOR_GENRE_WEIGHT * jaccard(seed_genres, genres)
            + NEIGHBOR_AFFINITY_WEIGHT * profile.affinity(artist_id)
        )
        if similarity > floor:
            scored.append((artist_id, similarity))

    scored.sort(key=lambda item: item[1], reverse=True)
    return [artist_id for artist_id, _ in scored[:count]]


def score_candidate(
    track: Track,
    bucket: SourceBucket,
    profile: TasteProfile,
    seed_popularity: int,
    seed_genres: frozenset[str],
    weights: ScoreWeights,
    bucket_weights: BucketWeights
) -> ScoredCandidate:
    """Compute all component scores and the composite score of a track."""
    artist_ids = track.artist_ids

    source = bucket.weight(bucket_weights)
    affinity = max((profile.affinity(a) for a in artist_ids), default=0.0)
    genre = jaccard(seed_genres, profile.genres_of(artist_ids))

    popularity_diff = abs((track.popularity if track.popularity is not None else DEFAULT_POPULARITY) - seed_popularity)
    popularity = 1.0 - popularity_diff / 100

    recency = 1.0 if any(a in profile.short_term_artists for a in artist_ids) else 0.0

    score = (
        weights.source * source
        + weights.affinity * affinity
        + weights.genre * genre
        + weights.popularity * popularity
        + weights.recency * recency
    )

    return ScoredCandidate(
        track=track,
        bucket=bucket,
        source=source,
        affinity=affinity,
        genre=genre,
        popularity=popularity,
        recency=recency,
        score=score,
    )


def diversify(
    candidates: list[ScoredCandidate],
    limit: int,
    max_per_artist: int = 3,
    max_bucket_run: int = 3
) -> list[Track]:
    """
    Select up to `limit` tracks from candidates, best score first.

    Rules:
        - At most `max_per_artist` tracks per primary artist.
        - After `max_bucket_run` consecutive picks from one bucket, the next
          pick comes from another bucket if any candidate under the artist
          cap has one; otherwise the best remaining candidate is taken.

    Args:
        candidates: Scored candidates in any order.
        limit: Maximum tracks to return.
        max_per_artist: Per-artist cap.
        max_bucket_run: Run length that triggers the bucket switch.

    Returns:
        Selected tracks in pick order.
    """
    ranked = sorted(candidates, key=lambda c: c.score, reverse=True)
    used = [False] * len(ranked)
    artist_counts: dict[str, int] = {}
    picked: list[Track] = []
    run_bucket: SourceBucket | None = None
    run_length = 0

    while len(picked) < limit:
        want_switch = run_bucket is not None and run_length >= max_bucket_run
        choice = -1
        for index, candidate in enumerate(ranked):
            if used[index]:
                continue
            if artist_counts.get(candidate.primary_artist_id, 0) >= max_per_artist:
                continue
            if not want_switch or candidate.bucket is not run_bucket:
                choice = index
                break
            if choice == -1:
                # Fallback if no other bucket is available
                choice = index

        if choice == -1:
            break

        chosen = ranked[choice]
        used[choice] = True
        picked.append(chosen.track)
        artist_counts[chosen.primary_artist_id] = artist_counts.get(chosen.primary_artist_id, 0) + 1

        if chosen.bucket is run_bucket:
            run_length += 1
        else:
            run_bucket = chosen.bucket
            run_length = 1

    logger.debug(f"Diversified queue: {len(picked)} tracks ({len(artist_counts)} unique artists)")
    return picked
