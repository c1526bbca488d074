"""Test taste profile, scoring and the recommendation engine"""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from spot_radio.core.config import BucketWeights, CacheConfig, RecommendConfig, ScoreWeights
from spot_radio.core.exceptions import ErrorKind, SpotifyError
from spot_radio.core.result import FetchResult
from spot_radio.profile.cache import ProfileCache
from spot_radio.recommend.engine import RecommendationEngine
from spot_radio.recommend.scoring import (
    ScoredCandidate,
    SourceBucket,
    diversify,
    jaccard,
    rank_genre_neighbors,
    score_candidate,
)
from spot_radio.recommend.taste import LONG_TERM, MEDIUM_TERM, SHORT_TERM, build_taste_profile
from spot_radio.spotify.models import Artist, Page

from conftest import make_track


RATE_LIMITED = FetchResult.failure(SpotifyError("429", kind=ErrorKind.RATE_LIMITED, status=429))


def artist(artist_id: str, *genres: str) -> Artist:
    return Artist(id=artist_id, name=artist_id.upper(), genres=genres)


def candidate(track_id: str, artist_id: str, bucket: SourceBucket, score: float) -> ScoredCandidate:
    return ScoredCandidate(
        track=make_track(track_id, artist_id=artist_id, artist=artist_id),
        bucket=bucket, source=0, affinity=0, genre=0, popularity=0, recency=0, score=score,
    )


class TestTasteProfile:
    """Test build_taste_profile()"""

    def test_affinity_normalized_with_time_weights(self):
        profile = build_taste_profile(
            {MEDIUM_TERM: [make_track("t1", artist_id="c", artist="C")]},
            {SHORT_TERM: [artist("a", "rock"), artist("b")]},
        )
        assert profile.affinity("a") == pytest.approx(1.0)
        assert profile.affinity("b") == pytest.approx(0.5)
        assert profile.affinity("c") == pytest.approx(1 / 3)
        assert profile.affinity("unknown") == 0.0
        assert profile.artist_genres == {"a": frozenset({"rock"})}
        assert profile.short_term_artists == frozenset({"a", "b"})

    def test_same_artist_sums_across_ranges(self):
        profile = build_taste_profile({}, {
            SHORT_TERM: [artist("a"), artist("b")],
            LONG_TERM: [artist("b")],
        })
        # a = 3.0, b = 1.5 + 1.0
        assert profile.affinity("a") == pytest.approx(1.0)
        assert profile.affinity("b") == pytest.approx(2.5 / 3.0)

    def test_pool_deduplicated_short_term_first(self):
        shared = make_track("shared")
        profile = build_taste_profile(
            {
                LONG_TERM: [make_track("old"), shared],
                SHORT_TERM: [shared, make_track("new")],
            },
            {},
        )
        assert [w.track.id for w in profile.track_pool] == ["shared", "new", "old"]
        assert profile.track_pool[0].weight == 3.0

    def test_empty_inputs(self):
        assert build_taste_profile({}, {}).is_empty


class TestScoring:
    """Test candidate scoring"""

    def test_jaccard(self):
        assert jaccard({"rock", "pop"}, {"rock"}) == 0.5
        assert jaccard(set(), {"rock"}) == 0.0

    def test_score_components(self):
        profile = build_taste_profile({}, {SHORT_TERM: [artist("x", "rock")]})
        track = make_track("t", artist_id="x", popularity=40)

        scored = score_candidate(
            track, SourceBucket.SAME_ALBUM, profile, 60, frozenset({"rock"}),
            ScoreWeights(), BucketWeights(),
        )

        assert scored.source == 0.85
        assert scored.affinity == 1.0
        assert scored.genre == 1.0
        assert scored.popularity == pytest.approx(0.8)
        assert scored.recency == 1.0
        assert scored.score == pytest.approx(0.25 * 0.85 + 0.30 + 0.20 + 0.10 * 0.8 + 0.15)

    def test_unknown_popularity_counts_as_fifty(self):
        profile = build_taste_profile({}, {})
        track = make_track("t", popularity=None)

        scored = score_candidate(
            track, SourceBucket.USER_TOP, profile, 70, frozenset(), ScoreWeights(), BucketWeights()
        )

        assert scored.popularity == pytest.approx(0.8)
        assert scored.affinity == 0.0
        assert scored.recency == 0.0

    def test_genre_neighbors(self):
        profile = build_taste_profile({}, {MEDIUM_TERM: [
            artist("seed", "rock"), artist("close", "rock", "indie"),
            artist("far", "jazz"), artist("other", "rock"),
        ]})

        neighbors = rank_genre_neighbors(profile, ["seed"], frozenset({"rock"}), count=6, floor=0.05)

        # other: 0.6 * 1.0 + 0.4 * 0.25, close: 0.6 * 0.5 + 0.4 * 0.75, far: 0.4 * 0.5
        assert neighbors == ["other", "close", "far"]

    def test_genre_neighbor_floor(self):
        profile = build_taste_profile({}, {MEDIUM_TERM: [artist("seed", "rock"), artist("far", "jazz")]})

        assert rank_genre_neighbors(profile, ["seed"], frozenset({"rock"}), floor=0.5) == []

    def test_genre_neighbors_without_seed_genres_uses_affinity(self):
        profile = build_taste_profile({}, {SHORT_TERM: [artist("a"), artist("b"), artist("c")]})

        assert rank_genre_neighbors(profile, ["a"], frozenset(), count=1) == ["b"]


class TestDiversify:
    """Test diversify()"""

    def test_per_artist_cap(self):
        candidates = [candidate(f"x{i}", "x", SourceBucket.SEED_ARTIST, 1.0 - i / 100) for i in range(5)]
        candidates.append(candidate("y0", "y", SourceBucket.SEED_ARTIST, 0.1))

        picked = diversify(candidates, limit=10, max_per_artist=3, max_bucket_run=10)

        assert [t.id for t in picked] == ["x0", "x1", "x2", "y0"]

    def test_bucket_run_is_broken(self):
        candidates = [
            candidate(f"s{i}", f"artist{i}", SourceBucket.SEED_ARTIST, 0.9 - i / 100) for i in range(4)
        ] + [candidate("u0", "user_artist", SourceBucket.USER_TOP, 0.5)]

        picked = diversify(candidates, limit=5, max_per_artist=3, max_bucket_run=3)

        assert [t.id for t in picked] == ["s0", "s1", "s2", "u0", "s3"]

    def test_single_bucket_falls_back_to_best(self):
        candidates = [
            candidate(f"s{i}", f"artist{i}", SourceBucket.SEED_ARTIST, 0.9 - i / 100) for i in range(5)
        ]

        picked = diversify(candidates, limit=5, max_per_artist=3, max_bucket_run=2)

        assert [t.id for t in picked] == ["s0", "s1", "s2", "s3", "s4"]

    def test_limit(self):
        candidates = [candidate(f"s{i}", f"a{i}", SourceBucket.USER_TOP, 0.5) for i in range(10)]
        assert len(diversify(candidates, limit=4)) == 4


def make_engine_client(top_tracks_by_artist, album=None, artists_by_range=None, tracks_by_range=None):
    client = Mock()
    artists_by_range = artists_by_range or {}
    tracks_by_range = tracks_by_range or {}

    async def top_artists(time_range, limit=50, retry=True):
        return FetchResult.success(artists_by_range.get(time_range, []))

    async def top_tracks(time_range, limit=50, retry=True):
        return FetchResult.success(tracks_by_range.get(time_range, []))

    async def artist_top_tracks(artist_id):
        if artist_id in top_tracks_by_artist:
            return FetchResult.success(top_tracks_by_artist[artist_id])
        return FetchResult.failure(SpotifyError("no page", kind=ErrorKind.HTTP, status=404))

    client.top_artists = AsyncMock(side_effect=top_artists)
    client.top_tracks = AsyncMock(side_effect=top_tracks)
    client.artist_top_tracks = AsyncMock(side_effect=artist_top_tracks)
    client.album_tracks = AsyncMock(return_value=FetchResult.success(album or []))
    return client


class TestRecommendationEngine:
    """Test RecommendationEngine"""

    @pytest.fixture
    def seed(self):
        return make_track("song_a", name="Song A", artist="X", artist_id="x",
                          album_id="alb", duration_ms=200000, popularity=60)

    @pytest.fixture
    def client(self, seed):
        x_tracks = [make_track(f"x_top_{i}", artist="X", artist_id="x", popularity=60) for i in range(5)]
        y_tracks = [make_track("y_top_0", artist="Y", artist_id="y", popularity=60)]
        return make_engine_client(
            {"x": [seed] + x_tracks, "y": y_tracks},
            album=[seed],
            artists_by_range={SHORT_TERM: [artist("x", "rock"), artist("y", "rock")]},
        )

    @pytest.mark.asyncio
    async def test_seed_artist_ranks_above_genre_neighbor(self, client, seed, clock):
        engine = RecommendationEngine(client, None, RecommendConfig(), now_ms=clock.now_ms)

        tracks = await engine.get_recommendations(seed, limit=10)
        ids = [t.id for t in tracks]

        assert ids.index("x_top_0") < ids.index("y_top_0")
        assert "song_a" not in ids
        assert sum(1 for t in tracks if t.primary_artist.id == "x") == 3
        assert ids == ["x_top_0", "x_top_1", "x_top_2", "y_top_0"]

    @pytest.mark.asyncio
    async def test_profile_cached_until_ttl(self, client, seed, clock):
        engine = RecommendationEngine(client, None, RecommendConfig(profile_ttl=60), now_ms=clock.now_ms)

        await engine.get_recommendations(seed)
        await engine.get_recommendations(seed)
        assert client.top_artists.await_count == 3

        clock.advance(61)
        await engine.get_recommendations(seed)
        assert client.top_artists.await_count == 6

        engine.invalidate_profile()
        assert engine.profile is None
        await engine.get_recommendations(seed)
        assert client.top_artists.await_count == 9

    @pytest.mark.asyncio
    async def test_falls_back_to_profile_cache(self, seed, clock):
        client = make_engine_client({"x": [make_track("x_top_0", artist_id="x", artist="X")]})
        client.top_tracks = AsyncMock(return_value=RATE_LIMITED)
        client.top_artists = AsyncMock(return_value=RATE_LIMITED)
        cache = Mock()
        cache.rest_cooldown_active = False
        cache.rest_attempt = AsyncMock(return_value=None)
        cache.get_top_tracks = AsyncMock(return_value=[make_track("liked", artist_id="z", artist="Z")])
        cache.get_top_artists = AsyncMock(return_value=[artist("x")])
        engine = RecommendationEngine(client, cache, RecommendConfig(), now_ms=clock.now_ms)

        tracks = await engine.get_recommendations(seed)

        assert {t.id for t in tracks} == {"x_top_0", "liked"}
        assert engine.profile.short_term_artists == frozenset()
        cache.get_top_tracks.assert_awaited_once_with(50)
        assert cache.rest_attempt.await_count == 6

    @pytest.mark.asyncio
    async def test_no_profile_means_no_recommendations(self, seed, clock):
        client = make_engine_client({})
        client.top_tracks = AsyncMock(return_value=RATE_LIMITED)
        client.top_artists = AsyncMock(return_value=RATE_LIMITED)
        cache = Mock()
        cache.rest_cooldown_active = True
        cache.get_top_tracks = AsyncMock(return_value=[])
        cache.get_top_artists = AsyncMock(return_value=[])
        engine = RecommendationEngine(client, cache, RecommendConfig(), now_ms=clock.now_ms)

        assert await engine.get_recommendations(seed) == []
        assert await engine.ensure_profile_loaded() is False
        client.artist_top_tracks.assert_not_called()
        client.top_tracks.assert_not_called()

    @pytest.mark.asyncio
    async def test_partial_top_list_failure_still_builds(self, seed, clock):
        client = make_engine_client(
            {"x": [make_track("x_top_0", artist_id="x", artist="X")]},
            artists_by_range={MEDIUM_TERM: [artist("x", "rock")]},
        )
        original = client.top_tracks.side_effect

        async def flaky(time_range, limit=50, retry=True):
            if time_range == SHORT_TERM:
                return RATE_LIMITED
            return await original(time_range, limit, retry=retry)

        client.top_tracks = AsyncMock(side_effect=flaky)
        engine = RecommendationEngine(client, None, RecommendConfig(), now_ms=clock.now_ms)

        assert await engine.ensure_profile_loaded() is True
        assert engine.profile.affinity("x") == 1.0

    @pytest.mark.asyncio
    async def test_top_lists_are_single_attempts(self, client, seed, clock):
        engine = RecommendationEngine(client, None, RecommendConfig(), now_ms=clock.now_ms)

        await engine.ensure_profile_loaded()

        calls = client.top_tracks.await_args_list + client.top_artists.await_args_list
        assert len(calls) == 6
        assert all(c.kwargs["retry"] is False for c in calls)

    @pytest.mark.asyncio
    async def test_slow_top_list_is_abandoned(self, seed, clock):
        client = make_engine_client({}, artists_by_range={MEDIUM_TERM: [artist("x", "rock")]})

        async def hanging(time_range, limit=50, retry=True):
            await asyncio.sleep(1)
            return FetchResult.success([make_track("late")])

        client.top_tracks = AsyncMock(side_effect=hanging)
        engine = RecommendationEngine(
            client, None, RecommendConfig(profile_fetch_timeout=0.01), now_ms=clock.now_ms
        )

        assert await engine.ensure_profile_loaded() is True
        assert engine.profile.affinity("x") == 1.0
        assert engine.profile.track_pool == ()

    @pytest.mark.asyncio
    async def test_rate_limits_start_the_cache_cooldown(self, seed, database, clock):
        client = make_engine_client({})
        client.top_tracks = AsyncMock(return_value=RATE_LIMITED)
        client.top_artists = AsyncMock(return_value=RATE_LIMITED)
        client.liked_songs = AsyncMock(return_value=FetchResult.success(Page(
            items=(make_track("liked", artist_id="z", artist="Z"),), total=1, offset=0, limit=100,
        )))
        client.artist = AsyncMock(return_value=RATE_LIMITED)
        cache = ProfileCache(client, database, None, CacheConfig(), now_ms=clock.now_ms)
        engine = RecommendationEngine(client, cache, RecommendConfig(), now_ms=clock.now_ms)

        tracks = await engine.get_recommendations(seed)

        assert [t.id for t in tracks] == ["liked"]
        assert cache.rest_cooldown_active
        # The cache saw the cooldown and skipped its own REST tier
        assert client.top_tracks.await_count == 3
        assert client.top_artists.await_count == 3

    @pytest.mark.asyncio
    async def test_requests_run_through_the_session(self, client, seed, clock):
        async def passthrough(request):
            return await request()

        session = Mock()
        session.authorized = AsyncMock(side_effect=passthrough)
        engine = RecommendationEngine(client, None, RecommendConfig(), session=session, now_ms=clock.now_ms)

        assert await engine.get_recommendations(seed)

        sent = sum(mock.await_count for mock in (
            client.top_tracks, client.top_artists, client.artist_top_tracks, client.album_tracks,
        ))
        assert session.authorized.await_count == sent
