"""Test configuration and fixtures"""

import tempfile
from pathlib import Path

import pytest

from spot_radio.core.database import Database
from spot_radio.spotify.models import Image, SimpleAlbum, SimpleArtist, Track
from spot_radio.youtube.models import YouTubeResult


class FakeClock:
    """Manually advanced millisecond clock"""

    def __init__(self, start_ms: int = 1_700_000_000_000) -> None:
        self.ms = start_ms

    def now_ms(self) -> int:
        return self.ms

    def advance(self, seconds: float) -> None:
        self.ms += int(seconds * 1000)


def make_track(
    track_id: str,
    name: str | None = None,
    artist: str = "Test Artist",
    artist_id: str | None = None,
    album_id: str = "album_1",
    duration_ms: int = 210000,
    popularity: int | None = 50,
    extra_artists: tuple[tuple[str, str], ...] = ()
) -> Track:
    """Build a Track with sensible defaults"""
    artists = (SimpleArtist(id=artist_id or f"id_{artist.lower().replace(' ', '_')}", name=artist),)
    artists += tuple(SimpleArtist(id=aid, name=aname) for aid, aname in extra_artists)
    return Track(
        id=track_id,
        name=name or f"Song {track_id}",
        artists=artists,
        album=SimpleAlbum(
            id=album_id,
            name="Test Album",
            images=(
                Image(url="https://i.scdn.co/image/large", width=640, height=640),
                Image(url="https://i.scdn.co/image/medium", width=300, height=300),
                Image(url="https://i.scdn.co/image/small", width=64, height=64),
            ),
        ),
        duration_ms=duration_ms,
        popularity=popularity,
        uri=f"spotify:track:{track_id}",
    )


def make_result(
    video_id: str,
    title: str,
    artist: str,
    duration_seconds: int = 210,
    music_video_type: str | None = "ATV"
) -> YouTubeResult:
    """Build a YouTube Music search result"""
    return YouTubeResult(
        video_id=video_id,
        title=title,
        artists=(artist,),
        duration_seconds=duration_seconds,
        music_video_type=music_video_type,
    )


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def database(temp_dir):
    """Fresh SQLite database in a temporary directory"""
    db = Database(temp_dir / "test.db")
    yield db
    db.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sample_rest_track():
    """REST track object as returned by me/top/tracks"""
    return {
        "id": "test_track_123",
        "name": "Test Song",
        "uri": "spotify:track:test_track_123",
        "artists": [{"id": "artist_123", "name": "Test Artist", "uri": "spotify:artist:artist_123"}],
        "album": {
            "id": "album_123",
            "name": "Test Album",
            "uri": "spotify:album:album_123",
            "images": [
                {"url": "https://i.scdn.co/image/640", "width": 640, "height": 640},
                {"url": "https://i.scdn.co/image/300", "width": 300, "height": 300},
            ],
        },
        "duration_ms": 210000,  # 3:30
        "explicit": False,
        "popularity": 75,
    }


@pytest.fixture
def sample_gql_track():
    """GQL track object as found in fetchLibraryTracks items"""
    return {
        "__typename": "Track",
        "uri": "spotify:track:gql_track_1",
        "name": "Gql Song",
        "duration": {"totalMilliseconds": 185000},
        "contentRating": {"label": "EXPLICIT"},
        "artists": {
            "items": [
                {"uri": "spotify:artist:gql_artist_1", "profile": {"name": "Gql Artist"}},
                {"uri": "spotify:artist:gql_artist_2", "profile": {"name": "Guest"}},
            ]
        },
        "albumOfTrack": {
            "uri": "spotify:album:gql_album_1",
            "name": "Gql Album",
            "coverArt": {
                "sources": [
                    {"url": "https://i.scdn.co/image/gql640", "width": 640, "height": 640},
                ]
            },
        },
    }
