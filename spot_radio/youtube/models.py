"""
Data models for YouTube Music search results and matches.

YouTubeResult wraps one ytmusicapi search hit, TrackMatch is the persisted
Spotify -> YouTube mapping (one track_matches row), and PlayableItem is
what the queues hand to a player: a video id plus display metadata.
"""

from dataclasses import dataclass
from typing import Any


# ytmusicapi reports content types as "MUSIC_VIDEO_TYPE_ATV" etc.
VIDEO_TYPE_PREFIX = "MUSIC_VIDEO_TYPE_"

# Official studio audio
STUDIO_VIDEO_TYPE = "ATV"

YOUTUBE_MUSIC_WATCH_URL = "https://music.youtube.com/watch?v={video_id}"
YOUTUBE_THUMBNAIL_URL = "https://i.ytimg.com/vi/{video_id}/hqdefault.jpg"


def _parse_duration(duration_str: str | None) -> int:
    """
    Parse duration string to seconds.

    Args:
        duration_str: Duration in format "M:SS" or "H:MM:SS" or None.

    Returns:
        Duration in seconds, or 0 if parsing fails.

    Examples:
        "3:33" -> 213
        "1:02:15" -> 3735
        None -> 0
    """
    if not duration_str:
        return 0

    try:
        parts = [int(p) for p in duration_str.split(":")]
    except (ValueError, TypeError):
        return 0

    if len(parts) == 2:
        minutes, seconds = parts
        return minutes * 60 + seconds
    if len(parts) == 3:
        hours, minutes, seconds = parts
        return hours * 3600 + minutes * 60 + seconds
    return 0


def short_video_type(video_type: str | None) -> str | None:
    """
    Strip ytmusicapi's prefix from a content type.

    Examples:
        "MUSIC_VIDEO_TYPE_ATV" -> "ATV"
        "OMV" -> "OMV"
        None -> None
    """
    if not video_type:
        return None
    if video_type.startswith(VIDEO_TYPE_PREFIX):
        return video_type[len(VIDEO_TYPE_PREFIX):]
    return video_type


@dataclass(frozen=True)
class YouTubeResult:
    """
    Immutable representation of a YouTube Music search result.

    Attributes:
        video_id: YouTube video ID (11-character string).
                  Example: "dQw4w9WgXcQ"

        title: Song title as it appears on YouTube Music.

        artists: Artist names, primary first. May be empty.

        duration_seconds: Duration in seconds, 0 if unknown.

        result_type: "song" for YouTube Music songs, "video" for videos.

        music_video_type: Content type without prefix:
                          "ATV" official studio audio,
                          "OMV" official music video,
                          "UGC" user upload,
                          None if not reported.

        album: Album name if available.

        thumbnail_url: Largest thumbnail, None if none was returned.

        is_explicit: Explicit flag, None if not specified.

    Class Methods:
        from_ytmusic_result: Create from a ytmusicapi search result.
    """

    video_id: str
    title: str
    artists: tuple[str, ...] = ()
    duration_seconds: int = 0
    result_type: str = "song"
    music_video_type: str | None = None
    album: str | None = None
    thumbnail_url: str | None = None
    is_explicit: bool | None = None

    @property
    def primary_artist(self) -> str:
        return self.artists[0] if self.artists else ""

    @property
    def url(self) -> str:
        return YOUTUBE_MUSIC_WATCH_URL.format(video_id=self.video_id)

    @property
    def is_studio(self) -> bool:
        """True for official studio audio (ATV)."""
        return self.music_video_type == STUDIO_VIDEO_TYPE

    @classmethod
    def from_ytmusic_result(cls, result: dict[str, Any]) -> "YouTubeResult":
        """
        Create a YouTubeResult from a ytmusicapi search result.

        Args:
            result: Dictionary from ytmusicapi.YTMusic.search() response.

        Returns:
            YouTubeResult populated with data from the API response.

        Duration Parsing:
            ytmusicapi returns duration as "3:33" or "1:02:15" string and
            sometimes duration_seconds directly. The string wins when both
            are present.
        """
        artists_data = result.get("artists") or []
        artists = tuple(
            a["name"] for a in artists_data
            if isinstance(a, dict) and a.get("name")
        )

        duration_seconds = _parse_duration(result.get("duration"))
        if duration_seconds == 0 and result.get("duration_seconds") is not None:
            try:
                duration_seconds = int(result["duration_seconds"])
            except (ValueError, TypeError):
                pass

        album_data = result.get("album")
        if isinstance(album_data, dict):
            album = album_data.get("name")
        elif isinstance(album_data, str):
            album = album_data
        else:
            album = None

        thumbnails = [
            t for t in result.get("thumbnails") or []
            if isinstance(t, dict) and t.get("url")
        ]
        thumbnail_url = None
        if thumbnails:
            thumbnail_url = max(thumbnails, key=lambda t: t.get("width") or 0)["url"]

        return cls(
            video_id=result.get("videoId") or "",
            title=result.get("title") or "",
            artists=artists,
            duration_seconds=duration_seconds,
            result_type=result.get("resultType") or "song",
            music_video_type=short_video_type(result.get("videoType")),
            album=album,
            thumbnail_url=thumbnail_url,
            is_explicit=result.get("isExplicit"),
        )


@dataclass(frozen=True)
class TrackMatch:
    """
    A persisted Spotify -> YouTube Music mapping.

    Attributes:
        spotify_id: Spotify track id (primary key).
        youtube_id: Matched video id.
        title: Cached YouTube title.
        artist: Cached YouTube primary artist.
        match_score: Confidence; 1.0 for manual overrides.
        music_video_type: Content type of the matched video, None if unknown.
        cached_at_ms: When the row was written, Unix epoch milliseconds.
        is_manual_override: True if the user chose this match. Automatic
                            resolution never replaces such a row.
    """
    spotify_id: str
    youtube_id: str
    title: str
    artist: str
    match_score: float
    music_video_type: str | None = None
    cached_at_ms: int = 0
    is_manual_override: bool = False

    def to_row(self) -> dict[str, Any]:
        """Convert to a track_matches row for Database.upsert_match()."""
        return {
            "spotify_id": self.spotify_id,
            "youtube_id": self.youtube_id,
            "title": self.title,
            "artist": self.artist,
            "match_score": self.match_score,
            "music_video_type": self.music_video_type,
            "cached_at": self.cached_at_ms,
            "is_manual_override": self.is_manual_override,
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "TrackMatch":
        return cls(
            spotify_id=row["spotify_id"],
            youtube_id=row["youtube_id"],
            title=row.get("title") or "",
            artist=row.get("artist") or "",
            match_score=float(row.get("match_score") or 0.0),
            music_video_type=row.get("music_video_type"),
            cached_at_ms=int(row.get("cached_at") or 0),
            is_manual_override=bool(row.get("is_manual_override")),
        )


@dataclass(frozen=True)
class PlayableItem:
    """
    A queue entry ready for playback.

    The media id is the YouTube video id; turning it into a stream is the
    player's business.

    Attributes:
        media_id: YouTube video id.
        title: Display title (YouTube title, else the Spotify one).
        artist: Display artist (YouTube artist, else the Spotify ones).
        album: Spotify album name, None if unknown.
        artwork_url: Spotify cover, else YouTube thumbnail, else the
                     generic i.ytimg.com thumbnail.
        duration_ms: Spotify duration.
        spotify_id: Source Spotify track id.
        explicit: Spotify explicit flag.
        music_video_type: Content type of the video, None if unknown.
    """
    media_id: str
    title: str
    artist: str
    album: str | None
    artwork_url: str
    duration_ms: int
    spotify_id: str
    explicit: bool = False
    music_video_type: str | None = None

    @property
    def url(self) -> str:
        return YOUTUBE_MUSIC_WATCH_URL.format(video_id=self.media_id)


@dataclass(frozen=True)
class MatchResult:
    """
    Outcome of one automatic search for a Spotify track.

    Attributes:
        spotify_id: The Spotify track id that was searched.
        matched: Whether a candidate cleared the threshold.
        youtube_result: The accepted candidate, None if not matched.
        confidence: Score of the accepted candidate (bonus included), or of
                    the best rejected one.
        match_reason: Human-readable explanation.
    """
    spotify_id: str
    matched: bool
    youtube_result: YouTubeResult | None
    confidence: float
    match_reason: str

    @property
    def youtube_url(self) -> str | None:
        return self.youtube_result.url if self.youtube_result else None

    @classmethod
    def success(
        cls,
        spotify_id: str,
        youtube_result: YouTubeResult,
        confidence: float,
        reason: str
    ) -> "MatchResult":
        return cls(
            spotify_id=spotify_id,
            matched=True,
            youtube_result=youtube_result,
            confidence=confidence,
            match_reason=reason,
        )

    @classmethod
    def failure(cls, spotify_id: str, reason: str, confidence: float = 0.0) -> "MatchResult":
        return cls(
            spotify_id=spotify_id,
            matched=False,
            youtube_result=None,
            confidence=confidence,
            match_reason=reason,
        )
