"""
Utility functions for spot-radio.

This module provides small helpers used by the CLI:
    - Spotify / YouTube id extraction from URLs
    - Duration formatting
    - Directory creation

Usage:
    from spot_radio.utils import extract_spotify_id, format_duration
"""

from pathlib import Path
from urllib.parse import parse_qs, urlparse

from spot_radio.core.logger import get_logger

logger = get_logger(__name__)


def ensure_directory(path: Path) -> Path:
    """
    Create a directory (and parents) if it does not exist.

    Returns:
        The same path, for chaining.
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def extract_spotify_id(url_or_id: str, kind: str = "track") -> str:
    """
    Extract Spotify ID from a URL or return ID as-is.

    Handles various Spotify URL formats:
        - https://open.spotify.com/track/ID
        - https://open.spotify.com/intl-it/track/ID?si=xxx
        - spotify:track:ID
        - Just the ID

    Args:
        url_or_id: Spotify URL, URI or bare ID.
        kind: Expected object type ("track", "artist", "album").

    Returns:
        The Spotify ID.

    Raises:
        ValueError: If a URL or URI points to a different object type.

    Examples:
        extract_spotify_id("https://open.spotify.com/track/abc123?si=xyz")
        # Returns: "abc123"

        extract_spotify_id("spotify:track:abc123")
        # Returns: "abc123"
    """
    value = url_or_id.strip()

    if value.startswith("spotify:"):
        parts = value.split(":")
        if len(parts) != 3 or parts[1] != kind:
            raise ValueError(f"Not a Spotify {kind} URI: {url_or_id}")
        return parts[2]

    if "spotify.com" in value:
        segments = [s for s in urlparse(value).path.split("/") if s]
        if kind not in segments or segments.index(kind) == len(segments) - 1:
            raise ValueError(f"Not a Spotify {kind} URL: {url_or_id}")
        return segments[segments.index(kind) + 1]

    return value


def extract_youtube_id(url_or_id: str) -> str:
    """
    Extract a video id from a YouTube / YouTube Music URL or return it as-is.

    Examples:
        extract_youtube_id("https://music.youtube.com/watch?v=dQw4w9WgXcQ&si=x")
        # Returns: "dQw4w9WgXcQ"

        extract_youtube_id("https://youtu.be/dQw4w9WgXcQ")
        # Returns: "dQw4w9WgXcQ"
    """
    value = url_or_id.strip()
    if "://" not in value:
        return value

    parsed = urlparse(value)
    if parsed.netloc.endswith("youtu.be"):
        return parsed.path.lstrip("/")

    video_ids = parse_qs(parsed.query).get("v")
    if not video_ids:
        raise ValueError(f"No video id in URL: {url_or_id}")
    return video_ids[0]


def format_duration(seconds: int) -> str:
    """
    Format duration in seconds to human-readable string.

    Examples:
        format_duration(225)   # "3:45"
        format_duration(3750)  # "1:02:30"
        format_duration(45)    # "0:45"
    """
    seconds = max(0, int(seconds))
    if seconds < 3600:
        minutes = seconds // 60
        secs = seconds % 60
        return f"{minutes}:{secs:02d}"
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    secs = seconds % 60
    return f"{hours}:{minutes:02d}:{secs:02d}"
