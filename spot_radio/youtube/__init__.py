"""
YouTube module for spot-radio.

Provides YouTube Music search, the fuzzy matcher and the Track Resolver
that persists Spotify -> YouTube matches.

Usage:
    from spot_radio.youtube import TrackResolver, YouTubeMusicSearch
"""

from spot_radio.youtube.matcher import (
    TrackResolver,
    bigram_similarity,
    duration_score,
    match_score,
    normalize_title,
)
from spot_radio.youtube.models import MatchResult, PlayableItem, TrackMatch, YouTubeResult
from spot_radio.youtube.search import YouTubeMusicSearch

__all__ = [
    "TrackResolver",
    "YouTubeMusicSearch",
    "bigram_similarity",
    "duration_score",
    "match_score",
    "normalize_title",
    "MatchResult",
    "PlayableItem",
    "TrackMatch",
    "YouTubeResult",
]
