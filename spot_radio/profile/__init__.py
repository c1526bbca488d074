"""
Profile module for spot-radio.

Usage:
    from spot_radio.profile import ProfileCache, DatabasePlayHistory
"""

from spot_radio.profile.cache import ProfileCache, ProfileQuality
from spot_radio.profile.history import DatabasePlayHistory, PlayedTrack, PlayHistorySource

__all__ = [
    "ProfileCache",
    "ProfileQuality",
    "DatabasePlayHistory",
    "PlayedTrack",
    "PlayHistorySource",
]
