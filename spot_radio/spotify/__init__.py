"""
Spotify module for spot-radio.

Provides the web-player client, its data models and the session manager
that keeps the access token fresh.

Usage:
    from spot_radio.spotify import SpotifyWebClient, SessionManager, Track
"""

from spot_radio.spotify.auth import SessionManager
from spot_radio.spotify.client import SpotifyWebClient
from spot_radio.spotify.models import (
    AccessToken,
    Artist,
    ArtistOverview,
    Image,
    Page,
    SimpleAlbum,
    SimpleArtist,
    Track,
    UserProfile,
)

__all__ = [
    "SpotifyWebClient",
    "SessionManager",
    "AccessToken",
    "Artist",
    "ArtistOverview",
    "Image",
    "Page",
    "SimpleAlbum",
    "SimpleArtist",
    "Track",
    "UserProfile",
]
