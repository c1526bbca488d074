"""
spot-radio: Personalized Spotify radio queues, played from YouTube Music.

This package reads a user's listening taste from Spotify's web-player
endpoints, builds recommendation queues from it and resolves every track
to its YouTube Music equivalent.

Architecture:
    spotify/    - Web-player client (GraphQL + REST) and the Session Manager
                  that refreshes the access token exactly once under a lock
    profile/    - 3-tier Profile Cache: Liked Songs, Top Tracks/Artists,
                  local play history; followed and related artists
    recommend/  - Taste profile, candidate scoring and the diversified
                  Recommendation Engine
    youtube/    - YouTube Music search, fuzzy matcher and the persistent
                  Track Resolver with manual overrides
    queue/      - Radio (seeded) and Liked Songs queues with fallback
    core/       - Configuration, database, logging, exceptions, results
    utils/      - Id extraction and formatting helpers
    cli.py      - Command-line interface

Usage:
    Command Line:
        spot-radio login --sp-dc <cookie>
        spot-radio radio "https://open.spotify.com/track/..."
        spot-radio liked --pages 2
        spot-radio override <track> "https://music.youtube.com/watch?v=..."

    Python API:
        from spot_radio.core import load_config, Database, setup_logging
        from spot_radio.spotify import SpotifyWebClient, SessionManager
        from spot_radio.profile import ProfileCache, DatabasePlayHistory
        from spot_radio.recommend import RecommendationEngine
        from spot_radio.youtube import TrackResolver, YouTubeMusicSearch
        from spot_radio.queue import RadioQueue

        config = load_config()
        setup_logging(config.storage.log_directory)
        database = Database(config.storage.database)

        async with SpotifyWebClient(config.spotify) as client:
            session = SessionManager(database, client)
            await session.ensure_authenticated()

            cache = ProfileCache(client, database, DatabasePlayHistory(database), config.cache, session)
            engine = RecommendationEngine(client, cache, config.recommend, session)
            resolver = TrackResolver(database, YouTubeMusicSearch(), config.match)

            queue = RadioQueue(seed_track, engine, resolver, client, config.queue, session=session)
            first = await queue.start()

Dependencies:
    - aiohttp: Spotify HTTP client
    - asyncio-throttle: Client-side request rate limit
    - ytmusicapi: YouTube Music search
    - rich-click: CLI framework with colored help
    - rich: Progress display
    - tqdm, colorama: Console logging
    - pyyaml: Configuration file parsing
    - python-dotenv: Session cookies from .env
"""

__version__ = "0.4.0"
__author__ = "spot-radio"
__license__ = "MIT"

# Convenience imports for common usage
from spot_radio.core import (
    Config,
    ConfigError,
    Database,
    DatabaseError,
    ErrorKind,
    FetchResult,
    SpotifyError,
    SpotRadioError,
    YouTubeError,
    get_logger,
    load_config,
    setup_logging,
)
from spot_radio.spotify import Artist, SessionManager, SpotifyWebClient, Track

__all__ = [
    # Version
    "__version__",
    # Core
    "Config",
    "load_config",
    "Database",
    "setup_logging",
    "get_logger",
    "FetchResult",
    # Exceptions
    "SpotRadioError",
    "ConfigError",
    "DatabaseError",
    "SpotifyError",
    "YouTubeError",
    "ErrorKind",
    # Spotify
    "SpotifyWebClient",
    "SessionManager",
    "Track",
    "Artist",
]
