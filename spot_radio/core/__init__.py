"""
Core module for spot-radio.

This module provides the foundational components used throughout the application:
    - exceptions: Custom exception classes and the ErrorKind taxonomy
    - result: FetchResult success/failure values for network calls
    - config: Configuration loading and validation
    - database: Thread-safe SQLite storage (key/value, matches, play history)
    - signals: Observable state for re-login and fallback banners
    - logger: Logging system with multiple outputs

Usage:
    from spot_radio.core import (
        Config, load_config,
        Database,
        setup_logging, get_logger,
        SpotRadioError, ConfigError, DatabaseError
    )
"""

from spot_radio.core.config import (
    BucketWeights,
    CacheConfig,
    Config,
    MatchConfig,
    QueueConfig,
    RecommendConfig,
    ScoreWeights,
    SpotifyConfig,
    StorageConfig,
    load_config,
)
from spot_radio.core.database import Database
from spot_radio.core.exceptions import (
    ConfigError,
    DatabaseError,
    ErrorKind,
    SpotifyError,
    SpotRadioError,
    YouTubeError,
)
from spot_radio.core.logger import (
    get_logger,
    log_unmatched_track,
    setup_logging,
    shutdown_logging,
)
from spot_radio.core.result import FetchResult
from spot_radio.core.signals import FallbackState, StateSignal

__all__ = [
    # Config
    "Config",
    "SpotifyConfig",
    "StorageConfig",
    "CacheConfig",
    "RecommendConfig",
    "ScoreWeights",
    "BucketWeights",
    "MatchConfig",
    "QueueConfig",
    "load_config",
    # Database
    "Database",
    # Exceptions
    "SpotRadioError",
    "ConfigError",
    "DatabaseError",
    "SpotifyError",
    "YouTubeError",
    "ErrorKind",
    # Results and signals
    "FetchResult",
    "StateSignal",
    "FallbackState",
    # Logger
    "setup_logging",
    "get_logger",
    "log_unmatched_track",
    "shutdown_logging",
]
