"""
Configuration management for spot-radio.

This module handles loading, validating, and providing access to the
application configuration stored in config.yaml.

Every numeric constant used by the cache, the recommendation engine and
the resolver lives here as a default. The values were tuned against
Spotify's undocumented rate-limit behavior, so they are exposed as
settings rather than baked into the algorithms.

Configuration File Location:
    config.yaml in the current working directory, or any path passed with
    --config. When no path is given and config.yaml does not exist, all
    defaults are used.

Environment Overrides (read from the process environment and .env):
    SPOT_RADIO_SP_DC    sp_dc session cookie used by `spot-radio login`
    SPOT_RADIO_SP_KEY   sp_key session cookie used by `spot-radio login`
    SPOT_RADIO_DB_PATH  database file location

Example config.yaml:
    spotify:
      max_retries: 3
      max_retry_after: 10

    storage:
      database: "~/.spot-radio/spot_radio.db"

    cache:
      full_ttl: 21600       # 6 hours
      degraded_ttl: 1800    # 30 minutes
      rest_cooldown: 300

    recommend:
      max_tracks_per_artist: 3
      weights:
        source: 0.25
        affinity: 0.30

    match:
      threshold: 0.35
      hidden_video_types: ["UGC"]

    queue:
      batch_size: 10
      recommendation_timeout: 4
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from spot_radio.core.exceptions import ConfigError


# Default configuration file name (looked up in current working directory)
CONFIG_FILENAME = "config.yaml"

# Default location for the database and log files
DEFAULT_DATA_DIR = Path("~/.spot-radio")

# Environment variable names
ENV_SP_DC = "SPOT_RADIO_SP_DC"
ENV_SP_KEY = "SPOT_RADIO_SP_KEY"
ENV_DB_PATH = "SPOT_RADIO_DB_PATH"

# Content types a user may hide from resolution
KNOWN_VIDEO_TYPES = ("ATV", "OMV", "UGC", "OFFICIAL_SOURCE_MUSIC", "PODCAST_EPISODE")


@dataclass(frozen=True)
class SpotifyConfig:
    """
    Spotify session and request settings.

    Attributes:
        sp_dc: Optional sp_dc session cookie (normally from the environment).
        sp_key: Optional sp_key session cookie.
        max_retries: Attempts per request before giving up. Default: 3.
        max_retry_after: Largest Retry-After (seconds) honoured inside a
                         request. A longer wait fails the call immediately
                         so the caller can enter its cooldown instead.
        request_timeout: Total HTTP timeout per attempt in seconds.
        requests_per_second: Client-side throttle shared by all requests.
    """
    sp_dc: str | None = None
    sp_key: str | None = None
    max_retries: int = 3
    max_retry_after: float = 10.0
    request_timeout: float = 15.0
    requests_per_second: int = 10


@dataclass(frozen=True)
class StorageConfig:
    """
    File locations.

    Attributes:
        database: SQLite file holding the key/value store, the match cache
                  and the local play history.
        log_directory: Directory for log files.
    """
    database: Path = DEFAULT_DATA_DIR.expanduser() / "spot_radio.db"
    log_directory: Path = DEFAULT_DATA_DIR.expanduser() / "logs"


@dataclass(frozen=True)
class CacheConfig:
    """
    Profile cache windows. All durations are in seconds.

    Attributes:
        full_ttl: Lifetime of a profile built with Tier 2 data.
        degraded_ttl: Lifetime of a profile built without Tier 2 data.
                      Shorter, so a degraded cache heals itself sooner.
        followed_ttl: Lifetime of the followed-artists entry.
        related_ttl: Lifetime of the related-artist-names entry.
        rest_cooldown: Pause on the Tier 2 path after a 429/timeout.
        tier2_timeout: Hard timeout per Tier 2 sub-request.
        history_window_days: How far back local play history is read.
        related_seed_limit: Followed artists queried for related names.
    """
    full_ttl: float = 6 * 60 * 60
    degraded_ttl: float = 30 * 60
    followed_ttl: float = 24 * 60 * 60
    related_ttl: float = 7 * 24 * 60 * 60
    rest_cooldown: float = 5 * 60
    tier2_timeout: float = 8.0
    history_window_days: int = 90
    related_seed_limit: int = 10


@dataclass(frozen=True)
class ScoreWeights:
    """Weights of the composite candidate score. They sum to 1.0 by default."""
    source: float = 0.25
    affinity: float = 0.30
    genre: float = 0.20
    popularity: float = 0.10
    recency: float = 0.15


@dataclass(frozen=True)
class BucketWeights:
    """Source relevance of each candidate bucket."""
    seed_artist: float = 1.0
    same_album: float = 0.85
    genre_neighbor: float = 0.65
    user_top: float = 0.45


@dataclass(frozen=True)
class RecommendConfig:
    """
    Recommendation engine settings.

    Attributes:
        profile_ttl: Lifetime of the taste profile in seconds.
        max_tracks_per_artist: Cap per primary artist in one result set.
        max_bucket_run: Consecutive picks from one bucket before another
                        bucket is preferred.
        genre_neighbor_count: Neighbor artists whose top tracks are used.
        genre_similarity_floor: Minimum neighbor similarity.
        seed_artist_limit: Seed track artists whose top tracks are used.
        profile_fetch_timeout: Seconds each top tracks/artists request may
                               take while the taste profile is built.
                               Keep it below queue.recommendation_timeout.
        weights: Composite score weights.
        bucket_weights: Source relevance per bucket.
    """
    profile_ttl: float = 30 * 60
    max_tracks_per_artist: int = 3
    max_bucket_run: int = 3
    genre_neighbor_count: int = 6
    genre_similarity_floor: float = 0.05
    seed_artist_limit: int = 2
    profile_fetch_timeout: float = 3.0
    weights: ScoreWeights = field(default_factory=ScoreWeights)
    bucket_weights: BucketWeights = field(default_factory=BucketWeights)


@dataclass(frozen=True)
class MatchConfig:
    """
    YouTube Music matching settings.

    Attributes:
        threshold: Minimum score for a candidate to be accepted.
        studio_bonus: Added to candidates flagged as studio audio (ATV).
        hidden_video_types: Content types the user chose to hide.
        search_limit: Results requested per search.
    """
    threshold: float = 0.35
    studio_bonus: float = 0.05
    hidden_video_types: tuple[str, ...] = ()
    search_limit: int = 20


@dataclass(frozen=True)
class QueueConfig:
    """
    Queue building settings.

    Attributes:
        batch_size: Tracks resolved concurrently per batch.
        recommendation_timeout: Seconds to wait for recommendations before
                                building the fallback queue.
        recommendation_limit: Tracks requested from the engine.
        liked_page_size: Liked songs fetched per page.
    """
    batch_size: int = 10
    recommendation_timeout: float = 4.0
    recommendation_limit: int = 50
    liked_page_size: int = 50


@dataclass(frozen=True)
class Config:
    """
    Complete application configuration.

    This is the main configuration object that aggregates all configuration
    sections. It is created by load_config() and should be treated as
    immutable (frozen dataclass).

    Example:
        config = load_config()
        print(f"Database: {config.storage.database}")
        print(f"Match threshold: {config.match.threshold}")
    """
    spotify: SpotifyConfig = field(default_factory=SpotifyConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    recommend: RecommendConfig = field(default_factory=RecommendConfig)
    match: MatchConfig = field(default_factory=MatchConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)


def load_config(config_path: Path | None = None) -> Config:
    """
    Load and validate configuration from config.yaml and the environment.

    Args:
        config_path: Optional explicit path to config file.
                     If None, looks for config.yaml in current working directory
                     and falls back to defaults when it does not exist.

    Returns:
        Config: A frozen dataclass containing all configuration values.

    Raises:
        ConfigError: If an explicit config file is not found, has invalid YAML
                     syntax, or contains invalid values. The error message will
                     indicate the specific problem.

    Behavior:
        1. Load .env into the process environment (existing variables win)
        2. Locate config file (explicit path or CWD/config.yaml)
        3. Read and parse YAML content (empty file = all defaults)
        4. Parse every section, applying defaults for missing keys
        5. Apply environment overrides
        6. Create and return frozen Config object
    """
    load_dotenv()

    explicit = config_path is not None
    if config_path is None:
        config_path = Path.cwd() / CONFIG_FILENAME

    raw_config: dict[str, Any] = {}
    if config_path.exists():
        raw_config = _read_yaml(config_path)
    elif explicit:
        raise ConfigError(
            f"Configuration file not found: {config_path}",
            details={"file_path": str(config_path)}
        )

    return Config(
        spotify=_parse_spotify_config(_section(raw_config, "spotify")),
        storage=_parse_storage_config(_section(raw_config, "storage")),
        cache=_parse_cache_config(_section(raw_config, "cache")),
        recommend=_parse_recommend_config(_section(raw_config, "recommend")),
        match=_parse_match_config(_section(raw_config, "match")),
        queue=_parse_queue_config(_section(raw_config, "queue")),
    )


def _read_yaml(config_path: Path) -> dict[str, Any]:
    """Read the YAML file and make sure it holds a dictionary."""
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            content = f.read()
    except OSError as e:
        raise ConfigError(
            f"Failed to read configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    try:
        raw_config = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Invalid YAML syntax in configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    if raw_config is None:
        return {}

    if not isinstance(raw_config, dict):
        raise ConfigError(
            "Configuration file must contain a YAML dictionary",
            details={"file_path": str(config_path)}
        )

    return raw_config


def _section(raw_config: dict[str, Any], name: str) -> dict[str, Any]:
    """Return a section dictionary, {} if missing."""
    section = raw_config.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigError(
            f"Section '{name}' must be a dictionary",
            details={"section": name}
        )
    return section


def _number(
    section: dict[str, Any],
    field_name: str,
    default: float,
    *,
    integer: bool = False,
    allow_zero: bool = False,
    maximum: float | None = None
) -> Any:
    """
    Read a numeric field with validation.

    Args:
        section: Section dictionary.
        field_name: Dotted field name, e.g. "cache.full_ttl". The part after
                    the last dot is the key inside the section.
        default: Value used when the key is missing or null.
        integer: Require an int.
        allow_zero: Accept 0 as a valid value.
        maximum: Optional inclusive upper bound.

    Raises:
        ConfigError: If the value has the wrong type or is out of range.
    """
    key = field_name.rsplit(".", 1)[-1]
    value = section.get(key)
    if value is None:
        return default

    valid_type = isinstance(value, int) if integer else isinstance(value, (int, float))
    if isinstance(value, bool) or not valid_type:
        kind = "an integer" if integer else "a number"
        raise ConfigError(
            f"'{field_name}' must be {kind}",
            details={"field": field_name, "value": value}
        )

    if value < 0 or (value == 0 and not allow_zero):
        raise ConfigError(
            f"'{field_name}' must be {'non-negative' if allow_zero else 'positive'}",
            details={"field": field_name, "value": value}
        )

    if maximum is not None and value > maximum:
        raise ConfigError(
            f"'{field_name}' must be at most {maximum}",
            details={"field": field_name, "value": value}
        )

    return int(value) if integer else float(value)


def _optional_string(section: dict[str, Any], field_name: str) -> str | None:
    key = field_name.rsplit(".", 1)[-1]
    value = section.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigError(
            f"'{field_name}' must be a string",
            details={"field": field_name}
        )
    return value.strip() or None


def _parse_spotify_config(section: dict[str, Any]) -> SpotifyConfig:
    """
    Parse the Spotify section.

    Session cookies from the environment take precedence over the file,
    so they can be kept out of config.yaml.
    """
    sp_dc = os.environ.get(ENV_SP_DC) or _optional_string(section, "spotify.sp_dc")
    sp_key = os.environ.get(ENV_SP_KEY) or _optional_string(section, "spotify.sp_key")

    return SpotifyConfig(
        sp_dc=sp_dc,
        sp_key=sp_key,
        max_retries=_number(section, "spotify.max_retries", 3, integer=True),
        max_retry_after=_number(section, "spotify.max_retry_after", 10.0, allow_zero=True),
        request_timeout=_number(section, "spotify.request_timeout", 15.0),
        requests_per_second=_number(section, "spotify.requests_per_second", 10, integer=True),
    )


def _parse_storage_config(section: dict[str, Any]) -> StorageConfig:
    """
    Parse the storage section.

    Expands ~ to home directory and converts to absolute Path.
    Does NOT create the directories (that happens at startup in the CLI).
    """
    defaults = StorageConfig()

    database_raw = os.environ.get(ENV_DB_PATH) or _optional_string(section, "storage.database")
    database = (
        Path(database_raw).expanduser().resolve() if database_raw else defaults.database
    )

    logs_raw = _optional_string(section, "storage.log_directory")
    log_directory = Path(logs_raw).expanduser().resolve() if logs_raw else defaults.log_directory

    return StorageConfig(database=database, log_directory=log_directory)


def _parse_cache_config(section: dict[str, Any]) -> CacheConfig:
    """Parse the cache section."""
    defaults = CacheConfig()
    full_ttl = _number(section, "cache.full_ttl", defaults.full_ttl)
    degraded_ttl = _number(section, "cache.degraded_ttl", defaults.degraded_ttl)

    if degraded_ttl > full_ttl:
        raise ConfigError(
            "'cache.degraded_ttl' must not exceed 'cache.full_ttl'",
            details={"field": "cache.degraded_ttl", "value": degraded_ttl}
        )

    return CacheConfig(
        full_ttl=full_ttl,
        degraded_ttl=degraded_ttl,
        followed_ttl=_number(section, "cache.followed_ttl", defaults.followed_ttl),
        related_ttl=_number(section, "cache.related_ttl", defaults.related_ttl),
        rest_cooldown=_number(section, "cache.rest_cooldown", defaults.rest_cooldown, allow_zero=True),
        tier2_timeout=_number(section, "cache.tier2_timeout", defaults.tier2_timeout),
        history_window_days=_number(
            section, "cache.history_window_days", defaults.history_window_days, integer=True
        ),
        related_seed_limit=_number(
            section, "cache.related_seed_limit", defaults.related_seed_limit, integer=True
        ),
    )


def _parse_recommend_config(section: dict[str, Any]) -> RecommendConfig:
    """Parse the recommend section, including the nested weight tables."""
    defaults = RecommendConfig()

    weights_section = _section(section, "weights")
    default_weights = ScoreWeights()
    weights = ScoreWeights(**{
        name: _number(
            weights_section, f"recommend.weights.{name}", getattr(default_weights, name),
            allow_zero=True, maximum=1.0
        )
        for name in ("source", "affinity", "genre", "popularity", "recency")
    })

    buckets_section = _section(section, "bucket_weights")
    default_buckets = BucketWeights()
    bucket_weights = BucketWeights(**{
        name: _number(
            buckets_section, f"recommend.bucket_weights.{name}", getattr(default_buckets, name),
            allow_zero=True, maximum=1.0
        )
        for name in ("seed_artist", "same_album", "genre_neighbor", "user_top")
    })

    return RecommendConfig(
        profile_ttl=_number(section, "recommend.profile_ttl", defaults.profile_ttl),
        max_tracks_per_artist=_number(
            section, "recommend.max_tracks_per_artist", defaults.max_tracks_per_artist, integer=True
        ),
        max_bucket_run=_number(
            section, "recommend.max_bucket_run", defaults.max_bucket_run, integer=True
        ),
        genre_neighbor_count=_number(
            section, "recommend.genre_neighbor_count", defaults.genre_neighbor_count, integer=True
        ),
        genre_similarity_floor=_number(
            section, "recommend.genre_similarity_floor", defaults.genre_similarity_floor,
            allow_zero=True, maximum=1.0
        ),
        seed_artist_limit=_number(
            section, "recommend.seed_artist_limit", defaults.seed_artist_limit, integer=True
        ),
        profile_fetch_timeout=_number(
            section, "recommend.profile_fetch_timeout", defaults.profile_fetch_timeout
        ),
        weights=weights,
        bucket_weights=bucket_weights,
    )


def _parse_match_config(section: dict[str, Any]) -> MatchConfig:
    """
    Parse the match section.

    Raises:
        ConfigError: If hidden_video_types is not a list of known type names.
    """
    defaults = MatchConfig()

    raw_hidden = section.get("hidden_video_types") or []
    if not isinstance(raw_hidden, list):
        raise ConfigError(
            "'match.hidden_video_types' must be a list",
            details={"field": "match.hidden_video_types"}
        )

    hidden = []
    for item in raw_hidden:
        name = str(item).strip().upper()
        if name not in KNOWN_VIDEO_TYPES:
            raise ConfigError(
                f"Unknown video type in 'match.hidden_video_types': {item}",
                details={"field": "match.hidden_video_types", "value": item,
                         "allowed": list(KNOWN_VIDEO_TYPES)}
            )
        hidden.append(name)

    return MatchConfig(
        threshold=_number(section, "match.threshold", defaults.threshold, maximum=1.0),
        studio_bonus=_number(
            section, "match.studio_bonus", defaults.studio_bonus, allow_zero=True, maximum=1.0
        ),
        hidden_video_types=tuple(hidden),
        search_limit=_number(section, "match.search_limit", defaults.search_limit, integer=True),
    )


def _parse_queue_config(section: dict[str, Any]) -> QueueConfig:
    """Parse the queue section."""
    defaults = QueueConfig()
    return QueueConfig(
        batch_size=_number(section, "queue.batch_size", defaults.batch_size, integer=True),
        recommendation_timeout=_number(
            section, "queue.recommendation_timeout", defaults.recommendation_timeout
        ),
        recommendation_limit=_number(
            section, "queue.recommendation_limit", defaults.recommendation_limit, integer=True
        ),
        liked_page_size=_number(
            section, "queue.liked_page_size", defaults.liked_page_size, integer=True, maximum=50
        ),
    )
