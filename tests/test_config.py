"""Test configuration loading and validation"""

from pathlib import Path

import pytest

from spot_radio.core.config import (
    ENV_DB_PATH,
    ENV_SP_DC,
    ENV_SP_KEY,
    CacheConfig,
    Config,
    load_config,
)
from spot_radio.core.exceptions import ConfigError


@pytest.fixture(autouse=True)
def isolated_env(temp_dir, monkeypatch):
    """Run every test in an empty directory with no session variables set"""
    monkeypatch.chdir(temp_dir)
    for name in (ENV_SP_DC, ENV_SP_KEY, ENV_DB_PATH):
        monkeypatch.delenv(name, raising=False)


def write_config(directory: Path, content: str) -> Path:
    path = directory / "config.yaml"
    path.write_text(content, encoding="utf-8")
    return path


class TestLoadConfig:
    """Test load_config()"""

    def test_defaults_without_file(self):
        """Missing ./config.yaml means all defaults"""
        config = load_config()
        assert config == Config()
        assert config.cache.full_ttl == 6 * 60 * 60
        assert config.cache.degraded_ttl == 30 * 60
        assert config.match.threshold == 0.35
        assert config.recommend.max_tracks_per_artist == 3
        assert config.queue.recommendation_timeout == 4.0
        assert config.recommend.profile_fetch_timeout < config.queue.recommendation_timeout

    def test_explicit_missing_file_raises(self, temp_dir):
        with pytest.raises(ConfigError, match="not found"):
            load_config(temp_dir / "nope.yaml")

    def test_empty_file_uses_defaults(self, temp_dir):
        path = write_config(temp_dir, "")
        assert load_config(path) == Config()

    def test_sections_override_defaults(self, temp_dir):
        path = write_config(temp_dir, """
cache:
  full_ttl: 7200
  degraded_ttl: 600
recommend:
  max_tracks_per_artist: 2
  weights:
    affinity: 0.5
match:
  threshold: 0.5
  hidden_video_types: ["ugc", "OMV"]
queue:
  batch_size: 5
""")
        config = load_config(path)
        assert config.cache.full_ttl == 7200.0
        assert config.cache.degraded_ttl == 600.0
        assert config.recommend.max_tracks_per_artist == 2
        assert config.recommend.weights.affinity == 0.5
        assert config.recommend.weights.source == 0.25
        assert config.match.threshold == 0.5
        assert config.match.hidden_video_types == ("UGC", "OMV")
        assert config.queue.batch_size == 5

    def test_invalid_yaml(self, temp_dir):
        path = write_config(temp_dir, "cache: [unclosed")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(path)

    def test_top_level_must_be_dict(self, temp_dir):
        path = write_config(temp_dir, "- a\n- b\n")
        with pytest.raises(ConfigError, match="dictionary"):
            load_config(path)

    def test_negative_ttl_rejected(self, temp_dir):
        path = write_config(temp_dir, "cache:\n  full_ttl: -1\n")
        with pytest.raises(ConfigError) as exc_info:
            load_config(path)
        assert exc_info.value.details["field"] == "cache.full_ttl"

    def test_degraded_ttl_cannot_exceed_full(self, temp_dir):
        path = write_config(temp_dir, "cache:\n  full_ttl: 100\n  degraded_ttl: 200\n")
        with pytest.raises(ConfigError, match="degraded_ttl"):
            load_config(path)

    def test_weight_above_one_rejected(self, temp_dir):
        path = write_config(temp_dir, "recommend:\n  weights:\n    genre: 1.5\n")
        with pytest.raises(ConfigError, match="at most"):
            load_config(path)

    def test_boolean_is_not_a_number(self, temp_dir):
        path = write_config(temp_dir, "queue:\n  batch_size: true\n")
        with pytest.raises(ConfigError, match="integer"):
            load_config(path)

    def test_unknown_video_type_rejected(self, temp_dir):
        path = write_config(temp_dir, "match:\n  hidden_video_types: [SHORTS]\n")
        with pytest.raises(ConfigError, match="Unknown video type"):
            load_config(path)

    def test_rest_cooldown_may_be_zero(self, temp_dir):
        path = write_config(temp_dir, "cache:\n  rest_cooldown: 0\n")
        assert load_config(path).cache.rest_cooldown == 0.0


class TestEnvironmentOverrides:
    """Test environment variables"""

    def test_session_cookies_from_environment(self, temp_dir, monkeypatch):
        write_config(temp_dir, "spotify:\n  sp_dc: from_file\n")
        monkeypatch.setenv(ENV_SP_DC, "from_env")
        monkeypatch.setenv(ENV_SP_KEY, "key_env")

        config = load_config()
        assert config.spotify.sp_dc == "from_env"
        assert config.spotify.sp_key == "key_env"

    def test_cookie_from_file_when_env_missing(self, temp_dir):
        write_config(temp_dir, "spotify:\n  sp_dc: from_file\n")
        assert load_config().spotify.sp_dc == "from_file"

    def test_database_path_from_environment(self, temp_dir, monkeypatch):
        monkeypatch.setenv(ENV_DB_PATH, str(temp_dir / "other.db"))
        assert load_config().storage.database == (temp_dir / "other.db").resolve()


def test_cache_config_is_frozen():
    config = CacheConfig()
    with pytest.raises(Exception):
        config.full_ttl = 1  # type: ignore[misc]
