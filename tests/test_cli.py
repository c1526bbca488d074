# tests/test_cli.py
"""Test the offline CLI commands"""

import pytest
from click.testing import CliRunner

from spot_radio import __version__
from spot_radio.cli import cli


@pytest.fixture
def config_file(temp_dir, monkeypatch):
    """Config pointing storage at a temporary directory"""
    for name in ("SPOT_RADIO_SP_DC", "SPOT_RADIO_SP_KEY", "SPOT_RADIO_DB_PATH"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(temp_dir)

    path = temp_dir / "config.yaml"
    path.write_text(
        "storage:\n"
        f"  database: {temp_dir / 'data' / 'spot_radio.db'}\n"
        f"  log_directory: {temp_dir / 'logs'}\n"
    )
    return path


class TestCli:
    """Test commands that need no network"""

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_status_on_fresh_database(self, config_file, temp_dir):
        result = CliRunner().invoke(cli, ["--config", str(config_file), "status"])

        assert result.exit_code == 0, result.output
        assert "missing" in result.output
        assert "0 (0 automatic, 0 manual)" in result.output
        assert (temp_dir / "data" / "spot_radio.db").exists()

    def test_override_then_list(self, config_file):
        runner = CliRunner()

        pinned = runner.invoke(cli, [
            "--config", str(config_file), "override",
            "https://open.spotify.com/track/sp1", "https://music.youtube.com/watch?v=vid1",
            "--title", "T", "--artist", "A",
        ])
        assert pinned.exit_code == 0, pinned.output
        assert "Pinned vid1 for sp1" in pinned.output

        listed = runner.invoke(cli, ["--config", str(config_file), "matches", "--manual"])
        assert listed.exit_code == 0, listed.output
        assert "sp1 -> vid1  [manual]  A - T" in listed.output

        replaced = runner.invoke(cli, ["--config", str(config_file), "override", "sp1", "vid2"])
        assert "Replaced vid1 with vid2" in replaced.output

    def test_bad_track_argument(self, config_file):
        result = CliRunner().invoke(cli, [
            "--config", str(config_file), "override", "spotify:album:a1", "vid1",
        ])

        assert result.exit_code == 2

    def test_missing_config_file(self, temp_dir, monkeypatch):
        monkeypatch.chdir(temp_dir)

        result = CliRunner().invoke(cli, ["--config", str(temp_dir / "nope.yaml"), "status"])

        assert result.exit_code == 1
        assert "Configuration error" in result.output

    def test_commands_needing_a_session_fail_without_login(self, config_file):
        result = CliRunner().invoke(cli, ["--config", str(config_file), "profile"])

        assert result.exit_code == 3
        assert "Not logged in" in result.output
