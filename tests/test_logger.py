# tests/test_logger.py
"""Test log files and the unmatched-track report"""

import logging

import pytest

from spot_radio.core.logger import (
    get_logger,
    log_unmatched_track,
    setup_logging,
    shutdown_logging,
)


@pytest.fixture
def log_dir(temp_dir):
    """Logging set up in a temporary directory, torn down afterwards"""
    directory = temp_dir / "logs"
    setup_logging(directory)
    yield directory
    shutdown_logging()


def read_log(directory, prefix):
    files = list(directory.glob(f"{prefix}_*.log"))
    assert len(files) == 1
    return files[0].read_text(encoding="utf-8")


class TestLogging:
    """Test setup_logging() outputs"""

    def test_files_are_split_by_level(self, log_dir):
        logger = get_logger("spot_radio.test")
        logger.debug("debug line")
        logger.error("error line")
        shutdown_logging()

        full = read_log(log_dir, "log_full")
        errors = read_log(log_dir, "log_errors")
        assert "debug line" in full and "error line" in full
        assert "error line" in errors
        assert "debug line" not in errors

    def test_unmatched_report(self, log_dir):
        logger = get_logger("spot_radio.test")
        logger.warning("ordinary warning")
        log_unmatched_track(
            logger, "Song A", "X", "https://open.spotify.com/track/sp_1", "no results"
        )
        shutdown_logging()

        report = read_log(log_dir, "unmatched_tracks")
        assert report == "Song A - X\nhttps://open.spotify.com/track/sp_1\nReason: no results\n\n"

    def test_noisy_libraries_are_quieted(self, log_dir):
        assert logging.getLogger("aiohttp").level == logging.WARNING
