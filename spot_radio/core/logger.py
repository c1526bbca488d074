"""
Logging configuration for spot-radio.

This module sets up the logging system with multiple outputs:
    - Console: Real-time messages with tqdm-compatible formatting
    - log_full.log: Complete log of all events (DEBUG and above)
    - log_errors.log: Only ERROR and CRITICAL level messages
    - unmatched_tracks.log: Spotify tracks that found no YouTube Music match

The logging system follows the principle: everything to screen is also saved
to file, then filtered into specialized files.

Log File Locations:
    All log files are created in the log directory from config.yaml
    (storage.log_directory). Each run gets its own timestamped files.

Usage:
    from spot_radio.core.logger import setup_logging, get_logger

    setup_logging(log_dir)  # Call once at startup
    logger = get_logger(__name__)  # Get logger for each module

    logger.info("Building radio queue")
    log_unmatched_track(logger, "Song", "Artist", "https://open.spotify.com/track/...", "below threshold")
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import TextIO

import colorama
from tqdm import tqdm


# Log file name prefixes (created in log directory)
LOG_FULL_PREFIX = "log_full"
LOG_ERRORS_PREFIX = "log_errors"
UNMATCHED_TRACKS_PREFIX = "unmatched_tracks"

# Log format for file output (detailed with timestamp)
FILE_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are too chatty at DEBUG
NOISY_LOGGERS = ("aiohttp", "asyncio", "urllib3", "ytmusicapi")


class Colors:
    """ANSI color codes for terminal output."""
    RESET = "\033[0m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    CYAN = "\033[36m"
    WHITE = "\033[37m"
    BOLD = "\033[1m"


class ColoredConsoleFormatter(logging.Formatter):
    """Console formatter: colored level name, then the message. No timestamp."""

    LEVEL_COLORS = {
        logging.DEBUG: Colors.BLUE,
        logging.INFO: Colors.GREEN,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.BOLD + Colors.RED,
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, Colors.WHITE)
        colored_levelname = f"{color}{record.levelname}{Colors.RESET}"
        return f"{colored_levelname}: {record.getMessage()}"


class TqdmLoggingHandler(logging.Handler):
    """Console handler that goes through tqdm.write() so log lines do not tear progress bars."""

    def __init__(self, stream: TextIO = sys.stderr) -> None:
        super().__init__()
        self.stream = stream

    def emit(self, record: logging.LogRecord) -> None:
        try:
            tqdm.write(self.format(record), file=self.stream)
        except Exception:
            self.handleError(record)


class UnmatchedTrackHandler(logging.Handler):
    """
    Handler that captures tracks the resolver could not match.

    Listens for log records that carry unmatched-track information and writes
    them to unmatched_tracks.log in a simple, human-readable format:

        Song Title - Artist Name
        https://open.spotify.com/track/xxxxx
        Reason: best score 0.21 below threshold 0.35

    The handler looks for specific extra fields in log records:
        - 'unmatched_track_name': The Spotify track title
        - 'unmatched_track_artist': The primary artist name
        - 'unmatched_track_url': The Spotify URL
        - 'unmatched_reason': Why no match was accepted

    Only records containing these fields are written to the report, so the
    file is a ready-made list for `spot-radio override`.
    """

    def __init__(self, report_path: Path) -> None:
        super().__init__()
        self.report_path = report_path
        self.report_file: TextIO | None = None

    def open(self) -> None:
        """
        Open the report file for writing.

        Called by setup_logging() after handler is created.
        File is opened in write mode (overwrites existing content).
        """
        self.report_file = open(self.report_path, "w", encoding="utf-8")

    def emit(self, record: logging.LogRecord) -> None:
        if not hasattr(record, "unmatched_track_name"):
            return

        if self.report_file is None:
            return

        try:
            track_name = getattr(record, "unmatched_track_name", "Unknown")
            artist = getattr(record, "unmatched_track_artist", "Unknown")
            url = getattr(record, "unmatched_track_url", "")
            reason = getattr(record, "unmatched_reason", "")

            self.report_file.write(f"{track_name} - {artist}\n")
            self.report_file.write(f"{url}\n")
            self.report_file.write(f"Reason: {reason}\n\n")
            self.report_file.flush()
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        """
        Close the report file handle.

        Called automatically when logging is shut down.
        Safe to call multiple times.
        """
        if self.report_file is not None:
            self.report_file.close()
            self.report_file = None
        super().close()


class MinimumLevelFilter(logging.Filter):
    """Pass records at or above `level`; used for the error-only file."""

    def __init__(self, level: int) -> None:
        super().__init__()
        self.level = level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= self.level


def _file_handler(path: Path, min_level: int = logging.DEBUG) -> logging.FileHandler:
    handler = logging.FileHandler(path, mode="w", encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, FILE_DATE_FORMAT))
    if min_level > logging.DEBUG:
        handler.addFilter(MinimumLevelFilter(min_level))
    return handler


def setup_logging(log_dir: Path, verbose: bool = False) -> None:
    """
    Configure the logging system for the application.

    Call once per process, after the configuration is loaded and before
    the event loop starts. Calling it again replaces every root handler.

    Args:
        log_dir: Directory where log files will be created (created if missing).
        verbose: Show DEBUG messages on the console (files always get DEBUG).

    Files, one set per run:
        log_full_{timestamp}.log          everything
        log_errors_{timestamp}.log        ERROR and above
        unmatched_tracks_{timestamp}.log  tracks without a YouTube Music match
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    colorama.just_fix_windows_console()
    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    console_handler = TqdmLoggingHandler()
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(ColoredConsoleFormatter())

    unmatched_handler = UnmatchedTrackHandler(log_dir / f"{UNMATCHED_TRACKS_PREFIX}_{timestamp}.log")
    unmatched_handler.open()

    for handler in (
        console_handler,
        _file_handler(log_dir / f"{LOG_FULL_PREFIX}_{timestamp}.log"),
        _file_handler(log_dir / f"{LOG_ERRORS_PREFIX}_{timestamp}.log", logging.ERROR),
        unmatched_handler,
    ):
        root_logger.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Args:
        name: The logger name, typically __name__ of the calling module.
              This creates a hierarchy like 'spot_radio.core.config'.

    Returns:
        logging.Logger: A logger instance configured by setup_logging().

    Note:
        Loggers obtained before setup_logging() is called will have no
        handlers and will not produce output.
    """
    return logging.getLogger(name)


def format_matched_message(artist: str, name: str, video_id: str, score: float) -> str:
    """Format a 'Matched' message with colors."""
    return (
        f"{Colors.GREEN}Matched{Colors.RESET}: "
        f"{artist} - {name} -> "
        f"{Colors.CYAN}https://music.youtube.com/watch?v={video_id}{Colors.RESET} "
        f"(score: {score:.2f})"
    )


def format_no_match_message(artist: str, name: str, reason: str) -> str:
    """Format a 'No match' message with colors."""
    return (
        f"{Colors.RED}No match{Colors.RESET}: "
        f"{artist} - {name} "
        f"({reason})"
    )


def format_fallback_message(reason: str) -> str:
    """Format the banner shown when a queue falls back to basic mode."""
    return f"{Colors.YELLOW}Using fallback queue{Colors.RESET}: {reason}"


def log_unmatched_track(
    logger: logging.Logger,
    track_name: str,
    artist: str,
    spotify_url: str,
    reason: str
) -> None:
    """
    Log a track that found no acceptable YouTube Music match.

    Logs a WARNING and attaches the extra fields that UnmatchedTrackHandler
    writes to unmatched_tracks.log.

    Example:
        log_unmatched_track(
            logger,
            track_name="Song Title",
            artist="Artist Name",
            spotify_url="https://open.spotify.com/track/xxx",
            reason="best score 0.21 below threshold 0.35"
        )
    """
    logger.warning(
        format_no_match_message(artist, track_name, reason),
        extra={
            "unmatched_track_name": track_name,
            "unmatched_track_artist": artist,
            "unmatched_track_url": spotify_url,
            "unmatched_reason": reason,
        }
    )


def shutdown_logging() -> None:
    """
    Properly shut down the logging system.

    Flushes and closes every handler on the root logger, then removes them.
    Typically called in a finally block at CLI exit.
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        handler.flush()
        handler.close()
        root_logger.removeHandler(handler)
