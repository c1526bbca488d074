"""
Exception classes for spot-radio.

This module defines all custom exceptions used throughout the application.
Each exception is designed to provide clear, actionable error messages
and to distinguish between different failure modes.

Exception Hierarchy:
    SpotRadioError (base)
        ConfigError - Configuration file issues
        DatabaseError - SQLite storage issues
        SpotifyError - Spotify request failures (classified by ErrorKind)
        YouTubeError - YouTube Music search issues

Propagation:
    ConfigError and DatabaseError are raised: they are fatal and the CLI
    reports them before exiting.

    SpotifyError is NOT raised across the client boundary. Every network
    call returns a FetchResult (see core/result.py) that carries the error
    as a value, and the caller picks the fallback.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """
    Classification of a failed Spotify request.

    Members:
        UNAUTHENTICATED: Missing or rejected access token (HTTP 401).
                         The session manager must refresh before retrying.
        RATE_LIMITED: HTTP 429. Carries a retry-after duration.
        MALFORMED: The response parsed but did not have the expected shape,
                   or the GraphQL payload contained an "errors" array.
        UNREACHABLE: Connection-level failure (DNS, reset, TLS).
        TIMEOUT: The request did not complete in time.
        HTTP: Any other non-2xx status.
    """
    UNAUTHENTICATED = "unauthenticated"
    RATE_LIMITED = "rate_limited"
    MALFORMED = "malformed"
    UNREACHABLE = "unreachable"
    TIMEOUT = "timeout"
    HTTP = "http"


# Kinds that start (or extend) a cooldown window on rate-limited paths
COOLDOWN_KINDS = frozenset({ErrorKind.RATE_LIMITED, ErrorKind.UNREACHABLE, ErrorKind.TIMEOUT})


class SpotRadioError(Exception):
    """
    Base exception for all spot-radio errors.

    All custom exceptions in this project inherit from this class,
    allowing callers to catch all spot-radio errors with a single
    except clause if desired.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context (e.g., track info, URLs).

    Example:
        try:
            # some operation
        except SpotRadioError as e:
            logger.error(f"Operation failed: {e.message}")
            if e.details:
                logger.debug(f"Details: {e.details}")
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        """
        Initialize the base exception.

        Args:
            message: Human-readable error description that will be shown to the user.
            details: Optional dictionary containing additional context about the error.
                     Common keys include:
                     - 'track_id': Spotify track ID involved in the error
                     - 'url': URL that caused the error
                     - 'original_error': The underlying exception if wrapping another error
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return the error message for display."""
        return self.message


class ConfigError(SpotRadioError):
    """
    Raised when there's an issue with the configuration file.

    This is a CRITICAL error that should stop program execution.

    Common causes:
        - explicit --config path does not exist
        - config.yaml has invalid YAML syntax
        - Invalid field values (e.g., negative TTL, weights outside [0, 1])

    Example:
        raise ConfigError(
            "'cache.full_ttl' must be a positive number",
            details={'field': 'cache.full_ttl', 'value': -1}
        )
    """
    pass


class DatabaseError(SpotRadioError):
    """
    Raised when there's an issue with the SQLite database.

    This is a CRITICAL error that should stop program execution.

    Common causes:
        - Parent directory of the database file does not exist
        - Permission denied when reading/writing
        - Schema version mismatch
        - Any sqlite3.Error raised while executing a statement

    Example:
        raise DatabaseError(
            "Database version mismatch: expected 1, got 3",
            details={'expected': 1, 'actual': 3}
        )
    """
    pass


class SpotifyError(SpotRadioError):
    """
    Describes a failed Spotify request.

    Instances travel inside FetchResult.failure(...) rather than being
    raised, so callers can compose fallbacks without try/except chains.

    Attributes:
        kind: ErrorKind classification of the failure.
        status: HTTP status code, or None for transport-level failures.
        retry_after: Seconds the server asked us to wait (RATE_LIMITED only).

    Example:
        SpotifyError(
            "me/top/tracks -> 429",
            kind=ErrorKind.RATE_LIMITED,
            status=429,
            retry_after=30.0,
        )
    """

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        kind: ErrorKind = ErrorKind.HTTP,
        status: int | None = None,
        retry_after: float | None = None
    ) -> None:
        """
        Initialize Spotify error with its classification.

        Args:
            message: Human-readable error description.
            details: Optional dictionary with additional context.
            kind: Failure classification.
            status: HTTP status code if a response was received.
            retry_after: Server-provided wait in seconds, if any.
        """
        super().__init__(message, details)
        self.kind = kind
        self.status = status
        self.retry_after = retry_after

    @property
    def is_auth_error(self) -> bool:
        """True if the token was missing or rejected."""
        return self.kind is ErrorKind.UNAUTHENTICATED

    @property
    def is_rate_limit(self) -> bool:
        """True if the server answered 429."""
        return self.kind is ErrorKind.RATE_LIMITED

    @property
    def triggers_cooldown(self) -> bool:
        """True for failures that should pause a rate-limited data source."""
        return self.kind in COOLDOWN_KINDS


class YouTubeError(SpotRadioError):
    """
    Raised when a YouTube Music search fails.

    Raised by the search adapter and caught by the track resolver, which
    turns it into "no match" for that track. A single failing search never
    aborts a queue build.

    Example:
        raise YouTubeError(
            "YouTube Music search failed",
            details={'query': 'Artist Title', 'original_error': str(e)}
        )
    """
    pass
