"""
Success/failure values for network-facing calls.

Every Spotify request returns a FetchResult instead of raising. The caller
inspects `ok` and decides the fallback (Tier 2 falls back to Tier 1/3,
the recommendation engine falls back to a basic queue, and so on).

Usage:
    result = await client.top_tracks("short_term", 50)
    if result.ok:
        tracks = result.value
    elif result.error.triggers_cooldown:
        start_cooldown()
"""

from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

from spot_radio.core.exceptions import SpotifyError


T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True)
class FetchResult(Generic[T]):
    """
    Outcome of a single Spotify request.

    Exactly one of `value` / `error` is meaningful: `error` is None on
    success. Build instances with the success()/failure() classmethods.

    Attributes:
        value: The parsed payload on success, None on failure.
        error: The classified SpotifyError on failure, None on success.
    """

    value: T | None = None
    error: SpotifyError | None = None

    @property
    def ok(self) -> bool:
        """True if the request succeeded."""
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "FetchResult[T]":
        """Create a successful result."""
        return cls(value=value, error=None)

    @classmethod
    def failure(cls, error: SpotifyError) -> "FetchResult[T]":
        """Create a failed result carrying the classified error."""
        return cls(value=None, error=error)

    def map(self, func: Callable[[T], U]) -> "FetchResult[U]":
        """
        Transform the value of a successful result.

        Failures pass through unchanged, so mapping functions only ever
        see real payloads.
        """
        if self.error is not None:
            return FetchResult.failure(self.error)
        return FetchResult.success(func(self.value))

    def unwrap_or(self, default: T) -> T:
        """Return the value on success, `default` otherwise."""
        if self.error is not None:
            return default
        return self.value
