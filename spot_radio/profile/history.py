"""
Local play history, the Tier 3 source of the profile cache.

The profile cache only reads history through the PlayHistorySource
protocol, so any store that can answer "most played since T" works.
DatabasePlayHistory is the SQLite-backed implementation used by the CLI;
`spot-radio played` records plays into it.
"""

from dataclasses import dataclass
from typing import Protocol

from spot_radio.core.database import Database
from spot_radio.core.logger import get_logger
from spot_radio.spotify.auth import epoch_ms
from spot_radio.spotify.models import Track


logger = get_logger(__name__)


@dataclass(frozen=True)
class PlayedTrack:
    """
    A track with its local play statistics.

    Attributes:
        track: The played track.
        play_count: Plays inside the queried window.
        last_played_ms: Most recent play, Unix epoch milliseconds.
    """
    track: Track
    play_count: int
    last_played_ms: int = 0


class PlayHistorySource(Protocol):
    """Read-only view of local play history."""

    def most_played(self, since_ms: int, limit: int) -> list[PlayedTrack]:
        """Tracks played since `since_ms`, most played first."""
        ...


class DatabasePlayHistory:
    """PlayHistorySource backed by the play_history table."""

    def __init__(self, database: Database) -> None:
        self._database = database

    def record_play(self, track: Track, played_at_ms: int | None = None) -> None:
        """Append one play of `track`."""
        if not track.id:
            logger.debug(f"Not recording play of '{track.name}': track has no id")
            return
        self._database.record_play(
            track.id, track.to_dict(), played_at_ms if played_at_ms is not None else epoch_ms()
        )

    def most_played(self, since_ms: int, limit: int) -> list[PlayedTrack]:
        rows = self._database.most_played(since_ms, limit)
        return [
            PlayedTrack(
                track=Track.from_dict(row["track"]),
                play_count=row["play_count"],
                last_played_ms=row["last_played"] or 0,
            )
            for row in rows
            if isinstance(row.get("track"), dict)
        ]
