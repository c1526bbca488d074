"""
Thread-safe SQLite database for spot-radio.

One file holds every piece of state that has to survive a restart.

Schema:
    kv_store:       Opaque key/value pairs (session token, profile cache
                    snapshots). Values are bytes; JSON helpers sit on top.
    track_matches:  Spotify track id -> YouTube Music video id, with the
                    cached display title/artist, match score, content type,
                    cached-at timestamp and the manual-override flag.
    play_history:   Local plays, read back as the Tier 3 profile source.

Override Protection:
    A row with is_manual_override = 1 is never replaced by an automatic
    upsert and never removed by an automatic delete. Both rules are part
    of the SQL statements, so they hold even when two resolvers race.

Usage:
    db = Database(data_dir / "spot_radio.db")

    db.set_json("spotify.token", {"access_token": "...", "expires_at_ms": 0})
    token = db.get_json("spotify.token")

    db.upsert_match({"spotify_id": "abc", "youtube_id": "xyz", ...})
    row = db.get_match("abc")
"""

import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Generator

from spot_radio.core.exceptions import DatabaseError
from spot_radio.core.logger import get_logger


logger = get_logger(__name__)


DATABASE_VERSION = 1

# Signature of a key watcher: (key, new value or None when deleted)
KeyWatcher = Callable[[str, bytes | None], None]


_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS kv_store (
    key TEXT PRIMARY KEY,
    value BLOB NOT NULL,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS track_matches (
    spotify_id TEXT PRIMARY KEY,
    youtube_id TEXT NOT NULL,
    title TEXT,
    artist TEXT,
    match_score REAL,
    music_video_type TEXT,
    cached_at INTEGER NOT NULL,
    is_manual_override INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS play_history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    track_id TEXT NOT NULL,
    track_json TEXT NOT NULL,
    played_at INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_track_matches_youtube_id ON track_matches(youtube_id);
CREATE INDEX IF NOT EXISTS idx_play_history_played_at ON play_history(played_at);
CREATE INDEX IF NOT EXISTS idx_play_history_track ON play_history(track_id);
"""

_MATCH_COLUMNS = (
    "spotify_id", "youtube_id", "title", "artist", "match_score",
    "music_video_type", "cached_at", "is_manual_override",
)


class Database:
    """
    Thread-safe SQLite database.

    Uses a single persistent connection with thread locking for safety.
    All public methods acquire self._lock before executing. Watch callbacks
    run after the lock is released.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = None
        self._watchers: dict[str, list[KeyWatcher]] = {}

        if not db_path.parent.exists():
            raise DatabaseError(
                f"Parent directory does not exist: {db_path.parent}",
                details={"path": str(db_path.parent)}
            )

        try:
            self._init_database()
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to initialize database: {e}",
                details={"path": str(db_path)}
            ) from e

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Get the persistent database connection as a context manager.

        The connection is created once and reused for all operations.
        sqlite3.Error raised inside the block is wrapped in DatabaseError.
        """
        if self._conn is None:
            self._conn = sqlite3.connect(
                str(self.db_path),
                timeout=30.0,
                check_same_thread=False  # We handle thread safety with _lock
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode = WAL")
        try:
            yield self._conn
        except sqlite3.Error as e:
            self._conn.rollback()
            raise DatabaseError(
                f"Database operation failed: {e}",
                details={"path": str(self.db_path), "original_error": str(e)}
            ) from e

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def _init_database(self) -> None:
        with self._get_connection() as conn:
            conn.executescript(_SCHEMA_SQL)

            cursor = conn.execute("SELECT version FROM schema_version LIMIT 1")
            row = cursor.fetchone()

            if row is None:
                conn.execute("INSERT INTO schema_version (version) VALUES (?)", (DATABASE_VERSION,))
            elif row[0] != DATABASE_VERSION:
                raise DatabaseError(
                    f"Database version mismatch: expected {DATABASE_VERSION}, got {row[0]}",
                    details={"expected": DATABASE_VERSION, "actual": row[0]}
                )
            conn.commit()

    def _now_iso(self) -> str:
        return datetime.now(timezone.utc).isoformat()

    # =========================================================================
    # Key/Value Store
    # =========================================================================

    def get(self, key: str) -> bytes | None:
        """Return the stored bytes for `key`, or None."""
        with self._lock:
            with self._get_connection() as conn:
                row = conn.execute(
                    "SELECT value FROM kv_store WHERE key = ?", (key,)
                ).fetchone()
        return bytes(row["value"]) if row else None

    def set(self, key: str, value: bytes) -> None:
        """Store `value` under `key`, replacing any previous value."""
        with self._lock:
            with self._get_connection() as conn:
                conn.execute("""
                    INSERT INTO kv_store (key, value, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = excluded.updated_at
                """, (key, value, self._now_iso()))
                conn.commit()
        self._notify(key, value)

    def delete(self, *keys: str) -> None:
        """Remove every given key. Missing keys are ignored."""
        if not keys:
            return
        with self._lock:
            with self._get_connection() as conn:
                conn.executemany("DELETE FROM kv_store WHERE key = ?", [(k,) for k in keys])
                conn.commit()
        for key in keys:
            self._notify(key, None)

    def watch(self, key: str, callback: KeyWatcher) -> Callable[[], None]:
        """
        Call `callback(key, value)` whenever `key` is set or deleted.

        Args:
            key: Key to observe.
            callback: Receives the key and the new bytes (None on delete).

        Returns:
            A function that removes the watcher.
        """
        with self._lock:
            self._watchers.setdefault(key, []).append(callback)

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._watchers.get(key, [])
                if callback in callbacks:
                    callbacks.remove(callback)

        return unsubscribe

    def _notify(self, key: str, value: bytes | None) -> None:
        with self._lock:
            callbacks = list(self._watchers.get(key, ()))
        for callback in callbacks:
            callback(key, value)

    def get_json(self, key: str) -> Any | None:
        """
        Return the JSON value stored under `key`.

        A value that does not decode is logged and treated as missing, so a
        corrupt cache snapshot only costs a refresh.
        """
        raw = self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring undecodable value for '{key}': {e}")
            return None

    def set_json(self, key: str, value: Any) -> None:
        """Store `value` as UTF-8 JSON under `key`."""
        self.set(key, json.dumps(value, separators=(",", ":")).encode("utf-8"))

    # =========================================================================
    # Track Matches
    # =========================================================================

    def _deserialize_match_row(self, row: sqlite3.Row) -> dict[str, Any]:
        data = dict(row)
        data["is_manual_override"] = bool(data["is_manual_override"])
        return data

    def get_match(self, spotify_id: str) -> dict[str, Any] | None:
        """Return the match row for a Spotify track, or None."""
        with self._lock:
            with self._get_connection() as conn:
                row = conn.execute(
                    "SELECT * FROM track_matches WHERE spotify_id = ?", (spotify_id,)
                ).fetchone()
        return self._deserialize_match_row(row) if row else None

    def get_matches_by_youtube_id(self, youtube_id: str) -> list[dict[str, Any]]:
        """Reverse lookup: every Spotify track mapped to this video id."""
        with self._lock:
            with self._get_connection() as conn:
                rows = conn.execute(
                    "SELECT * FROM track_matches WHERE youtube_id = ? ORDER BY cached_at DESC",
                    (youtube_id,)
                ).fetchall()
        return [self._deserialize_match_row(r) for r in rows]

    def upsert_match(self, match: dict[str, Any]) -> bool:
        """
        Insert or update a match row.

        Automatic rows (is_manual_override false) only update an existing row
        that is itself automatic. Manual rows always win.

        Args:
            match: Dictionary with the track_matches columns.

        Returns:
            True if the row was written, False if an existing manual override
            blocked an automatic write.
        """
        values = tuple(
            int(bool(match.get(c))) if c == "is_manual_override" else match.get(c)
            for c in _MATCH_COLUMNS
        )
        guard = "" if match.get("is_manual_override") else \
            "WHERE track_matches.is_manual_override = 0"

        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute(f"""
                    INSERT INTO track_matches ({", ".join(_MATCH_COLUMNS)})
                    VALUES ({", ".join("?" for _ in _MATCH_COLUMNS)})
                    ON CONFLICT(spotify_id) DO UPDATE SET
                        youtube_id = excluded.youtube_id,
                        title = excluded.title,
                        artist = excluded.artist,
                        match_score = excluded.match_score,
                        music_video_type = excluded.music_video_type,
                        cached_at = excluded.cached_at,
                        is_manual_override = excluded.is_manual_override
                    {guard}
                """, values)
                conn.commit()
                return cursor.rowcount > 0

    def delete_automatic_match(self, spotify_id: str) -> bool:
        """
        Delete an automatic match row.

        Returns:
            True if a row was removed. Manual overrides are never removed.
        """
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    "DELETE FROM track_matches WHERE spotify_id = ? AND is_manual_override = 0",
                    (spotify_id,)
                )
                conn.commit()
                return cursor.rowcount > 0

    def list_matches(self, manual_only: bool = False, limit: int | None = None) -> list[dict[str, Any]]:
        """Return match rows, newest first."""
        query = "SELECT * FROM track_matches"
        if manual_only:
            query += " WHERE is_manual_override = 1"
        query += " ORDER BY cached_at DESC"
        params: tuple = ()
        if limit is not None:
            query += " LIMIT ?"
            params = (limit,)

        with self._lock:
            with self._get_connection() as conn:
                rows = conn.execute(query, params).fetchall()
        return [self._deserialize_match_row(r) for r in rows]

    def get_match_stats(self) -> dict[str, int]:
        """Count automatic and manual match rows."""
        with self._lock:
            with self._get_connection() as conn:
                row = conn.execute("""
                    SELECT
                        COUNT(*) AS total,
                        COALESCE(SUM(is_manual_override), 0) AS manual
                    FROM track_matches
                """).fetchone()
        return {"total": row["total"], "manual": row["manual"], "automatic": row["total"] - row["manual"]}

    # =========================================================================
    # Play History
    # =========================================================================

    def record_play(self, track_id: str, track_data: dict[str, Any], played_at_ms: int) -> None:
        """Append one play of a track."""
        with self._lock:
            with self._get_connection() as conn:
                conn.execute(
                    "INSERT INTO play_history (track_id, track_json, played_at) VALUES (?, ?, ?)",
                    (track_id, json.dumps(track_data), played_at_ms)
                )
                conn.commit()

    def most_played(self, since_ms: int, limit: int) -> list[dict[str, Any]]:
        """
        Return the most played tracks since `since_ms`.

        Returns:
            Dictionaries with 'track' (the latest stored track payload),
            'play_count' and 'last_played', ordered by play count then
            recency.
        """
        with self._lock:
            with self._get_connection() as conn:
                rows = conn.execute("""
                    SELECT
                        p.track_id,
                        COUNT(*) AS play_count,
                        MAX(p.played_at) AS last_played,
                        (SELECT h.track_json FROM play_history h
                         WHERE h.track_id = p.track_id
                         ORDER BY h.played_at DESC LIMIT 1) AS track_json
                    FROM play_history p
                    WHERE p.played_at >= ?
                    GROUP BY p.track_id
                    ORDER BY play_count DESC, last_played DESC
                    LIMIT ?
                """, (since_ms, limit)).fetchall()

        result = []
        for row in rows:
            try:
                track = json.loads(row["track_json"])
            except (json.JSONDecodeError, TypeError):
                logger.warning(f"Skipping unreadable play history entry for {row['track_id']}")
                continue
            result.append({
                "track": track,
                "play_count": row["play_count"],
                "last_played": row["last_played"],
            })
        return result
