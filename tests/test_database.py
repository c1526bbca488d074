"""Test the SQLite database"""

import sqlite3

import pytest

from spot_radio.core.database import Database
from spot_radio.core.exceptions import DatabaseError


def match_row(spotify_id: str, youtube_id: str, manual: bool = False, cached_at: int = 1000) -> dict:
    return {
        "spotify_id": spotify_id,
        "youtube_id": youtube_id,
        "title": "Title",
        "artist": "Artist",
        "match_score": 1.0 if manual else 0.8,
        "music_video_type": "ATV",
        "cached_at": cached_at,
        "is_manual_override": manual,
    }


class TestKeyValueStore:
    """Test kv get/set/delete"""

    def test_set_get_bytes(self, database):
        database.set("k", b"\x00\x01")
        assert database.get("k") == b"\x00\x01"

    def test_missing_key(self, database):
        assert database.get("missing") is None
        assert database.get_json("missing") is None

    def test_json_roundtrip(self, database):
        database.set_json("profile", {"tracks": [1, 2], "ok": True})
        assert database.get_json("profile") == {"tracks": [1, 2], "ok": True}

    def test_corrupt_json_treated_as_missing(self, database):
        database.set("profile", b"{not json")
        assert database.get_json("profile") is None

    def test_delete_many(self, database):
        database.set("a", b"1")
        database.set("b", b"2")
        database.delete("a", "b", "never-set")
        assert database.get("a") is None
        assert database.get("b") is None

    def test_watch_and_unsubscribe(self, database):
        seen = []
        unsubscribe = database.watch("token", lambda key, value: seen.append((key, value)))

        database.set("token", b"abc")
        database.delete("token")
        unsubscribe()
        database.set("token", b"ignored")

        assert seen == [("token", b"abc"), ("token", None)]

    def test_values_survive_reopen(self, temp_dir):
        path = temp_dir / "persist.db"
        db = Database(path)
        db.set_json("k", [1])
        db.close()

        reopened = Database(path)
        assert reopened.get_json("k") == [1]
        reopened.close()


class TestDatabaseInit:
    """Test database creation errors"""

    def test_missing_parent_directory(self, temp_dir):
        with pytest.raises(DatabaseError, match="Parent directory"):
            Database(temp_dir / "no" / "such" / "dir.db")

    def test_version_mismatch(self, temp_dir):
        path = temp_dir / "old.db"
        Database(path).close()
        conn = sqlite3.connect(str(path))
        conn.execute("UPDATE schema_version SET version = 99")
        conn.commit()
        conn.close()

        with pytest.raises(DatabaseError, match="version mismatch"):
            Database(path)


class TestTrackMatches:
    """Test the match table and its override guard"""

    def test_insert_and_get(self, database):
        assert database.upsert_match(match_row("sp1", "yt1")) is True
        row = database.get_match("sp1")
        assert row["youtube_id"] == "yt1"
        assert row["is_manual_override"] is False

    def test_automatic_replaces_automatic(self, database):
        database.upsert_match(match_row("sp1", "yt1"))
        assert database.upsert_match(match_row("sp1", "yt2", cached_at=2000)) is True
        assert database.get_match("sp1")["youtube_id"] == "yt2"

    def test_automatic_never_replaces_manual(self, database):
        database.upsert_match(match_row("sp1", "manual_yt", manual=True))
        assert database.upsert_match(match_row("sp1", "auto_yt")) is False

        row = database.get_match("sp1")
        assert row["youtube_id"] == "manual_yt"
        assert row["is_manual_override"] is True

    def test_manual_replaces_manual(self, database):
        database.upsert_match(match_row("sp1", "first", manual=True))
        assert database.upsert_match(match_row("sp1", "second", manual=True)) is True
        assert database.get_match("sp1")["youtube_id"] == "second"

    def test_delete_automatic_spares_manual(self, database):
        database.upsert_match(match_row("auto", "yt1"))
        database.upsert_match(match_row("manual", "yt2", manual=True))

        assert database.delete_automatic_match("auto") is True
        assert database.delete_automatic_match("manual") is False
        assert database.get_match("auto") is None
        assert database.get_match("manual") is not None

    def test_reverse_lookup_newest_first(self, database):
        database.upsert_match(match_row("sp1", "shared", cached_at=1000))
        database.upsert_match(match_row("sp2", "shared", cached_at=3000))
        database.upsert_match(match_row("sp3", "other"))

        rows = database.get_matches_by_youtube_id("shared")
        assert [r["spotify_id"] for r in rows] == ["sp2", "sp1"]

    def test_list_and_stats(self, database):
        database.upsert_match(match_row("sp1", "yt1", cached_at=1000))
        database.upsert_match(match_row("sp2", "yt2", manual=True, cached_at=2000))
        database.upsert_match(match_row("sp3", "yt3", cached_at=3000))

        assert [r["spotify_id"] for r in database.list_matches()] == ["sp3", "sp2", "sp1"]
        assert [r["spotify_id"] for r in database.list_matches(manual_only=True)] == ["sp2"]
        assert len(database.list_matches(limit=2)) == 2
        assert database.get_match_stats() == {"total": 3, "manual": 1, "automatic": 2}


class TestPlayHistory:
    """Test play history aggregation"""

    def test_most_played_orders_by_count_then_recency(self, database):
        database.record_play("a", {"id": "a", "name": "A"}, 100)
        database.record_play("b", {"id": "b", "name": "B"}, 200)
        database.record_play("b", {"id": "b", "name": "B2"}, 300)
        database.record_play("c", {"id": "c", "name": "C"}, 400)

        rows = database.most_played(since_ms=0, limit=10)
        assert [r["track"]["id"] for r in rows] == ["b", "c", "a"]
        assert rows[0]["play_count"] == 2
        assert rows[0]["last_played"] == 300
        assert rows[0]["track"]["name"] == "B2"

    def test_window_and_limit(self, database):
        database.record_play("old", {"id": "old"}, 10)
        database.record_play("new", {"id": "new"}, 1000)
        database.record_play("newer", {"id": "newer"}, 2000)

        rows = database.most_played(since_ms=500, limit=1)
        assert len(rows) == 1
        assert rows[0]["track"]["id"] == "newer"
