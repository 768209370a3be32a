import json

import pytest

from clock import Clock, is_live
from exceptions import FilenameConflict
from redis_keys import REDIS_FILES_KEY

ROOM = "MONK-TEST"


def updated_at(redis_client, filename):
    return json.loads(redis_client.hget(REDIS_FILES_KEY.format(slug=ROOM), filename))["updated_at"]


class TestClock:
    def test_never_repeats_when_wall_clock_stalls(self):
        clock = Clock(source=lambda: 100.0)
        first, second, third = clock(), clock(), clock()
        assert first == 100.0
        assert first < second < third

    def test_follows_wall_clock_when_it_moves(self):
        ticks = iter([10.0, 20.0])
        clock = Clock(source=lambda: next(ticks))
        assert clock.now() == 10.0
        assert clock.now() == 20.0

    def test_is_live_has_no_grace_period(self):
        assert is_live(now=114.999, last_seen=100.0, ttl=15)
        assert not is_live(now=115.0, last_seen=100.0, ttl=15)


class TestFileStore:
    def test_upsert_overwrites_and_advances_updated_at(self, file_store, redis_client):
        assert file_store.upsert_file(ROOM, "main.txt", "c1") is True
        first = updated_at(redis_client, "main.txt")
        assert file_store.upsert_file(ROOM, "main.txt", "c2") is False
        assert file_store.list_files(ROOM) == {"main.txt": "c2"}
        assert updated_at(redis_client, "main.txt") > first

    def test_upsert_same_content_still_advances_updated_at(self, file_store, redis_client):
        file_store.upsert_file(ROOM, "main.txt", "same")
        first = updated_at(redis_client, "main.txt")
        file_store.upsert_file(ROOM, "main.txt", "same")
        assert updated_at(redis_client, "main.txt") > first

    def test_rooms_are_isolated(self, file_store):
        file_store.upsert_file(ROOM, "main.txt", "mine")
        file_store.upsert_file("MONK-OTHR", "main.txt", "theirs")
        assert file_store.list_files(ROOM) == {"main.txt": "mine"}

    def test_delete_is_idempotent(self, file_store):
        file_store.upsert_file(ROOM, "a.txt", "x")
        assert file_store.delete_file(ROOM, "a.txt") is True
        assert file_store.delete_file(ROOM, "a.txt") is False
        assert "a.txt" not in file_store.list_files(ROOM)

    def test_rename_keeps_content(self, file_store):
        file_store.upsert_file(ROOM, "a.txt", "body")
        assert file_store.rename_file(ROOM, "a.txt", "b.txt") is True
        assert file_store.list_files(ROOM) == {"b.txt": "body"}

    def test_rename_missing_file_affects_nothing(self, file_store):
        file_store.upsert_file(ROOM, "keep.txt", "x")
        assert file_store.rename_file(ROOM, "ghost.txt", "b.txt") is False
        assert file_store.list_files(ROOM) == {"keep.txt": "x"}

    def test_rename_onto_existing_file_is_rejected(self, file_store):
        file_store.upsert_file(ROOM, "a.txt", "first")
        file_store.upsert_file(ROOM, "b.txt", "second")
        with pytest.raises(FilenameConflict):
            file_store.rename_file(ROOM, "a.txt", "b.txt")
        assert file_store.list_files(ROOM) == {"a.txt": "first", "b.txt": "second"}

    def test_rename_to_same_name_is_noop(self, file_store):
        file_store.upsert_file(ROOM, "a.txt", "x")
        assert file_store.rename_file(ROOM, "a.txt", "a.txt") is True
        assert file_store.list_files(ROOM) == {"a.txt": "x"}

    def test_changed_since_returns_only_newer_files(self, file_store, clock):
        file_store.upsert_file(ROOM, "old.txt", "o")
        cursor = clock()
        file_store.upsert_file(ROOM, "new.txt", "n")
        assert file_store.list_changed_since(ROOM, cursor) == [{"filename": "new.txt", "content": "n"}]
        assert file_store.list_changed_since(ROOM, 0) == [
            {"filename": "old.txt", "content": "o"},
            {"filename": "new.txt", "content": "n"},
        ]

    def test_changed_since_fresh_cursor_is_empty(self, file_store, clock):
        file_store.upsert_file(ROOM, "a.txt", "x")
        assert file_store.list_changed_since(ROOM, clock()) == []

    def test_rename_shows_up_as_change_and_deletion(self, file_store, clock):
        file_store.upsert_file(ROOM, "a.txt", "x")
        cursor = clock()
        file_store.rename_file(ROOM, "a.txt", "b.txt")
        assert file_store.list_changed_since(ROOM, cursor) == [{"filename": "b.txt", "content": "x"}]
        assert file_store.list_deleted_since(ROOM, cursor) == ["a.txt"]

    def test_deleted_since_reports_tombstones(self, file_store, clock):
        file_store.upsert_file(ROOM, "a.txt", "x")
        cursor = clock()
        file_store.delete_file(ROOM, "a.txt")
        assert file_store.list_deleted_since(ROOM, cursor) == ["a.txt"]
        assert file_store.list_deleted_since(ROOM, clock()) == []

    def test_recreated_file_is_not_reported_deleted(self, file_store, clock):
        file_store.upsert_file(ROOM, "a.txt", "x")
        cursor = clock()
        file_store.delete_file(ROOM, "a.txt")
        file_store.upsert_file(ROOM, "a.txt", "again")
        assert file_store.list_deleted_since(ROOM, cursor) == []

    def test_rename_prunes_old_tombstones(self, file_store, fake_time, redis_client):
        file_store.upsert_file(ROOM, "a.txt", "x")
        file_store.upsert_file(ROOM, "c.txt", "y")
        file_store.rename_file(ROOM, "a.txt", "b.txt")
        fake_time.advance(301)
        file_store.rename_file(ROOM, "c.txt", "d.txt")
        assert redis_client.hkeys("room:tombstones:" + ROOM) == ["c.txt"]

    def test_old_tombstones_are_pruned(self, file_store, fake_time):
        file_store.upsert_file(ROOM, "a.txt", "x")
        file_store.upsert_file(ROOM, "b.txt", "y")
        file_store.delete_file(ROOM, "a.txt")
        fake_time.advance(301)
        file_store.delete_file(ROOM, "b.txt")
        assert file_store.list_deleted_since(ROOM, 0) == ["b.txt"]


class TestPresenceTracker:
    def test_upsert_makes_user_live(self, presence):
        presence.upsert_presence(ROOM, "Ann", "#f00", "main.txt")
        assert presence.list_live_presence(ROOM) == [
            {"userName": "Ann", "userColor": "#f00", "editingFile": "main.txt"}
        ]

    def test_same_name_overwrites(self, presence):
        presence.upsert_presence(ROOM, "Ann", "#f00", "a.txt")
        presence.upsert_presence(ROOM, "Ann", "#0f0", "")
        assert presence.list_live_presence(ROOM) == [{"userName": "Ann", "userColor": "#0f0", "editingFile": ""}]

    def test_entry_expires_after_ttl(self, presence, fake_time):
        presence.upsert_presence(ROOM, "Ann", "#f00", "")
        fake_time.advance(14.5)
        assert [user["userName"] for user in presence.list_live_presence(ROOM)] == ["Ann"]
        fake_time.advance(0.6)
        assert presence.list_live_presence(ROOM) == []

    def test_refresh_extends_liveness(self, presence, fake_time):
        presence.upsert_presence(ROOM, "Ann", "#f00", "")
        fake_time.advance(10)
        presence.upsert_presence(ROOM, "Ann", "#f00", "")
        fake_time.advance(10)
        assert len(presence.list_live_presence(ROOM)) == 1

    def test_remove(self, presence):
        presence.upsert_presence(ROOM, "Ann", "#f00", "")
        presence.upsert_presence(ROOM, "Ben", "#00f", "")
        assert presence.remove_presence(ROOM, "Ann") is True
        assert presence.remove_presence(ROOM, "Ann") is False
        assert [user["userName"] for user in presence.list_live_presence(ROOM)] == ["Ben"]

    def test_sweep_removes_only_expired_entries(self, presence, fake_time, redis_client):
        presence.upsert_presence(ROOM, "Ann", "#f00", "")
        presence.upsert_presence("MONK-OTHR", "Cat", "#0f0", "")
        fake_time.advance(20)
        presence.upsert_presence(ROOM, "Ben", "#00f", "")
        assert presence.sweep_all() == 2
        assert [user["userName"] for user in presence.list_live_presence(ROOM)] == ["Ben"]
        assert redis_client.hkeys("room:presence:MONK-OTHR") == []
