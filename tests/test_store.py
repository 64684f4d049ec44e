"""Tests for the aggregate stores."""

import re
import sqlite3
import threading
from datetime import datetime

import pytest

from silent_witness.errors import StoreWriteFailure
from silent_witness.models import ErrorRecord
from silent_witness.store import MemoryAggregateStore, SQLiteAggregateStore, utc_now

RECORD = ErrorRecord("Warning", "Undefined variable $x", "foo.php", 10)
OTHER = ErrorRecord("Notice", "Undefined index: id", "bar.php", 3)


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        return MemoryAggregateStore()
    return SQLiteAggregateStore(str(tmp_path / "witness.sqlite"))


class TestUpsert:
    def test_insert_creates_row(self, store):
        store.upsert("h1", RECORD, now="2026-02-12T08:00:00+00:00")
        row = store.get("h1")
        assert row.occurrence_count == 1
        assert row.severity == "Warning"
        assert row.source_line == 10
        assert row.first_seen == row.last_seen == "2026-02-12T08:00:00+00:00"

    def test_repeat_increments(self, store):
        store.upsert("h1", RECORD, now="2026-02-12T08:00:00+00:00")
        store.upsert("h1", RECORD, now="2026-02-12T09:00:00+00:00")
        store.upsert("h1", RECORD, now="2026-02-12T10:00:00+00:00")
        row = store.get("h1")
        assert row.occurrence_count == 3
        assert row.first_seen == "2026-02-12T08:00:00+00:00"
        assert row.last_seen == "2026-02-12T10:00:00+00:00"
        assert store.count() == 1

    def test_existing_content_first_write_wins(self, store):
        store.upsert("h1", RECORD, context={"url": "/a"})
        store.upsert("h1", OTHER, context={"url": "/b"})
        row = store.get("h1")
        assert row.message == RECORD.message
        assert row.source_file == "foo.php"
        assert row.context == {"url": "/a"}

    def test_default_timestamps(self, store):
        store.upsert("h1", RECORD)
        store.upsert("h1", RECORD)
        row = store.get("h1")
        assert row.first_seen <= row.last_seen

    def test_missing_row(self, store):
        assert store.get("nope") is None

    def test_returned_rows_are_snapshots(self, store):
        store.upsert("h1", RECORD)
        fetched = store.get("h1")
        exported = store.export()[0]
        store.upsert("h1", RECORD)
        assert fetched.occurrence_count == 1
        assert exported.occurrence_count == 1
        assert store.get("h1").occurrence_count == 2

    def test_default_timestamp_is_fixed_width(self, store):
        store.upsert("h1", RECORD)
        assert re.fullmatch(r"\d{4}-\d\d-\d\dT\d\d:\d\d:\d\d\.\d{6}\+00:00", store.get("h1").first_seen)


class TestExportClearDestroy:
    def test_export_ordered_by_last_seen_desc(self, store):
        store.upsert("old", RECORD, now="2026-02-12T08:00:00+00:00")
        store.upsert("new", OTHER, now="2026-02-12T09:00:00+00:00")
        assert [r.identity_hash for r in store.export()] == ["new", "old"]
        store.upsert("old", RECORD, now="2026-02-12T10:00:00+00:00")
        assert [r.identity_hash for r in store.export()] == ["old", "new"]

    def test_export_empty(self, store):
        assert store.export() == []

    def test_clear(self, store):
        store.upsert("h1", RECORD)
        store.upsert("h2", OTHER)
        store.clear()
        assert store.count() == 0
        store.upsert("h1", RECORD)
        assert store.get("h1").occurrence_count == 1

    def test_destroy(self, store):
        store.upsert("h1", RECORD)
        store.destroy()
        assert store.count() == 0


def test_utc_now_keeps_zero_microseconds(monkeypatch):
    class FrozenDatetime(datetime):
        @classmethod
        def now(cls, tz=None):
            return datetime(2026, 2, 12, 8, 0, 0, 0, tzinfo=tz)

    monkeypatch.setattr("silent_witness.store.datetime", FrozenDatetime)
    assert utc_now() == "2026-02-12T08:00:00.000000+00:00"


class TestSQLiteStore:
    def test_destroy_drops_table(self, tmp_path):
        db = str(tmp_path / "w.sqlite")
        s = SQLiteAggregateStore(db, table="witness")
        s.upsert("h1", RECORD)
        s.destroy()
        con = sqlite3.connect(db)
        try:
            tables = con.execute(
                "SELECT name FROM sqlite_master WHERE type='table'").fetchall()
        finally:
            con.close()
        assert ("witness",) not in tables

    def test_rows_survive_new_instance(self, tmp_path):
        db = str(tmp_path / "w.sqlite")
        SQLiteAggregateStore(db).upsert("h1", RECORD)
        SQLiteAggregateStore(db).upsert("h1", RECORD)
        assert SQLiteAggregateStore(db).get("h1").occurrence_count == 2

    def test_context_serialized_in_export(self, tmp_path):
        s = SQLiteAggregateStore(str(tmp_path / "w.sqlite"))
        s.upsert("h1", RECORD, context={"method": "GET"})
        assert s.export()[0].to_dict()["context"] == '{"method": "GET"}'

    def test_write_error_becomes_store_write_failure(self, tmp_path):
        s = SQLiteAggregateStore(str(tmp_path / "missing-dir" / "w.sqlite"))
        with pytest.raises(StoreWriteFailure) as exc:
            s.upsert("h1", RECORD)
        assert exc.value.identity_hash == "h1"
        assert exc.value.record == RECORD

    def test_out_of_range_integer_becomes_store_write_failure(self, tmp_path):
        s = SQLiteAggregateStore(str(tmp_path / "w.sqlite"))
        huge = ErrorRecord("Warning", "Oops", "a.php", 99999999999999999999)
        with pytest.raises(StoreWriteFailure) as exc:
            s.upsert("h1", huge)
        assert exc.value.record == huge
        assert s.count() == 0

    def test_table_dropped_elsewhere_is_recreated(self, tmp_path):
        db = str(tmp_path / "w.sqlite")
        watcher = SQLiteAggregateStore(db)
        watcher.upsert("h1", RECORD)
        SQLiteAggregateStore(db).destroy()
        watcher.upsert("h1", RECORD)
        assert watcher.get("h1").occurrence_count == 1

    def test_concurrent_upserts_are_counted(self, tmp_path):
        db = str(tmp_path / "w.sqlite")
        SQLiteAggregateStore(db).upsert("h1", RECORD)

        def worker():
            s = SQLiteAggregateStore(db)
            for _ in range(20):
                s.upsert("h1", RECORD)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert SQLiteAggregateStore(db).get("h1").occurrence_count == 81
