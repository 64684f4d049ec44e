"""Aggregate stores: one row per identity hash with a running occurrence count."""

import json
import logging
import sqlite3
import threading
from dataclasses import replace
from datetime import datetime, timezone

from silent_witness.errors import StoreWriteFailure
from silent_witness.models import AggregateRow, ErrorRecord

logger = logging.getLogger(__name__)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


class AggregateStore:
    """Upsert contract consumed by the ingestion engine.

    ``upsert`` inserts a new row with count 1, or increments the count and
    refreshes ``last_seen`` on an existing row. Content fields and context of
    an existing row are never overwritten.
    """

    def upsert(self, identity_hash: str, record: ErrorRecord,
               context: dict | None = None, now: str | None = None) -> None:
        raise NotImplementedError

    def get(self, identity_hash: str) -> AggregateRow | None:
        raise NotImplementedError

    def export(self) -> list[AggregateRow]:
        """All rows, most recently seen first."""
        raise NotImplementedError

    def count(self) -> int:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError

    def destroy(self) -> None:
        raise NotImplementedError


class MemoryAggregateStore(AggregateStore):
    """Thread-safe in-memory store, used for embedding and tests."""

    def __init__(self):
        self._rows: dict[str, AggregateRow] = {}
        self._lock = threading.Lock()

    def upsert(self, identity_hash, record, context=None, now=None):
        now = now or utc_now()
        with self._lock:
            row = self._rows.get(identity_hash)
            if row is None:
                self._rows[identity_hash] = AggregateRow(
                    identity_hash=identity_hash,
                    severity=record.severity,
                    message=record.message,
                    source_file=record.source_file,
                    source_line=record.source_line,
                    occurrence_count=1,
                    first_seen=now,
                    last_seen=now,
                    context=context,
                )
            else:
                row.occurrence_count += 1
                row.last_seen = now

    def get(self, identity_hash):
        with self._lock:
            row = self._rows.get(identity_hash)
            return replace(row) if row is not None else None

    def export(self):
        with self._lock:
            rows = [replace(row) for row in self._rows.values()]
        return sorted(rows, key=lambda r: r.last_seen, reverse=True)

    def count(self):
        with self._lock:
            return len(self._rows)

    def clear(self):
        with self._lock:
            self._rows.clear()

    def destroy(self):
        self.clear()


class SQLiteAggregateStore(AggregateStore):
    """SQLite-backed store. Each upsert is a single INSERT ... ON CONFLICT statement."""

    def __init__(self, db_path: str, table: str = "silent_witness_logs", timeout: float = 30.0):
        self.db_path = db_path
        self.table = table
        self._timeout = timeout

    def _connect(self) -> sqlite3.Connection:
        con = sqlite3.connect(self.db_path, timeout=self._timeout)
        con.row_factory = sqlite3.Row
        return con

    def _ensure_table(self, con: sqlite3.Connection) -> None:
        # Runs per connection: another process may have dropped the table.
        con.execute(f"""
            CREATE TABLE IF NOT EXISTS {self.table} (
                hash CHAR(32) NOT NULL PRIMARY KEY,
                type VARCHAR(50) NOT NULL,
                message TEXT NOT NULL,
                file VARCHAR(255) NOT NULL,
                line INTEGER NOT NULL CHECK (line >= 0),
                count INTEGER NOT NULL DEFAULT 1,
                first_seen TEXT NOT NULL,
                last_seen TEXT NOT NULL,
                context TEXT
            )
        """)
        con.execute(f"CREATE INDEX IF NOT EXISTS idx_{self.table}_last_seen "
                    f"ON {self.table} (last_seen)")
        con.commit()

    def upsert(self, identity_hash, record, context=None, now=None):
        now = now or utc_now()
        payload = json.dumps(context) if context is not None else None
        try:
            con = self._connect()
            try:
                self._ensure_table(con)
                con.execute(f"""
                    INSERT INTO {self.table}
                        (hash, type, message, file, line, count, first_seen, last_seen, context)
                    VALUES (?, ?, ?, ?, ?, 1, ?, ?, ?)
                    ON CONFLICT(hash) DO UPDATE SET
                        count = count + 1,
                        last_seen = excluded.last_seen
                """, (identity_hash, record.severity, record.message, record.source_file,
                      record.source_line, now, now, payload))
                con.commit()
            finally:
                con.close()
        except (sqlite3.Error, OverflowError, ValueError) as e:
            logger.error("Upsert failed for %s: %s", identity_hash, e)
            raise StoreWriteFailure(identity_hash, record, -1, str(e)) from e

    @staticmethod
    def _to_row(r: sqlite3.Row) -> AggregateRow:
        return AggregateRow(
            identity_hash=r["hash"],
            severity=r["type"],
            message=r["message"],
            source_file=r["file"],
            source_line=r["line"],
            occurrence_count=r["count"],
            first_seen=r["first_seen"],
            last_seen=r["last_seen"],
            context=json.loads(r["context"]) if r["context"] else None,
        )

    def get(self, identity_hash):
        con = self._connect()
        try:
            self._ensure_table(con)
            r = con.execute(f"SELECT * FROM {self.table} WHERE hash = ?",
                            (identity_hash,)).fetchone()
        finally:
            con.close()
        return self._to_row(r) if r else None

    def export(self):
        con = self._connect()
        try:
            self._ensure_table(con)
            rows = con.execute(
                f"SELECT * FROM {self.table} ORDER BY last_seen DESC, hash").fetchall()
        finally:
            con.close()
        return [self._to_row(r) for r in rows]

    def count(self):
        con = self._connect()
        try:
            self._ensure_table(con)
            (n,) = con.execute(f"SELECT COUNT(*) FROM {self.table}").fetchone()
        finally:
            con.close()
        return n

    def clear(self):
        con = self._connect()
        try:
            self._ensure_table(con)
            con.execute(f"DELETE FROM {self.table}")
            con.commit()
        finally:
            con.close()

    def destroy(self):
        con = self._connect()
        try:
            con.execute(f"DROP TABLE IF EXISTS {self.table}")
            con.commit()
        finally:
            con.close()
