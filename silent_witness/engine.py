"""Ingestion engine: tails the error log into the aggregate store.

One ``ingest()`` call reads the bytes appended since the stored cursor, up to
the file size observed when the call started. Complete lines are parsed; each
match is hashed and upserted before it counts. The cursor is then written as
the position right after the last complete line read, so a half-written
trailing line is picked up by a later run.
"""

import logging
import os

from silent_witness.cursor import OffsetCursor
from silent_witness.errors import (
    ConfirmationRequired,
    CursorWriteFailure,
    IngestResult,
    SourceNotFound,
    SourceUnreadable,
    StoreWriteFailure,
)
from silent_witness.hasher import identity_hash
from silent_witness.models import AggregateRow
from silent_witness.parser import LineParser
from silent_witness.store import AggregateStore

logger = logging.getLogger(__name__)


class IngestionEngine:
    def __init__(self, log_file: str, cursor: OffsetCursor, store: AggregateStore,
                 parser: LineParser | None = None):
        self._log_file = log_file
        self._cursor = cursor
        self._store = store
        self._parser = parser or LineParser()

    @property
    def log_file(self) -> str:
        return self._log_file

    def ingest(self) -> IngestResult:
        """Ingest new lines. Failures are returned in the result, never raised."""
        stored = self._cursor.read()

        if not os.path.exists(self._log_file):
            logger.debug("Log file not found: %s", self._log_file)
            return IngestResult(0, stored, stored, error=SourceNotFound(self._log_file))

        try:
            fh = open(self._log_file, "rb")
        except OSError as e:
            logger.warning("Cannot open %s: %s", self._log_file, e)
            return IngestResult(0, stored, stored,
                                error=SourceUnreadable(self._log_file, str(e)))

        with fh:
            size = os.fstat(fh.fileno()).st_size
            start = self._cursor.reconcile(size)
            rotated = start != stored
            fh.seek(start)

            position = start
            matched = 0
            skipped = 0
            failure = None

            while position < size:
                raw = fh.readline(size - position)
                if not raw or not raw.endswith(b"\n"):
                    break
                line = raw.decode("utf-8", errors="replace")
                record = self._parser.parse(line)
                if record is None:
                    skipped += 1
                    position += len(raw)
                    continue

                key = identity_hash(record)
                try:
                    self._store.upsert(key, record)
                except StoreWriteFailure as e:
                    failure = StoreWriteFailure(key, record, position, e.reason)
                    logger.error("Stopping ingest at byte %d: %s", position, e.reason)
                    break
                matched += 1
                position += len(raw)

        if position != stored:
            try:
                self._cursor.write(position)
            except OSError as e:
                logger.error("Cannot save offset %d to %s: %s",
                             position, self._cursor.state_file, e)
                # Upserts stay applied; the next run starts from the old offset.
                failure = failure or CursorWriteFailure(self._cursor.state_file, position, str(e))

        if matched:
            logger.info("Ingested %d new entries from %s (bytes %d-%d)",
                        matched, self._log_file, start, position)
        return IngestResult(
            new_entries=matched,
            start_offset=start,
            end_offset=position,
            rotated=rotated,
            skipped_lines=skipped,
            error=failure,
        )

    def export(self) -> list[AggregateRow]:
        return self._store.export()

    def clear(self, confirm: bool = False) -> None:
        """Delete every aggregate row and reset the cursor to 0."""
        if not confirm:
            raise ConfirmationRequired("clear")
        self._store.clear()
        self._cursor.write(0)
        logger.info("Cleared aggregate store and reset cursor")

    def destroy(self, confirm: bool = False) -> None:
        """Drop the aggregate store and delete the cursor. Irreversible."""
        if not confirm:
            raise ConfirmationRequired("destroy")
        self._store.destroy()
        self._cursor.delete()
        logger.info("Destroyed aggregate store and cursor")
