"""Failure taxonomy for ingestion and the destructive store actions."""

from dataclasses import dataclass


class WitnessError(Exception):
    """Base class for every failure reported by the ingestion engine."""


class SourceNotFound(WitnessError):
    def __init__(self, path: str):
        super().__init__(f"log source not found: {path}")
        self.path = path


class SourceUnreadable(WitnessError):
    def __init__(self, path: str, reason: str):
        super().__init__(f"log source unreadable: {path} ({reason})")
        self.path = path
        self.reason = reason


class StoreWriteFailure(WitnessError):
    """An upsert did not apply.

    Carries the parsed record and the byte offset where its line starts, so the
    caller can retry from exactly that position.
    """

    def __init__(self, identity_hash: str, record, byte_offset: int, reason: str):
        super().__init__(f"upsert failed for {identity_hash} at byte {byte_offset}: {reason}")
        self.identity_hash = identity_hash
        self.record = record
        self.byte_offset = byte_offset
        self.reason = reason


class CursorWriteFailure(WitnessError):
    def __init__(self, state_file: str, byte_offset: int, reason: str):
        super().__init__(f"could not save offset {byte_offset} to {state_file}: {reason}")
        self.state_file = state_file
        self.byte_offset = byte_offset
        self.reason = reason


class ConfirmationRequired(WitnessError):
    def __init__(self, action: str):
        super().__init__(f"'{action}' is destructive and requires explicit confirmation")
        self.action = action


@dataclass(frozen=True)
class IngestResult:
    new_entries: int
    start_offset: int
    end_offset: int
    rotated: bool = False
    skipped_lines: int = 0
    error: WitnessError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None
