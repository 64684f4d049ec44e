"""Error record and aggregate row models."""

import json
from dataclasses import dataclass


@dataclass(frozen=True)
class ErrorRecord:
    severity: str        # level token as logged, e.g. "Warning", "Fatal error"
    message: str         # already truncated to the configured maximum
    source_file: str     # relative to the installation root when under it
    source_line: int
    timestamp: str = ""  # raw bracketed token, not part of the identity


@dataclass
class AggregateRow:
    identity_hash: str
    severity: str
    message: str
    source_file: str
    source_line: int
    occurrence_count: int
    first_seen: str      # ISO 8601, UTC
    last_seen: str
    context: dict | None = None

    def to_dict(self) -> dict:
        return {
            "hash": self.identity_hash,
            "type": self.severity,
            "message": self.message,
            "file": self.source_file,
            "line": self.source_line,
            "count": self.occurrence_count,
            "first_seen": self.first_seen,
            "last_seen": self.last_seen,
            "context": json.dumps(self.context) if self.context is not None else None,
        }
