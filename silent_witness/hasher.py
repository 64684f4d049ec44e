"""Identity hash used as the aggregate primary key."""

import hashlib

from silent_witness.models import ErrorRecord


def identity_hash(record: ErrorRecord) -> str:
    """Return the 32-char MD5 hex digest of severity, message, file and line, in that order."""
    blob = f"{record.severity}{record.message}{record.source_file}{record.source_line}"
    return hashlib.md5(blob.encode("utf-8"), usedforsecurity=False).hexdigest()
