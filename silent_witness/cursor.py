"""Tracks the byte offset into the tailed log file.

State is persisted as a JSON file with atomic writes (tmp + os.replace).
Rotation is detected by size only: a file smaller than the stored offset
resets the effective offset to 0.
"""

import json
import logging
import os
import tempfile

logger = logging.getLogger(__name__)


class OffsetCursor:
    def __init__(self, state_file: str):
        self._state_file = state_file

    @property
    def state_file(self) -> str:
        return self._state_file

    def read(self) -> int:
        if not os.path.exists(self._state_file):
            return 0
        try:
            with open(self._state_file, "r", encoding="utf-8") as f:
                data = json.load(f)
            offset = int(data.get("offset", 0))
        except (json.JSONDecodeError, OSError, ValueError, TypeError, AttributeError) as e:
            logger.warning("Failed to load cursor %s: %s", self._state_file, e)
            return 0
        return max(offset, 0)

    def write(self, byte_offset: int) -> None:
        if byte_offset < 0:
            raise ValueError(f"byte offset must be non-negative, got {byte_offset}")
        state_dir = os.path.dirname(self._state_file) or "."
        os.makedirs(state_dir, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=state_dir)
        try:
            with os.fdopen(fd, "w") as f:
                json.dump({"offset": byte_offset}, f)
            os.replace(tmp, self._state_file)
        except Exception:
            os.unlink(tmp)
            raise

    def reconcile(self, current_file_size: int) -> int:
        """Return the offset to seek to, resetting to 0 if the file shrank."""
        stored = self.read()
        if current_file_size < stored:
            logger.info("Log truncated or rotated (size %d < offset %d), rereading from start",
                        current_file_size, stored)
            return 0
        return stored

    def delete(self) -> None:
        if os.path.exists(self._state_file):
            os.remove(self._state_file)
