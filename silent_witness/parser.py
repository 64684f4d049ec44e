"""Parses PHP error-log lines into ErrorRecords.

Expected format:
    [12-Feb-2026 08:00:00 UTC] PHP Warning:  Undefined variable $x in /var/www/site/index.php on line 10
"""

import re

from silent_witness.models import ErrorRecord

DEFAULT_MAX_MESSAGE_LENGTH = 2000
MAX_SOURCE_LINE = 2**63 - 1  # largest SQLite INTEGER


def _compile(engine_tag: str) -> re.Pattern:
    return re.compile(
        r'^\[(?P<time>[^\]]+)\] '
        + re.escape(engine_tag) +
        r' (?P<severity>[^:]+):[ \t]+'
        r'(?P<message>.+) in (?P<file>.+?) on line (?P<line>[0-9]+)$'
    )


class LineParser:
    def __init__(self, root_prefix: str = "", engine_tag: str = "PHP",
                 max_message_length: int = DEFAULT_MAX_MESSAGE_LENGTH):
        self._root_prefix = root_prefix
        self._max_message_length = max_message_length
        self._pattern = _compile(engine_tag)

    def strip_root(self, path: str) -> str:
        if self._root_prefix and path.startswith(self._root_prefix):
            return path[len(self._root_prefix):]
        return path

    def parse(self, line: str) -> ErrorRecord | None:
        """Parse one raw line, or return None if it does not match the grammar."""
        m = self._pattern.match(line.rstrip("\r\n"))
        if not m:
            return None
        digits = m.group("line")
        if len(digits) > len(str(MAX_SOURCE_LINE)) or int(digits) > MAX_SOURCE_LINE:
            return None
        source_line = int(digits)

        return ErrorRecord(
            severity=m.group("severity"),
            message=m.group("message")[:self._max_message_length],
            source_file=self.strip_root(m.group("file")),
            source_line=source_line,
            timestamp=m.group("time"),
        )


def parse_line(line: str, root_prefix: str = "") -> ErrorRecord | None:
    """Parse with the default engine tag and message limit."""
    return LineParser(root_prefix).parse(line)
