"""
Reassembly of server replies read from the control connection.

A reply is a 3-digit code followed by text. A ``-`` right after the code
opens a multi-line reply, which runs until a line starting with the same
code and not followed by ``-`` (RFC 959, section 4.2)::

    123-First line
    Second line
      234 A line beginning with numbers
    123 The last line

Lines inside such a block are kept verbatim and joined with newlines, so
the reply above becomes a single :class:`ReplyRecord` with code 123.
"""

from __future__ import annotations

import logging
import re
from typing import NamedTuple

logger = logging.getLogger(__name__)


_REPLY_LINE_RE = re.compile(r"^(\d{3})(.*)$")
_NEWLINE_RE = re.compile(r"\r\n|\n")


class ReplyRecord(NamedTuple):
    code: int
    text: str

    @property
    def group(self) -> int:
        """The function group, encoded in the second digit of the code"""
        return self.code // 10 % 10

    @property
    def lines(self) -> list[str]:
        return self.text.split("\n")


class ReplyFramer:
    """Turn chunks of control connection text into :class:`ReplyRecord` s.

    Text is buffered until a chunk ends on a line terminator, a multi-line
    reply that is still open when a chunk has been consumed stays open for
    the next one.
    """

    def __init__(self) -> None:
        self._buffer: str = ""
        self._pending_code: int | None = None
        self._pending_text: list[str] = []

    @property
    def in_multiline(self) -> bool:
        return self._pending_code is not None

    def feed(self, data: str) -> list[ReplyRecord]:
        self._buffer += data
        if not self._buffer.endswith("\n"):
            return []
        lines = _NEWLINE_RE.split(self._buffer)
        self._buffer = ""
        # the buffer ends with a terminator, so the last element is empty
        lines.pop()
        return self.parse_lines(lines)

    def parse_lines(self, lines: list[str]) -> list[ReplyRecord]:
        records = []
        for line in lines:
            record = self._parse_line(line)
            if record is not None:
                records.append(record)
        return records

    def _parse_line(self, line: str) -> ReplyRecord | None:
        match = _REPLY_LINE_RE.match(line)
        if self._pending_code is not None:
            self._pending_text.append(line)
            if (
                match
                and int(match.group(1)) == self._pending_code
                and not match.group(2).startswith("-")
            ):
                record = ReplyRecord(self._pending_code, "\n".join(self._pending_text))
                self._pending_code = None
                self._pending_text = []
                return record
            return None
        if not match:
            if line:
                logger.debug("Discarding stray line outside a reply: %r", line)
            return None
        code, text = int(match.group(1)), match.group(2)
        if text.startswith("-"):
            self._pending_code = code
            self._pending_text = [text]
            return None
        return ReplyRecord(code, text)


def parse_responses(lines: list[str]) -> list[ReplyRecord]:
    """Reassemble an already split list of reply lines.

    Lines of a multi-line reply left open at the end are not returned.
    """
    if not isinstance(lines, list):
        raise TypeError(f"Expected a list of lines, got {type(lines).__name__}")
    return ReplyFramer().parse_lines(lines)
