"""Incremental Server-Sent Events decoder.

Records are generic: any field name is accepted, not just the standard
``event``/``data``/``id``/``retry`` fields.
"""

from __future__ import annotations

import logging
import re

logger = logging.getLogger(__name__)

SSERecord = dict[str, str]

_LINE_BREAK = re.compile(r"\r\n|\r|\n")


class SSEParser:
    """Decode a stream of text into SSE records.

    One parser instance serves exactly one connection. Text may be fed in
    arbitrary chunks; lines split across chunks (including a CRLF pair split
    between two chunks) are reassembled.
    """

    def __init__(self) -> None:
        self._record: SSERecord = {}
        self._buffer = ""
        self._skip_lf = False

    def feed(self, chunk: str) -> list[SSERecord]:
        """Consume a chunk of text.

        Args:
            chunk: Next piece of the response body

        Returns:
            Records completed by this chunk, in order
        """
        # A CR ending the previous chunk may be the first half of a CRLF pair
        if self._skip_lf and chunk.startswith("\n"):
            chunk = chunk[1:]
        self._skip_lf = False
        if not chunk:
            return []

        text = self._buffer + chunk
        self._skip_lf = text.endswith("\r")
        lines = _LINE_BREAK.split(text)
        self._buffer = lines.pop()

        records = []
        for line in lines:
            record = self.feed_line(line)
            if record is not None:
                records.append(record)
        return records

    def feed_line(self, line: str) -> SSERecord | None:
        """Consume one complete line (without its terminator).

        Returns:
            The completed record when ``line`` is blank and fields are pending
        """
        if not line:
            if not self._record:
                return None
            record, self._record = self._record, {}
            return record

        if line.startswith(":"):
            logger.debug(f"Event stream comment {line!r}")
            return None

        name, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]
        if name in self._record:
            self._record[name] = f"{self._record[name]}\n{value}"
        else:
            self._record[name] = value
        return None
