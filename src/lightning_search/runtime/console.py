"""Terminal output for supervised child processes.

Child programs report progress by rewriting a single line with ``\\r`` (the
seeder prints ``\\rProgress: 42%`` without a newline). ``ProgressConsole``
keeps that behaviour on the user's terminal: progress lines overwrite each
other in place while every other line is appended normally.
"""

from __future__ import annotations

import codecs
import re
import sys
from typing import TextIO


_LINE_BREAK = re.compile(r"[\r\n]")

ERROR_PREFIX = "[error]"


class LineSplitter:
    """Incrementally split a byte stream into lines on both ``\\n`` and ``\\r``.

    Chunks may end mid-line or mid-character; the remainder is buffered until
    the next ``feed`` or ``flush``. Empty lines (for example the gap inside a
    ``\\r\\n`` pair) are dropped.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes) -> list[str]:
        self._buffer += self._decoder.decode(chunk)
        *complete, self._buffer = _LINE_BREAK.split(self._buffer)
        return [line for line in complete if line]

    def flush(self) -> list[str]:
        remainder = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        return [line for line in _LINE_BREAK.split(remainder) if line]


class ProgressConsole:
    """Write child output, coalescing progress lines into one in-place line."""

    def __init__(
        self,
        stream: TextIO | None = None,
        error_stream: TextIO | None = None,
        *,
        progress_marker: str = "Progress:",
    ) -> None:
        self.stream = stream if stream is not None else sys.stdout
        self.error_stream = error_stream if error_stream is not None else sys.stderr
        self.progress_marker = progress_marker
        self._progress_width = 0

    @property
    def in_progress(self) -> bool:
        return self._progress_width > 0

    def is_progress(self, line: str) -> bool:
        return line.lstrip().startswith(self.progress_marker)

    def primary(self, line: str) -> None:
        """Handle one line from the child's primary output."""
        if self.is_progress(line):
            text = line.strip()
            self.stream.write("\r" + text.ljust(self._progress_width))
            self._progress_width = max(len(text), 1)
            self.stream.flush()
            return
        self.line(line)

    def diagnostic(self, line: str) -> None:
        """Handle one line from the child's diagnostic output; never coalesced."""
        self._end_progress()
        self.error_stream.write(f"{ERROR_PREFIX} {line}\n")
        self.error_stream.flush()

    def line(self, message: str) -> None:
        self._end_progress()
        self.stream.write(f"{message}\n")
        self.stream.flush()

    info = line

    def warning(self, message: str) -> None:
        self._end_progress()
        self.error_stream.write(f"[warning] {message}\n")
        self.error_stream.flush()

    def error(self, message: str) -> None:
        self.diagnostic(message)

    def finish(self) -> None:
        """Terminate a pending in-place progress line."""
        self._end_progress()

    def _end_progress(self) -> None:
        if self._progress_width:
            self.stream.write("\n")
            self.stream.flush()
            self._progress_width = 0
