"""Incremental CRLF record splitter.

``RecordSplitter`` turns the chunks read from one growing file into complete
records.  A record ends at a carriage-return immediately followed by a
line-feed; a lone ``\\r`` or a lone ``\\n`` is ordinary content and stays in
the record verbatim.

The splitter keeps two pieces of state between calls:

- the *carry buffer* — content read so far that has not been terminated yet;
- ``pending_cr`` — whether the last character seen was a ``\\r`` that may
  turn out to be the first half of a terminator.

Together they let a terminator straddle two reads (``...\\r`` | ``\\n...``)
and let a partial record survive until the writer finishes it, possibly
several drains later.  The records produced are the same for every chunk
size >= 1.

Typical usage::

    splitter = RecordSplitter()
    with path.open(encoding="utf-8", newline="") as fh:
        for record in splitter.drain(fh):
            handle(record)
        # ... later, after the file has grown ...
        for record in splitter.drain(fh):
            handle(record)

Open files with ``newline=""``; universal-newline translation would turn
``\\r\\n`` into ``\\n`` before the splitter sees it.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Protocol

DEFAULT_CHUNK_SIZE = 4096
TERMINATOR = "\r\n"


class ChunkSource(Protocol):
    """Anything with a text ``read(size)`` that returns ``""`` when drained."""

    def read(self, size: int = ..., /) -> str: ...


class RecordSplitter:
    """Stateful splitter for one file.

    Reuse the same instance for every drain of a file so the carry buffer
    bridges wait/resume cycles.

    Args:
        chunk_size: Number of characters requested per ``read`` in
                    :meth:`drain`.  Must be at least 1.
    """

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")
        self.chunk_size = chunk_size
        self._carry: list[str] = []
        self._pending_cr = False

    @property
    def pending(self) -> str:
        """Content read but not yet terminated."""
        return "".join(self._carry)

    def feed(self, chunk: str) -> list[str]:
        """Scan *chunk* and return the records it completes.

        Only line-feeds can close a record, so the scan jumps from one
        ``\\n`` to the next.  A ``\\n`` closes a record when the character
        before it is ``\\r`` — inside this chunk, or (for the first character)
        the ``pending_cr`` left over from the previous chunk.  On a match, the
        content from ``write_start`` up to the ``\\n`` is appended to the
        carry buffer, the trailing ``\\r`` is dropped, and the buffer is
        emitted as one record.  Whatever follows the last terminator is
        appended to the carry buffer.
        """
        records: list[str] = []
        write_start = 0
        index = chunk.find("\n")
        while index != -1:
            preceded_by_cr = chunk[index - 1] == "\r" if index > 0 else self._pending_cr
            if preceded_by_cr:
                self._carry.append(chunk[write_start:index])
                records.append("".join(self._carry)[:-1])
                self._carry = []
                write_start = index + 1
            index = chunk.find("\n", index + 1)

        if write_start < len(chunk):
            self._carry.append(chunk[write_start:])
        if chunk:
            self._pending_cr = chunk[-1] == "\r"
        return records

    def drain(self, source: ChunkSource) -> Iterator[str]:
        """Yield records from *source* until it reports no data.

        Reads ``chunk_size`` characters at a time and stops at the first
        empty read.  An unterminated tail is kept in the carry buffer for
        the next call, never emitted.
        """
        while chunk := source.read(self.chunk_size):
            yield from self.feed(chunk)
