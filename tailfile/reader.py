"""Buffered line reader that keeps unterminated fragments for later."""
from __future__ import annotations

from typing import BinaryIO, Iterator, Optional

_DEFAULT_CHUNK_SIZE = 64 * 1024


class LineReader:
    """Split a byte stream into newline terminated lines.

    A trailing fragment without a newline is never returned by
    :meth:`read_line`; it stays buffered until the rest of the line arrives,
    or until :meth:`flush` hands it out when the stream is abandoned.
    """

    def __init__(self, stream: BinaryIO, *, offset: int = 0, chunk_size: int = _DEFAULT_CHUNK_SIZE) -> None:
        self.stream = stream
        self.chunk_size = chunk_size
        self.at_eof = False
        self._buffer = bytearray()
        self._scanned = 0
        self._offset = offset

    @property
    def offset(self) -> int:
        """Byte offset just past the last complete line handed out."""

        return self._offset

    @property
    def pending(self) -> bytes:
        return bytes(self._buffer)

    def read_line(self) -> Optional[bytes]:
        """Return the next line without its newline, or None at end of input."""

        while True:
            index = self._buffer.find(b"\n", self._scanned)
            if index >= 0:
                line = bytes(self._buffer[:index])
                del self._buffer[: index + 1]
                self._scanned = 0
                self._offset += index + 1
                self.at_eof = False
                return line
            self._scanned = len(self._buffer)
            chunk = self.stream.read(self.chunk_size)
            if not chunk:
                self.at_eof = True
                return None
            self._buffer += chunk

    def lines(self) -> Iterator[bytes]:
        """Yield complete lines until the stream is exhausted."""

        while True:
            line = self.read_line()
            if line is None:
                return
            yield line

    def flush(self) -> Optional[bytes]:
        """Release the buffered fragment, if any, as a final line."""

        if not self._buffer:
            return None
        fragment = bytes(self._buffer)
        self._offset += len(fragment)
        self._buffer.clear()
        self._scanned = 0
        return fragment


__all__ = ["LineReader"]
