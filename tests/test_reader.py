import io
from pathlib import Path

import pytest

from tailfile.reader import LineReader


def test_reader_splits_lines_and_tracks_offset() -> None:
    reader = LineReader(io.BytesIO(b"alpha\nbeta\n"))
    assert reader.read_line() == b"alpha"
    assert reader.offset == 6
    assert reader.read_line() == b"beta"
    assert reader.offset == 11
    assert reader.read_line() is None
    assert reader.at_eof


def test_reader_keeps_partial_line_until_completed(tmp_path: Path) -> None:
    path = tmp_path / "app.log"
    path.write_bytes(b"first\npar")
    with path.open("rb", buffering=0) as stream:
        reader = LineReader(stream)
        assert list(reader.lines()) == [b"first"]
        assert reader.pending == b"par"
        assert reader.offset == 6

        with path.open("ab") as writer:
            writer.write(b"tial\nrest")
        assert list(reader.lines()) == [b"partial"]
        assert reader.pending == b"rest"
        assert reader.offset == 14


def test_reader_handles_lines_across_small_chunks() -> None:
    reader = LineReader(io.BytesIO(b"abcdefgh\nij\n\nk"), chunk_size=3)
    assert list(reader.lines()) == [b"abcdefgh", b"ij", b""]
    assert reader.flush() == b"k"
    assert reader.flush() is None
    assert reader.offset == 14


def test_reader_resumes_offset_from_start_position() -> None:
    stream = io.BytesIO(b"old\nnew\n")
    stream.seek(4)
    reader = LineReader(stream, offset=4)
    assert reader.read_line() == b"new"
    assert reader.offset == 8


def test_reader_propagates_read_errors() -> None:
    class _Broken(io.RawIOBase):
        def readable(self) -> bool:
            return True

        def read(self, size: int = -1) -> bytes:
            raise OSError("disk on fire")

    reader = LineReader(_Broken())  # type: ignore[arg-type]
    with pytest.raises(OSError, match="disk on fire"):
        reader.read_line()
