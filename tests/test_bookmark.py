from pathlib import Path

import pytest

from tailfile.bookmark import Bookmark
from tailfile.errors import BookmarkError

_WIRE = '{"originalPath":"/a/access.log","watchingPath":"/a/access.log.old","position":"234"}'


def test_bookmark_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "bookmark.json"
    bookmark = Bookmark(original_path="/a/access.log", watching_path="/a/access.log.old", position=234)
    bookmark.save(path)
    loaded = Bookmark.load(path)
    assert loaded == bookmark
    assert loaded.position == 234
    assert isinstance(loaded.position, int)


def test_bookmark_encodes_position_as_string(tmp_path: Path) -> None:
    path = tmp_path / "bookmark.json"
    Bookmark("/a/access.log", "/a/access.log.old", 234).save(path)
    assert path.read_text(encoding="utf-8") == _WIRE + "\n"


def test_bookmark_loads_wire_format(tmp_path: Path) -> None:
    path = tmp_path / "bookmark.json"
    path.write_text(_WIRE)
    assert Bookmark.load(path) == Bookmark("/a/access.log", "/a/access.log.old", 234)


def test_bookmark_save_replaces_atomically(tmp_path: Path) -> None:
    path = tmp_path / "bookmark.json"
    path.write_text("corrupted")
    Bookmark("/a/access.log", "/a/access.log", 7).save(path)
    assert Bookmark.load(path).position == 7
    assert not path.with_suffix(path.suffix + ".tmp").exists()


def test_missing_bookmark_is_distinguished(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        Bookmark.load(tmp_path / "absent.json")


@pytest.mark.parametrize(
    "content",
    [
        "not json",
        "[1, 2]",
        '{"originalPath":"/a","watchingPath":"/a"}',
        '{"originalPath":"/a","watchingPath":"/a","position":"twelve"}',
        '{"originalPath":"/a","watchingPath":"/a","position":"-1"}',
        '{"originalPath":"/a","watchingPath":3,"position":"1"}',
    ],
)
def test_malformed_bookmark_is_rejected(tmp_path: Path, content: str) -> None:
    path = tmp_path / "bookmark.json"
    path.write_text(content)
    with pytest.raises(BookmarkError):
        Bookmark.load(path)


@pytest.mark.parametrize("position", ['" 12 "', '"+5"', '"1_000"', '"\\u0661\\u0662"', '""', "true", "1.5"])
def test_position_must_be_plain_decimal(tmp_path: Path, position: str) -> None:
    path = tmp_path / "bookmark.json"
    path.write_text('{"originalPath":"/a","watchingPath":"/a","position":%s}' % position)
    with pytest.raises(BookmarkError):
        Bookmark.load(path)


def test_numeric_position_is_accepted(tmp_path: Path) -> None:
    path = tmp_path / "bookmark.json"
    path.write_text('{"originalPath":"/a","watchingPath":"/a","position":12}')
    assert Bookmark.load(path).position == 12


def test_undecodable_bytes_are_rejected(tmp_path: Path) -> None:
    path = tmp_path / "bookmark.json"
    path.write_bytes(b'{"originalPath":"/\xff","watchingPath":"/a","position":"1"}')
    with pytest.raises(BookmarkError):
        Bookmark.load(path)
