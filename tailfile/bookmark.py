"""Persisted resume point for a tailing session."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Union

from . import jsonutil
from .errors import BookmarkError

PathLike = Union[str, Path]


@dataclass(frozen=True)
class Bookmark:
    original_path: str
    watching_path: str
    position: int

    def to_dict(self) -> Dict[str, str]:
        # Position travels as a string so JSON layers without 64-bit
        # integers keep it exact.
        return {
            "originalPath": self.original_path,
            "watchingPath": self.watching_path,
            "position": str(self.position),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Bookmark":
        if not isinstance(data, dict):
            raise BookmarkError("bookmark must be a JSON object")
        try:
            original = data["originalPath"]
            watching = data["watchingPath"]
            raw_position = data["position"]
        except KeyError as exc:
            raise BookmarkError(f"bookmark is missing {exc.args[0]!r}") from None
        if not isinstance(original, str) or not isinstance(watching, str):
            raise BookmarkError("bookmark paths must be strings")
        if isinstance(raw_position, str):
            # Plain ASCII decimal only: no sign, padding or underscores.
            if not (raw_position.isascii() and raw_position.isdigit()):
                raise BookmarkError(f"invalid bookmark position {raw_position!r}")
            position = int(raw_position)
        elif isinstance(raw_position, int) and not isinstance(raw_position, bool):
            position = raw_position
        else:
            raise BookmarkError(f"invalid bookmark position {raw_position!r}")
        if position < 0:
            raise BookmarkError(f"negative bookmark position {position}")
        return cls(original_path=original, watching_path=watching, position=position)

    def save(self, path: PathLike) -> None:
        """Write the bookmark through a temporary file and swap it in place."""

        path = Path(path)
        temp = path.with_suffix(path.suffix + ".tmp")
        temp.write_bytes(jsonutil.encode(self.to_dict()) + b"\n")
        os.replace(temp, path)

    @classmethod
    def load(cls, path: PathLike) -> "Bookmark":
        """Read a bookmark.

        Raises :class:`FileNotFoundError` when there is no bookmark yet and
        :class:`BookmarkError` when the file cannot be decoded.
        """

        raw = Path(path).read_bytes()
        try:
            data = jsonutil.decode(raw)
        except ValueError as exc:
            raise BookmarkError(f"malformed bookmark {path}: {exc}") from exc
        return cls.from_dict(data)


__all__ = ["Bookmark"]
