"""Exception types raised by tailfile."""
from __future__ import annotations


class TailError(Exception):
    """Base class for fatal tailing errors."""


class ProbeError(TailError):
    """Identity of an open handle could not be determined."""


class BookmarkError(TailError):
    """A bookmark file exists but cannot be used."""


class BookmarkMismatchError(BookmarkError):
    def __init__(self, original_path: str, target_path: str) -> None:
        super().__init__(
            f'bookmark originalPath "{original_path}" does not match "{target_path}"'
        )
        self.original_path = original_path
        self.target_path = target_path


class DirectoryRemovedError(TailError):
    def __init__(self, directory: str) -> None:
        super().__init__(f"directory of watched file was removed: {directory}")
        self.directory = directory


class NotifierError(TailError):
    """The change notification backend failed."""


__all__ = [
    "BookmarkError",
    "BookmarkMismatchError",
    "DirectoryRemovedError",
    "NotifierError",
    "ProbeError",
    "TailError",
]
