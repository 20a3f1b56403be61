"""Follow a growing file by name across log rotation, like ``tail -F``."""
from __future__ import annotations

import logging

from .bookmark import Bookmark
from .config import TailConfig, load_config
from .errors import (
    BookmarkError,
    BookmarkMismatchError,
    DirectoryRemovedError,
    NotifierError,
    ProbeError,
    TailError,
)
from .tailer import State, TailFile
from .version import __version__

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "Bookmark",
    "BookmarkError",
    "BookmarkMismatchError",
    "DirectoryRemovedError",
    "NotifierError",
    "ProbeError",
    "State",
    "TailConfig",
    "TailError",
    "TailFile",
    "__version__",
    "load_config",
]
