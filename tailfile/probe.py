"""File identity probes: size, removal and current path of an open handle."""
from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from typing import IO, Optional, Union

from .errors import ProbeError

Handle = Union[int, IO[bytes]]


@dataclass(frozen=True)
class FileSnapshot:
    size: int
    removed: bool
    # None when the platform cannot resolve a handle back to a path.
    path: Optional[str]


def _fileno(handle: Handle) -> int:
    return handle if isinstance(handle, int) else handle.fileno()


def resolve(path: str) -> str:
    """Absolute, symlink-free form of ``path``; the file need not exist."""

    return os.path.realpath(os.path.abspath(path))


def same_file(a: str, b: str) -> bool:
    """Return True when both paths exist and name the same device/inode."""

    try:
        return os.path.samestat(os.stat(a), os.stat(b))
    except FileNotFoundError:
        return False


def handle_matches(handle: Handle, path: str) -> bool:
    """Return True when ``path`` currently names the file behind ``handle``."""

    try:
        path_stat = os.stat(path)
    except FileNotFoundError:
        return False
    try:
        handle_stat = os.fstat(_fileno(handle))
    except OSError as exc:
        raise ProbeError(f"fstat failed: {exc}") from exc
    return os.path.samestat(handle_stat, path_stat)


class Probe:
    """Base probe; subclasses know how to turn a descriptor into a path."""

    name = "base"
    can_resolve_path = True

    def snapshot(self, handle: Handle) -> FileSnapshot:
        fd = _fileno(handle)
        try:
            st = os.fstat(fd)
            path = self.current_path(fd) if self.can_resolve_path else None
        except OSError as exc:
            raise ProbeError(f"probing descriptor {fd} failed: {exc}") from exc
        return FileSnapshot(size=st.st_size, removed=st.st_nlink == 0, path=path)

    def current_path(self, fd: int) -> str:
        raise NotImplementedError


class LinuxProbe(Probe):
    name = "linux"

    def current_path(self, fd: int) -> str:
        return os.readlink(f"/proc/self/fd/{fd}")


class DarwinProbe(Probe):
    name = "darwin"
    _PATH_MAX = 1024

    def current_path(self, fd: int) -> str:
        import fcntl

        buf = fcntl.fcntl(fd, fcntl.F_GETPATH, bytes(self._PATH_MAX))  # type: ignore[attr-defined]
        return os.fsdecode(buf.split(b"\0", 1)[0])


class UnsupportedProbe(Probe):
    """Size and link count only; renames must be inferred by the caller."""

    name = "unsupported"
    can_resolve_path = False

    def current_path(self, fd: int) -> str:
        raise ProbeError(f"resolving a descriptor to a path is not supported on {sys.platform}")


def default_probe() -> Probe:
    if sys.platform.startswith("linux") and os.path.isdir("/proc/self/fd"):
        return LinuxProbe()
    if sys.platform == "darwin":
        try:
            import fcntl
        except ImportError:  # pragma: no cover - always present on macOS
            return UnsupportedProbe()
        if hasattr(fcntl, "F_GETPATH"):
            return DarwinProbe()
    return UnsupportedProbe()


__all__ = [
    "DarwinProbe",
    "FileSnapshot",
    "LinuxProbe",
    "Probe",
    "UnsupportedProbe",
    "default_probe",
    "handle_matches",
    "resolve",
    "same_file",
]
