"""Change notification: watchdog events or a polling ticker behind one API."""
from __future__ import annotations

import enum
import logging
import os
import queue
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Set

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .errors import DirectoryRemovedError, NotifierError
from .probe import Probe

NOTIFIER_KINDS = ("auto", "events", "polling")

logger = logging.getLogger(__name__)


class ChangeKind(enum.Enum):
    MODIFIED = "modified"
    CREATED = "created"
    RENAMED = "renamed"
    REMOVED = "removed"
    DIRECTORY_REMOVED = "directory_removed"
    TICK = "tick"


@dataclass(frozen=True)
class ChangeEvent:
    kind: ChangeKind
    path: str


class Ticker:
    """Fixed-interval cadence tracker with an injectable clock."""

    def __init__(self, interval: float, *, time_fn: Callable[[], float] = time.monotonic) -> None:
        self.interval = interval
        self._time_fn = time_fn
        # Due immediately, the first wait should not sit out a full interval.
        self._last_tick = time_fn() - interval

    def time_until_next(self) -> float:
        return max(self.interval - (self._time_fn() - self._last_tick), 0.0)

    def due(self) -> bool:
        return self.time_until_next() <= 0.0

    def mark(self) -> None:
        self._last_tick = self._time_fn()


class Notifier:
    """Block until something may have happened to the watched paths.

    ``wait`` returns the events collected since the previous call, coalesced
    into one batch, or an empty list when the deadline passed first or the
    wait was interrupted.
    """

    def __init__(self, target_path: str) -> None:
        self.target_path = target_path
        self.directory = os.path.dirname(target_path)
        self._wakeup = threading.Event()

    def wait(self, timeout: Optional[float] = None) -> List[ChangeEvent]:
        raise NotImplementedError

    def watch(self, path: str) -> None:
        pass

    def unwatch(self, path: str) -> None:
        pass

    def interrupt(self) -> None:
        self._wakeup.set()

    def close(self) -> None:
        pass


class PollingNotifier(Notifier):
    """Synthesizes a tick every ``interval`` seconds; no OS support needed."""

    def __init__(
        self,
        target_path: str,
        interval: float,
        *,
        time_fn: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(target_path)
        self.interval = interval
        self._ticker = Ticker(interval, time_fn=time_fn)

    def wait(self, timeout: Optional[float] = None) -> List[ChangeEvent]:
        remaining = self._ticker.time_until_next()
        delay = remaining if timeout is None else min(remaining, timeout)
        if delay > 0 and self._wakeup.wait(delay):
            self._wakeup.clear()
            return []
        if not self._ticker.due():
            return []
        self._ticker.mark()
        if not os.path.isdir(self.directory):
            raise DirectoryRemovedError(self.directory)
        return [ChangeEvent(ChangeKind.TICK, self.target_path)]


_WATCHDOG_KINDS = {
    "modified": ChangeKind.MODIFIED,
    "closed": ChangeKind.MODIFIED,
    "created": ChangeKind.CREATED,
    "moved": ChangeKind.RENAMED,
    "deleted": ChangeKind.REMOVED,
}


class _Handler(FileSystemEventHandler):
    def __init__(self, notifier: "WatchdogNotifier") -> None:
        super().__init__()
        self._notifier = notifier

    def on_any_event(self, event: FileSystemEvent) -> None:  # type: ignore[override]
        self._notifier._dispatch(event)


class WatchdogNotifier(Notifier):
    """Filesystem events from a watchdog observer.

    The target's directory is always observed so creation and removal of
    the target are seen. Every path passed to :meth:`watch` additionally has
    its directory observed, which covers a rotated file that moved elsewhere.
    """

    def __init__(self, target_path: str) -> None:
        super().__init__(target_path)
        self._queue: "queue.Queue[Optional[ChangeEvent]]" = queue.Queue()
        self._lock = threading.Lock()
        self._paths: Set[str] = {target_path}
        self._watches: Dict[str, object] = {}
        self._handler = _Handler(self)
        self._observer = Observer()
        self._observer.daemon = True
        self._schedule(self.directory)
        try:
            self._observer.start()
        except OSError as exc:
            raise NotifierError(f"cannot start watchdog observer: {exc}") from exc

    # ------------------------------------------------------------------
    # Notifier API

    def wait(self, timeout: Optional[float] = None) -> List[ChangeEvent]:
        if not self._observer.is_alive():
            raise NotifierError("watchdog observer is no longer running")
        try:
            first = self._queue.get(timeout=timeout)
        except queue.Empty:
            return []
        batch = [first]
        while True:
            try:
                batch.append(self._queue.get_nowait())
            except queue.Empty:
                break
        events = [event for event in batch if event is not None]
        for event in events:
            if event.kind is ChangeKind.DIRECTORY_REMOVED:
                raise DirectoryRemovedError(event.path)
        return events

    def watch(self, path: str) -> None:
        with self._lock:
            self._paths.add(path)
        self._schedule(os.path.dirname(path))

    def unwatch(self, path: str) -> None:
        directory = os.path.dirname(path)
        with self._lock:
            if path != self.target_path:
                self._paths.discard(path)
            still_used = any(os.path.dirname(p) == directory for p in self._paths)
        if directory == self.directory or still_used:
            return
        watch = self._watches.pop(directory, None)
        if watch is not None:
            self._observer.unschedule(watch)

    def interrupt(self) -> None:
        self._queue.put(None)

    def close(self) -> None:
        self._observer.stop()
        if self._observer.is_alive():
            self._observer.join(timeout=5)

    # ------------------------------------------------------------------
    # internal helpers

    def _schedule(self, directory: str) -> None:
        if directory in self._watches:
            return
        try:
            self._watches[directory] = self._observer.schedule(self._handler, directory, recursive=False)
        except OSError as exc:
            raise NotifierError(f"cannot watch {directory}: {exc}") from exc

    def _dispatch(self, event: FileSystemEvent) -> None:
        kind = _WATCHDOG_KINDS.get(event.event_type)
        if kind is None:
            return
        src = os.fsdecode(event.src_path)
        # Some backends flag the watched directory's own deletion as a file
        # event, so match on the path rather than on is_directory.
        if kind is ChangeKind.REMOVED and src == self.directory:
            self._queue.put(ChangeEvent(ChangeKind.DIRECTORY_REMOVED, src))
            return
        if event.is_directory:
            return
        paths = [src]
        dest = getattr(event, "dest_path", "")
        if dest:
            paths.append(os.fsdecode(dest))
        with self._lock:
            relevant = any(path in self._paths for path in paths)
        if relevant:
            self._queue.put(ChangeEvent(kind, src))


def create_notifier(
    kind: str,
    target_path: str,
    poll_interval: float,
    probe: Probe,
) -> Notifier:
    """Build the notifier for ``kind`` (one of :data:`NOTIFIER_KINDS`).

    Without a way to resolve handles back to paths the engine relies on
    re-probing at a fixed cadence, so polling is used regardless of ``kind``.
    """

    if kind not in NOTIFIER_KINDS:
        raise ValueError(f"unknown notifier kind {kind!r}")
    use_events = kind in ("auto", "events")
    if use_events and not probe.can_resolve_path:
        if kind == "events":
            logger.warning("probe %s cannot resolve handle paths, falling back to polling", probe.name)
        use_events = False
    if use_events:
        return WatchdogNotifier(target_path)
    return PollingNotifier(target_path, poll_interval)


__all__ = [
    "NOTIFIER_KINDS",
    "ChangeEvent",
    "ChangeKind",
    "Notifier",
    "PollingNotifier",
    "Ticker",
    "WatchdogNotifier",
    "create_notifier",
]
