"""Rotation-aware file tailer."""
from __future__ import annotations

import enum
import logging
import os
import queue
import threading
from typing import BinaryIO, Callable, Dict, Generator, Iterator, List, Optional

from .bookmark import Bookmark
from .config import TailConfig
from .errors import BookmarkMismatchError, TailError
from .notifier import Notifier, create_notifier
from .probe import FileSnapshot, Probe, default_probe, handle_matches, resolve, same_file
from .reader import LineReader

_default_logger = logging.getLogger(__name__)


class State(enum.Enum):
    OPENING = "opening"
    READING = "reading"
    SHRUNK = "shrunk"
    REMOVED = "removed"
    RENAMED = "renamed"
    READING_OLD_BEFORE_RECREATION = "reading_old_before_recreation"
    READING_OLD_AFTER_RECREATION = "reading_old_after_recreation"


# States that have nothing more to do until the next notification when a
# step leaves them unchanged.
_IDLE_STATES = frozenset(
    {State.OPENING, State.READING, State.READING_OLD_BEFORE_RECREATION}
)

Transition = Generator[str, None, State]


def target_abspath(path: str) -> str:
    """Absolute path with the directory resolved but the file name kept.

    The file name itself may be a symlink that is repointed on rotation, so
    it is resolved afresh on every rename check instead.
    """

    absolute = os.path.abspath(path)
    return os.path.join(resolve(os.path.dirname(absolute)), os.path.basename(absolute))


def _open_if_exists(path: str) -> Optional[BinaryIO]:
    try:
        return open(path, "rb", buffering=0)
    except FileNotFoundError:
        return None


class TailFile:
    """Follow a file by name across truncation, rotation and re-creation.

    Lines are produced by :meth:`follow`, a generator running the control
    loop in the caller's thread, or by :meth:`start`, which runs the same
    loop in a background thread feeding :attr:`lines` and :attr:`errors`.
    Each call to :meth:`step` performs exactly one state transition.

    The bookmark is written after every batch of lines has been handed over,
    so a crash replays at most the batch in flight (at-least-once delivery).
    """

    def __init__(
        self,
        config: TailConfig,
        *,
        logger: Optional[logging.Logger] = None,
        probe: Optional[Probe] = None,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self.config = config
        self.target_path = target_abspath(config.target_path)
        self.watching_path = self.target_path
        self.state = State.OPENING
        self.lines: "queue.Queue[str]" = queue.Queue(maxsize=config.line_queue_size)
        self.errors: "queue.Queue[BaseException]" = queue.Queue()
        self._logger = logger or _default_logger
        self._probe = probe or default_probe()
        self._handle: Optional[BinaryIO] = None
        self._reader: Optional[LineReader] = None
        self._new_handle: Optional[BinaryIO] = None
        self._last_size = 0
        self._name_lost = False
        self._delivered = 0
        self._closed = False
        self._following = False
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._bookmark = self._load_bookmark()
        self._notifier = notifier or create_notifier(
            config.notifier, self.target_path, config.poll_interval, self._probe
        )
        self._handlers: Dict[State, Callable[[], Transition]] = {
            State.OPENING: self._on_opening,
            State.READING: self._on_reading,
            State.SHRUNK: self._on_shrunk,
            State.REMOVED: self._on_removed,
            State.RENAMED: self._on_renamed,
            State.READING_OLD_BEFORE_RECREATION: self._on_reading_old_before_recreation,
            State.READING_OLD_AFTER_RECREATION: self._on_reading_old_after_recreation,
        }

    # ------------------------------------------------------------------
    # public API

    def step(self) -> List[str]:
        """Run one state transition and return the lines it delivered."""

        return list(self._advance())

    def follow(self, stop: Optional[Callable[[], bool]] = None) -> Iterator[str]:
        """Yield lines until ``stop`` returns True or :meth:`stop` is called.

        Fatal errors propagate out of the generator. Closing the generator
        closes the session.
        """

        if self._closed:
            raise RuntimeError("tail session is closed")
        self._following = True
        try:
            while not self._stop_event.is_set() and not (stop and stop()):
                previous = self.state
                yield from self._advance()
                if self.state is previous and self.state in _IDLE_STATES:
                    self._notifier.wait(self.config.poll_interval)
        finally:
            self._following = False
            self.close()

    def run(self, stop_event: Optional[threading.Event] = None) -> None:
        """Feed :attr:`lines` until stopped; a fatal error goes to :attr:`errors`."""

        stop_event = stop_event or self._stop_event
        lines = self.follow(stop_event.is_set)
        try:
            for line in lines:
                if not self._hand_off(line, stop_event):
                    break
        except (TailError, OSError) as exc:
            self._logger.error("tailing %s stopped: %s", self.target_path, exc)
            self.errors.put(exc)
        except Exception as exc:
            self._logger.exception("tailing %s failed unexpectedly", self.target_path)
            self.errors.put(exc)
        finally:
            lines.close()
            self.close()

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("tail session already started")
        self._thread = threading.Thread(
            target=self.run,
            name=f"tailfile-{os.path.basename(self.target_path)}",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Ask the loop to exit; handles are closed by the loop itself.

        Waits for the background thread started by :meth:`start`. A
        :meth:`follow` loop running elsewhere exits the next time it resumes.
        """

        self._stop_event.set()
        self._notifier.interrupt()
        if self._thread is not None:
            self._thread.join(timeout)
        elif not self._following:
            self.close()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for handle in (self._new_handle, self._handle):
            if handle is not None:
                handle.close()
        self._new_handle = self._handle = None
        self._reader = None
        self._notifier.close()

    def __enter__(self) -> "TailFile":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    # ------------------------------------------------------------------
    # state handlers

    def _on_opening(self) -> Transition:
        if self._bookmark is not None:
            opened = self._open_from_bookmark()
        else:
            opened = self._open_target()
        return State.READING if opened else State.OPENING
        yield  # pragma: no cover - keeps every handler a generator

    def _on_reading(self) -> Transition:
        assert self._handle is not None and self._reader is not None
        snapshot = self._probe.snapshot(self._handle)
        consumed = max(self._last_size, self._handle.tell())
        if snapshot.size < consumed:
            self._logger.debug("%s shrank from %d to %d bytes", self.watching_path, consumed, snapshot.size)
            return State.SHRUNK
        yield from self._deliver(self._reader)
        self._last_size = max(snapshot.size, self._handle.tell())
        if snapshot.removed:
            return State.REMOVED
        if self._renamed(snapshot):
            return State.RENAMED
        return State.READING

    def _on_shrunk(self) -> Transition:
        assert self._reader is not None
        yield from self._flush(self._reader)
        self._close_primary()
        return State.OPENING

    def _on_removed(self) -> Transition:
        self._logger.debug("%s was removed, draining the open handle", self.watching_path)
        self._name_lost = True
        return State.READING_OLD_BEFORE_RECREATION
        yield  # pragma: no cover - keeps every handler a generator

    def _on_renamed(self) -> Transition:
        assert self._handle is not None
        path = self._probe.snapshot(self._handle).path
        if path is None:
            self._logger.debug("%s no longer names the open handle", self.target_path)
            self._name_lost = True
        else:
            self._logger.debug("%s renamed to %s", self.watching_path, path)
            self._notifier.unwatch(self.watching_path)
            self.watching_path = path
            self._notifier.watch(path)
        return State.READING_OLD_BEFORE_RECREATION
        yield  # pragma: no cover - keeps every handler a generator

    def _on_reading_old_before_recreation(self) -> Transition:
        assert self._reader is not None
        if self._new_handle is None and self._open_recreated():
            return State.READING
        yield from self._deliver(self._reader)
        if self._new_handle is None:
            return State.READING_OLD_BEFORE_RECREATION
        return State.READING_OLD_AFTER_RECREATION

    def _on_reading_old_after_recreation(self) -> Transition:
        assert self._reader is not None
        delivered = yield from self._deliver(self._reader)
        if delivered:
            return State.READING_OLD_AFTER_RECREATION
        yield from self._flush(self._reader)
        self._swap()
        return State.READING

    # ------------------------------------------------------------------
    # internal helpers

    def _advance(self) -> Iterator[str]:
        state = self.state
        self._delivered = 0
        next_state = yield from self._handlers[state]()
        if self._delivered:
            self._save_bookmark()
        if next_state is not state:
            self._logger.debug("%s: %s -> %s", self.target_path, state.value, next_state.value)
        self.state = next_state

    def _deliver(self, reader: LineReader) -> Generator[str, None, int]:
        count = 0
        for raw in reader.lines():
            count += 1
            self._delivered += 1
            yield self._decode(raw)
        return count

    def _flush(self, reader: LineReader) -> Iterator[str]:
        fragment = reader.flush()
        if fragment is not None:
            self._delivered += 1
            yield self._decode(fragment)

    def _decode(self, raw: bytes) -> str:
        text = raw.decode(self.config.encoding, errors="replace")
        return text[:-1] if text.endswith("\r") else text

    def _hand_off(self, line: str, stop_event: threading.Event) -> bool:
        while True:
            try:
                self.lines.put(line, timeout=self.config.poll_interval)
                return True
            except queue.Full:
                if stop_event.is_set():
                    return False

    def _load_bookmark(self) -> Optional[Bookmark]:
        path = self.config.bookmark_path
        if not path:
            self._logger.debug("no bookmark file configured, progress will not be persisted")
            return None
        try:
            bookmark = Bookmark.load(path)
        except FileNotFoundError:
            self._logger.debug('bookmark file "%s" does not exist, ignoring', path)
            return None
        if target_abspath(bookmark.original_path) != self.target_path:
            raise BookmarkMismatchError(bookmark.original_path, self.target_path)
        self._logger.debug("loaded bookmark %s:%d", bookmark.watching_path, bookmark.position)
        return bookmark

    def _save_bookmark(self) -> None:
        path = self.config.bookmark_path
        if not path:
            return
        watching = self._current_name()
        if watching is None or self._reader is None:
            # Nothing left to resume in the current handle; a restart picks up
            # whatever file the target path names from its beginning.
            bookmark = Bookmark(self.target_path, self.target_path, 0)
        else:
            bookmark = Bookmark(self.target_path, watching, self._reader.offset)
        bookmark.save(path)

    def _current_name(self) -> Optional[str]:
        """Path naming the current handle right now, None if it has no name."""

        if self._handle is None or self._name_lost:
            return None
        snapshot = self._probe.snapshot(self._handle)
        if snapshot.removed:
            return None
        if snapshot.path is not None:
            return snapshot.path
        if handle_matches(self._handle, self.watching_path):
            return self.watching_path
        return None

    def _open_target(self) -> bool:
        handle = _open_if_exists(self.target_path)
        if handle is None:
            return False
        self._logger.debug("opened %s", self.target_path)
        self._adopt(handle, self.target_path, position=0)
        return True

    def _open_from_bookmark(self) -> bool:
        bookmark, self._bookmark = self._bookmark, None
        assert bookmark is not None
        watching = target_abspath(bookmark.watching_path)
        handle = _open_if_exists(watching)
        if handle is None:
            self._logger.debug("bookmarked file %s is gone, starting %s from the beginning", watching, self.target_path)
            return self._open_target()
        if watching != self.target_path and same_file(watching, self.target_path):
            watching = self.target_path
        size = self._probe.snapshot(handle).size
        position = 0
        if bookmark.position <= size:
            handle.seek(bookmark.position, os.SEEK_SET)
            position = bookmark.position
            self._logger.debug("resuming %s at %d", watching, position)
        else:
            self._logger.debug(
                "bookmark position %d is past the end of %s (%d bytes), reading from the start",
                bookmark.position,
                watching,
                size,
            )
        self._adopt(handle, watching, position=position)
        return True

    def _open_recreated(self) -> bool:
        """Pre-open the re-created target.

        Returns True when the target turns out to name the handle being
        drained again, in which case that handle simply becomes current.
        """

        assert self._handle is not None
        handle = _open_if_exists(self.target_path)
        if handle is None:
            return False
        if os.path.samestat(os.fstat(handle.fileno()), os.fstat(self._handle.fileno())):
            handle.close()
            self._logger.debug("%s names the drained file again", self.target_path)
            self._notifier.unwatch(self.watching_path)
            self.watching_path = self.target_path
            self._name_lost = False
            self._notifier.watch(self.target_path)
            return True
        self._logger.debug("%s was re-created", self.target_path)
        self._new_handle = handle
        return False

    def _adopt(self, handle: BinaryIO, path: str, *, position: int) -> None:
        self._handle = handle
        self._reader = LineReader(handle, offset=position)
        self._last_size = 0
        self._name_lost = False
        self.watching_path = path
        self._notifier.watch(path)

    def _swap(self) -> None:
        assert self._new_handle is not None
        self._logger.debug("finished %s, switching to %s", self.watching_path, self.target_path)
        new_handle, self._new_handle = self._new_handle, None
        self._close_primary()
        self._adopt(new_handle, self.target_path, position=0)

    def _close_primary(self) -> None:
        self._notifier.unwatch(self.watching_path)
        if self._handle is not None:
            self._handle.close()
        self._handle = None
        self._reader = None
        self.watching_path = self.target_path

    def _renamed(self, snapshot: FileSnapshot) -> bool:
        assert self._handle is not None
        if snapshot.path is None:
            return not handle_matches(self._handle, self.target_path)
        return snapshot.path != resolve(self.target_path)


__all__ = ["State", "TailFile", "target_abspath"]
