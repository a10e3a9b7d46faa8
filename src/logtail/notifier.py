"""Change-notification adapter: watchdog events → pending queue + wake signal.

``ChangeNotifier`` schedules a non-recursive watchdog observer on the watched
directory.  Every ``created``, ``modified`` or ``moved`` (destination) event
for a file whose name matches the pattern goes through :meth:`deliver`,
which queues the path (shallow dedup, see :mod:`logtail.pending`) and wakes
the tail loop.

watchdog may report one change several times, and can miss the instant a
file is created; both are fine, since the queue collapses repeats and a
later ``modified`` event still queues the file.  While one delivery is in
progress further signals are dropped.  This can lose a genuinely concurrent
second change; the next write to that file raises a fresh signal.

Failures of the notification subsystem are fatal and never retried: the
failure is recorded and :meth:`check` raises :class:`NotifierError` from
then on.  The tail loop calls ``check()`` on every iteration, so the engine
stops instead of tailing with a blind queue.
"""

from __future__ import annotations

import os
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any

from watchdog.events import (
    DirDeletedEvent,
    FileSystemEvent,
    FileSystemEventHandler,
    FileSystemMovedEvent,
)
from watchdog.observers import Observer

from logtail.discovery import matches
from logtail.logging import get_logger
from logtail.pending import PendingFileQueue
from logtail.wake import WakeSignal

_log = get_logger(__name__)


class NotifierError(RuntimeError):
    """Raised when the change-notification subsystem has failed."""


class _DirectoryHandler(FileSystemEventHandler):
    """Routes watchdog events for one directory to its notifier."""

    def __init__(self, notifier: ChangeNotifier) -> None:
        super().__init__()
        self._notifier = notifier

    def dispatch(self, event: FileSystemEvent) -> None:
        try:
            super().dispatch(event)
        except Exception as exc:
            self._notifier.fail(exc)

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._notifier.deliver(os.fsdecode(event.src_path))

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._notifier.deliver(os.fsdecode(event.src_path))

    def on_moved(self, event: FileSystemMovedEvent) -> None:
        if not event.is_directory:
            self._notifier.deliver(os.fsdecode(event.dest_path))

    def on_deleted(self, event: FileSystemEvent) -> None:
        if isinstance(event, DirDeletedEvent) and Path(os.fsdecode(event.src_path)) == self._notifier.directory:
            self._notifier.fail(NotifierError(f"watched directory removed: {self._notifier.directory}"))


class ChangeNotifier:
    """Watches *directory* and feeds matching paths into *queue*.

    Args:
        directory:        Directory to watch (non-recursive).
        pattern:          Glob matched against file names.
        queue:            Queue shared with the tail loop.
        wake:             Signal set after every delivered change.
        observer_factory: Builds the watchdog observer.  A fresh observer is
                          created on every :meth:`start`, since observer
                          threads cannot be restarted.
    """

    def __init__(
        self,
        directory: Path,
        pattern: str,
        queue: PendingFileQueue,
        wake: WakeSignal,
        *,
        observer_factory: Callable[[], Any] = Observer,
    ) -> None:
        self.directory = Path(directory).absolute()
        self.pattern = pattern
        self._queue = queue
        self._wake = wake
        self._observer_factory = observer_factory
        self._observer: Any = None
        self._delivering = threading.Lock()
        self._error: BaseException | None = None

    @property
    def running(self) -> bool:
        return self._observer is not None

    @property
    def error(self) -> BaseException | None:
        """The recorded failure, if any."""
        return self._error

    def start(self) -> None:
        """Start watching.  No-op if already started."""
        if self._observer is not None:
            return
        observer = self._observer_factory()
        observer.schedule(_DirectoryHandler(self), str(self.directory), recursive=False)
        observer.start()
        self._observer = observer
        _log.debug("change notifier started", directory=str(self.directory), pattern=self.pattern)

    def stop(self) -> None:
        """Stop watching and wait for the observer thread.  No-op if stopped."""
        observer, self._observer = self._observer, None
        if observer is None:
            return
        observer.stop()
        observer.join()
        _log.debug("change notifier stopped", directory=str(self.directory))

    def deliver(self, path: str | os.PathLike[str]) -> bool:
        """Handle one "path changed" signal.

        Returns True if the signal was handled (path queued or already last,
        tail loop woken), False if it was filtered out or dropped because
        another delivery was in progress.
        """
        if not self._delivering.acquire(blocking=False):
            _log.debug("change signal dropped during delivery", path=os.fspath(path))
            return False
        try:
            if not matches(path, self.pattern):
                return False
            if self._queue.enqueue(path):
                _log.info("file queued", path=os.fspath(path), pending=len(self._queue))
            self._wake.set()
            return True
        finally:
            self._delivering.release()

    def fail(self, exc: BaseException) -> None:
        """Record a notification failure and wake the tail loop to observe it."""
        if self._error is None:
            self._error = exc
            _log.error("change notification failed", directory=str(self.directory), error=repr(exc))
        self._wake.set()

    def check(self) -> None:
        """Raise :class:`NotifierError` if notification delivery has failed."""
        if self._error is not None:
            if isinstance(self._error, NotifierError):
                raise self._error
            raise NotifierError(f"change notification failed: {self._error!r}") from self._error
        observer = self._observer
        if observer is None:
            return
        if not observer.is_alive() or not all(e.is_alive() for e in observer.emitters):
            self.fail(NotifierError(f"change observer for {self.directory} stopped unexpectedly"))
            raise self._error
