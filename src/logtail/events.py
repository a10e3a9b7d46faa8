"""File lifecycle notifications.

Two events are published by the tail loop:

- :class:`FileStarted`   — a file was opened for tailing (once per file);
- :class:`FileCompleted` — a newer file was queued behind it and it has been
  drained and closed for good (once per file).  The file that is still the
  only pending one never completes, even when the tailer stops.

Listeners run synchronously on the tail loop's thread, so a slow listener
delays tailing.  An exception raised by a listener propagates to the tail
loop and stops it.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class FileStarted:
    """The tail loop opened *path* and is about to read it."""

    path: Path


@dataclass(frozen=True)
class FileCompleted:
    """*path* was rotated out by a newer file and will not be read again."""

    path: Path


LifecycleEvent = FileStarted | FileCompleted
LifecycleListener = Callable[[LifecycleEvent], None]


class LifecycleEventBus:
    """Synchronous fan-out of lifecycle events to registered listeners.

    ``publish`` works on a snapshot of the listener list, so subscribing or
    unsubscribing from another thread (or from inside a listener) never
    affects a fan-out already in progress.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: list[LifecycleListener] = []

    def subscribe(self, listener: LifecycleListener) -> Callable[[], None]:
        """Register *listener* for every event; return a callable that removes it."""
        with self._lock:
            self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: LifecycleListener) -> None:
        """Remove *listener*.  Unknown listeners are ignored."""
        with self._lock:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

    def on(
        self,
        event_type: type[FileStarted] | type[FileCompleted],
        callback: Callable[[Path], None],
    ) -> Callable[[], None]:
        """Subscribe *callback* to one event type; it receives the file path."""

        def _listener(event: LifecycleEvent) -> None:
            if isinstance(event, event_type):
                callback(event.path)

        return self.subscribe(_listener)

    def publish(self, event: LifecycleEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(event)

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)
