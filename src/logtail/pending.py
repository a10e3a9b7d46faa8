"""Ordered queue of files awaiting (or undergoing) tailing.

The front entry is always the file the tail loop has open, or is about to
open.  Entries are appended in discovery order by the change notifier and
removed only by the tail loop once a newer file has been queued behind the
front one.

Dedup is deliberately shallow: a path is appended unless it equals the
*current last* entry.  Repeated change signals for the file being written
therefore collapse to one entry, while a path that comes back after another
file was queued (for example, a log recreated under an old name) is queued
again.

Both the notifier thread and the tail loop touch the queue, so every
operation runs under one lock that is held only for the list mutation.
"""

from __future__ import annotations

import os
import threading
from collections.abc import Iterable
from pathlib import Path


class PendingFileQueue:
    """Thread-safe FIFO of absolute file paths.

    Args:
        paths: Initial entries, in order.  Consecutive duplicates collapse
               exactly as they would through :meth:`enqueue`.
    """

    def __init__(self, paths: Iterable[str | os.PathLike[str]] = ()) -> None:
        self._lock = threading.Lock()
        self._paths: list[Path] = []
        for path in paths:
            self.enqueue(path)

    def enqueue(self, path: str | os.PathLike[str]) -> bool:
        """Append *path* unless it equals the last entry; return True if appended."""
        path = Path(path).absolute()
        with self._lock:
            if self._paths and self._paths[-1] == path:
                return False
            self._paths.append(path)
            return True

    def peek_front(self) -> Path | None:
        """Return the first entry without removing it, or None when empty."""
        with self._lock:
            return self._paths[0] if self._paths else None

    def pop_front(self) -> Path:
        """Remove and return the first entry.

        Raises:
            IndexError: The queue is empty.  Only the tail loop removes
                entries, and only after confirming the front is the file it
                has open, so this signals a broken invariant.
        """
        with self._lock:
            if not self._paths:
                raise IndexError("pop from empty pending file queue")
            return self._paths.pop(0)

    def snapshot(self) -> list[Path]:
        """Return a copy of the current entries, front first."""
        with self._lock:
            return list(self._paths)

    def __len__(self) -> int:
        with self._lock:
            return len(self._paths)

    def __repr__(self) -> str:
        return f"PendingFileQueue({[str(p) for p in self.snapshot()]!r})"
