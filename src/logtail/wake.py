"""Single-slot, auto-resetting wake signal.

The notifier sets it after queueing a path; the tail loop waits on it while
parked.  Several ``set()`` calls before the loop wakes collapse into one
wake-up, so it promises at-least-once delivery, not a count.  The loop always
re-reads the queue after waking, so a coalesced wake loses nothing.
"""

from __future__ import annotations

import threading


class WakeSignal:
    """Auto-reset event: a successful :meth:`wait` consumes the signal."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def set(self) -> None:
        self._event.set()

    def is_set(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block up to *timeout* seconds; return True if signalled.

        The slot is reset before returning, whether or not it fired.
        """
        fired = self._event.wait(timeout)
        self._event.clear()
        return fired
