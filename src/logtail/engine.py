"""Tailer control surface: wires queue, notifier, event bus and tail loop together.

``LogTailer(directory, pattern)`` is the entry point::

    from logtail.engine import LogTailer

    tailer = LogTailer("/var/log/lis", "LIS*.XML")
    tailer.set_record_processor(print)
    tailer.on_file_completed(lambda path: archive(path))
    with tailer:                 # start() ... stop()
        tailer.join()            # blocks until stopped or failed

Construction scans the directory once; every matching file already present
is queued, oldest first.  ``start()`` begins watching the directory and
launches the background thread running :class:`~logtail.tail.TailLoop`.
Anything created or written to in the directory since construction (or
since the last ``stop()``) is queued as ``start()`` begins watching, so a
rotation that happens while the tailer is not running is not missed.
``stop()`` asks the loop to exit and joins it.  The loop is woken on stop,
but a drain in progress always finishes first.

If the loop dies (processor or listener exception, notification failure),
the failure is logged, the thread exits, ``join()`` returns, and the next
``stop()`` or ``start()`` raises :class:`TailerError` chained to the original
exception.
"""

from __future__ import annotations

import contextvars
import os
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any

from watchdog.observers import Observer

from logtail.config import Settings, get_settings
from logtail.discovery import changed_since, oldest_first, snapshot_directory
from logtail.events import FileCompleted, FileStarted, LifecycleEventBus
from logtail.logging import get_logger
from logtail.notifier import ChangeNotifier, NotifierError
from logtail.pending import PendingFileQueue
from logtail.tail import TailLoop, TailState
from logtail.wake import WakeSignal

_log = get_logger(__name__)

RecordProcessor = Callable[[str], None]


def discard_record(record: str) -> None:
    """Default processor: drop the record."""


class TailerError(RuntimeError):
    """Raised on control-surface misuse or when the tail loop has failed."""


class LogTailer:
    """Tails the files matching *pattern* in *directory*.

    Args:
        directory:        Directory to watch (non-recursive).
        pattern:          Glob matched against file names.
        settings:         Source of the tail tunables; ``get_settings()`` if None.
        observer_factory: Builds the watchdog observer (override in tests).
    """

    def __init__(
        self,
        directory: str | os.PathLike[str],
        pattern: str,
        *,
        settings: Settings | None = None,
        observer_factory: Callable[[], Any] = Observer,
    ) -> None:
        if settings is None:
            settings = get_settings()
        self.directory = Path(directory).absolute()
        self.pattern = pattern
        self._tail_settings = settings.tail

        # What the directory held when it was last looked at without a watch.
        self._unwatched = snapshot_directory(self.directory, pattern)
        self._queue = PendingFileQueue(oldest_first(self._unwatched))
        self._wake = WakeSignal()
        self.events = LifecycleEventBus()
        self._notifier = ChangeNotifier(
            self.directory,
            pattern,
            self._queue,
            self._wake,
            observer_factory=observer_factory,
        )
        self._processor: RecordProcessor = discard_record
        self._loop: TailLoop | None = None
        self._thread: threading.Thread | None = None
        self._failure: BaseException | None = None

        _log.debug(
            "tailer created",
            directory=str(self.directory),
            pattern=pattern,
            pending=len(self._queue),
        )

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **kwargs: Any) -> LogTailer:
        """Build a tailer for the ``[watch]`` directory and pattern in *settings*."""
        if settings is None:
            settings = get_settings()
        return cls(settings.watch.directory, settings.watch.pattern, settings=settings, **kwargs)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def set_record_processor(self, processor: RecordProcessor) -> None:
        """Install the record sink.  Not allowed while the tailer is running."""
        if self._thread is not None:
            raise TailerError("cannot replace the record processor while tailing; stop() first")
        self._processor = processor

    def on_file_started(self, callback: Callable[[Path], None]) -> Callable[[], None]:
        return self.events.on(FileStarted, callback)

    def on_file_completed(self, callback: Callable[[Path], None]) -> Callable[[], None]:
        return self.events.on(FileCompleted, callback)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def state(self) -> TailState:
        return self._loop.state if self._loop is not None else TailState.STOPPED

    @property
    def failure(self) -> BaseException | None:
        """The exception that killed the tail loop, if any."""
        return self._failure

    @property
    def pending(self) -> list[Path]:
        """Files queued for tailing, the one being tailed first."""
        return self._queue.snapshot()

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start watching and tailing.  No-op if already running.

        Files created or written to while the tailer was not watching are
        queued first, oldest first, as if the watch had seen them.

        Raises:
            NotifierError: The directory cannot be watched.
            TailerError:   The previous worker had died from an exception.
                           The tailer is stopped; ``start()`` again to resume.
        """
        if self._thread is not None:
            if self._thread.is_alive():
                return
            self.stop()

        try:
            self._notifier.start()
        except OSError as exc:
            raise NotifierError(f"cannot watch {self.directory}: {exc}") from exc
        self._catch_up()

        self._failure = None
        tail = self._tail_settings
        self._loop = TailLoop(
            self._queue,
            self._wake,
            self.events,
            self._processor,
            notifier=self._notifier,
            chunk_size=tail.chunk_size,
            idle_wait=tail.idle_wait_seconds,
            active_wait=tail.active_wait_seconds,
            encoding=tail.encoding,
            errors=tail.errors,
        )
        # Carry bound context vars (run_id) into the worker's log events.
        ctx = contextvars.copy_context()
        self._thread = threading.Thread(
            target=ctx.run,
            args=(self._work, self._loop),
            name=f"logtail-{self.directory.name}",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        """Stop tailing and wait for the worker to exit.  No-op if stopped.

        May block for up to ``active_wait_seconds`` plus the duration of a
        drain in progress.

        Raises:
            TailerError: The tail loop had died from an exception.
        """
        thread, loop = self._thread, self._loop
        if thread is None or loop is None:
            return
        loop.request_stop()
        thread.join()
        self._thread = None
        # Taken while still watching, so nothing falls between the two.
        self._unwatched = snapshot_directory(self.directory, self.pattern)
        self._notifier.stop()
        self._raise_failure()

    def join(self, timeout: float | None = None) -> bool:
        """Wait up to *timeout* seconds for the worker to exit on its own.

        Returns True if the worker is not running.  The worker only exits on
        its own when it fails; call :meth:`stop` afterwards to release the
        watch and raise the failure.
        """
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def __enter__(self) -> LogTailer:
        self.start()
        return self

    def __exit__(self, *_: object) -> None:
        self.stop()

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _work(self, loop: TailLoop) -> None:
        _log.info("tailer started", directory=str(self.directory), pattern=self.pattern)
        try:
            loop.run()
        except Exception as exc:
            self._failure = exc
            _log.exception("tail loop failed", directory=str(self.directory))
        else:
            _log.info("tailer stopped", directory=str(self.directory))

    def _catch_up(self) -> None:
        changed = changed_since(self._unwatched, snapshot_directory(self.directory, self.pattern))
        queued = [path for path in changed if self._queue.enqueue(path)]
        if queued:
            _log.info(
                "files queued while not watching",
                directory=str(self.directory),
                files=[str(p) for p in queued],
                pending=len(self._queue),
            )

    def _raise_failure(self) -> None:
        if self._failure is not None:
            raise TailerError(f"tailing {self.directory} failed: {self._failure!r}") from self._failure
