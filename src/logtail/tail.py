"""The tail loop: owns the open file, drives the splitter, decides when to rotate.

``TailLoop.run()`` is the body of the tailer's background thread.  It works
through the pending queue front to back, one file at a time:

  IDLE            nothing queued; wait on the wake signal (``idle_wait``),
                  then look again.
  TAILING         the front file is open; drain everything readable through
                  the file's splitter and hand each record to the processor.
  WAITING_SINGLE  drained, and the front file is still the only one queued;
                  wait (``active_wait``) for it to grow, then drain the same
                  handle again.  The splitter keeps any partial record.
  STOPPED         terminal; the open handle has been closed.

When more than one file is queued, the front file has been superseded: it
is drained one final time, closed, popped, and announced with
``FileCompleted``; the next file is opened and announced with
``FileStarted``.  A completed file is never reopened.

Files are read as bytes and decoded incrementally, so CR LF reaches the
splitter untranslated.  On POSIX the open handle keeps working when the path
is deleted or renamed underneath it.

Unavailable files and failing reads are treated as "no data yet": the loop
waits and retries rather than giving up on a busy file.  Everything else that
goes wrong (processor or listener exceptions, notifier failure, a broken
queue invariant) propagates out of ``run()`` after the handle is closed.
"""

from __future__ import annotations

import codecs
import enum
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from logtail.events import FileCompleted, FileStarted, LifecycleEventBus
from logtail.logging import get_logger
from logtail.notifier import ChangeNotifier
from logtail.pending import PendingFileQueue
from logtail.splitter import DEFAULT_CHUNK_SIZE, RecordSplitter
from logtail.wake import WakeSignal

_log = get_logger(__name__)


class TailState(enum.Enum):
    IDLE = "idle"
    TAILING = "tailing"
    WAITING_SINGLE = "waiting_single"
    STOPPED = "stopped"


@dataclass
class FileSession:
    """An open file, its text decoder, and the splitter that belongs to it.

    The file is read in binary mode and decoded here with an incremental
    decoder that is never finalised, so a multi-byte character cut in half
    by the end of the data written so far is completed by a later read
    instead of being replaced.  No newline translation takes place.
    """

    path: Path
    handle: BinaryIO
    splitter: RecordSplitter
    decoder: codecs.IncrementalDecoder
    records: int = 0

    @classmethod
    def open(
        cls,
        path: Path,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        encoding: str = "utf-8",
        errors: str = "replace",
    ) -> FileSession:
        decoder = codecs.getincrementaldecoder(encoding)(errors)
        handle = open(path, "rb")
        return cls(path=path, handle=handle, splitter=RecordSplitter(chunk_size), decoder=decoder)

    def read(self, size: int) -> str:
        """Read up to *size* bytes and return the text decoded so far.

        Returns ``""`` only when no more bytes are available.  A failing
        read counts as no data.
        """
        while True:
            try:
                data = self.handle.read(size)
            except OSError as exc:
                _log.warning("read failed, will retry", path=str(self.path), error=str(exc))
                return ""
            if not data:
                return ""
            if text := self.decoder.decode(data):
                return text

    def drain(self) -> Iterator[str]:
        for record in self.splitter.drain(self):
            self.records += 1
            yield record

    def close(self) -> None:
        self.handle.close()


class TailLoop:
    """State machine that tails the files in *queue*, front first.

    Args:
        queue:       Pending files; shared with the notifier.
        wake:        Signal that releases the loop's waits early.
        bus:         Receives ``FileStarted`` / ``FileCompleted``.
        processor:   Called once per record, in file and record order.
        notifier:    Checked on every iteration; its failure is fatal.
        chunk_size:  Bytes per read.
        idle_wait:   Seconds to wait while the queue is empty (or the front
                     file cannot be opened yet).
        active_wait: Seconds to wait at the end of the only pending file.
                     Also the worst-case stop latency.
        encoding:    Text encoding of the tailed files.
        errors:      Decoding error handler (see :mod:`codecs`).
    """

    def __init__(
        self,
        queue: PendingFileQueue,
        wake: WakeSignal,
        bus: LifecycleEventBus,
        processor: Callable[[str], None],
        *,
        notifier: ChangeNotifier | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        idle_wait: float = 1.0,
        active_wait: float = 5.0,
        encoding: str = "utf-8",
        errors: str = "replace",
    ) -> None:
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")
        if idle_wait <= 0 or active_wait <= 0:
            raise ValueError("wait timeouts must be positive")
        self._queue = queue
        self._wake = wake
        self._bus = bus
        self._processor = processor
        self._notifier = notifier
        self.chunk_size = chunk_size
        self.idle_wait = idle_wait
        self.active_wait = active_wait
        self.encoding = encoding
        self.errors = errors
        self._stop = threading.Event()
        self._state = TailState.IDLE

    @property
    def state(self) -> TailState:
        return self._state

    def request_stop(self) -> None:
        """Ask the loop to exit at its next check; wakes it if parked."""
        self._stop.set()
        self._wake.set()

    def run(self) -> None:
        """Tail until :meth:`request_stop` is called or a fatal error occurs."""
        session: FileSession | None = None
        try:
            while not self._stop.is_set():
                if self._notifier is not None:
                    self._notifier.check()

                if session is None:
                    session = self._select()
                    if session is None:
                        continue
                    self._bus.publish(FileStarted(session.path))

                # Sampled before draining: a writer that rotates has finished
                # the old file before queueing the new one, so this drain
                # reads everything the old file will ever hold.
                superseded = len(self._queue) > 1

                self._state = TailState.TAILING
                for record in session.drain():
                    self._processor(record)

                if superseded:
                    self._complete(session)
                    session = None
                elif len(self._queue) == 1:
                    self._state = TailState.WAITING_SINGLE
                    _log.debug("waiting for more data", path=str(session.path))
                    self._wake.wait(self.active_wait)
        finally:
            if session is not None:
                session.close()
            self._state = TailState.STOPPED

    def _select(self) -> FileSession | None:
        """Open the front file, or wait if there is none / it is unavailable."""
        path = self._queue.peek_front()
        if path is None:
            self._state = TailState.IDLE
            self._wake.wait(self.idle_wait)
            return None

        try:
            session = FileSession.open(
                path,
                chunk_size=self.chunk_size,
                encoding=self.encoding,
                errors=self.errors,
            )
        except FileNotFoundError:
            if len(self._queue) > 1:
                # Gone for good and already superseded; nothing left to tail.
                _log.warning("pending file vanished, skipping", path=str(path))
                self._pop(path)
                return None
            _log.warning("file not found, will retry", path=str(path))
            self._wake.wait(self.idle_wait)
            return None
        except OSError as exc:
            _log.warning("file not available, will retry", path=str(path), error=str(exc))
            self._wake.wait(self.idle_wait)
            return None

        _log.info("file opened", path=str(path))
        return session

    def _complete(self, session: FileSession) -> None:
        session.close()
        self._pop(session.path)
        _log.info("file completed", path=str(session.path), records=session.records)
        self._bus.publish(FileCompleted(session.path))

    def _pop(self, expected: Path) -> None:
        popped = self._queue.pop_front()
        if popped != expected:
            raise RuntimeError(f"queue front {popped} is not the tailed file {expected}")
