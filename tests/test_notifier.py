"""Tests for the watchdog change-notification adapter."""

import threading

import pytest
import structlog
from watchdog.events import (
    DirCreatedEvent,
    DirDeletedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)

from logtail.notifier import ChangeNotifier, NotifierError
from logtail.pending import PendingFileQueue
from logtail.wake import WakeSignal


@pytest.fixture()
def queue() -> PendingFileQueue:
    return PendingFileQueue()


@pytest.fixture()
def wake() -> WakeSignal:
    return WakeSignal()


@pytest.fixture()
def notifier(tmp_path, queue, wake, observer_factory) -> ChangeNotifier:
    return ChangeNotifier(tmp_path, "*.log", queue, wake, observer_factory=observer_factory)


# ---------------------------------------------------------------------------
# deliver
# ---------------------------------------------------------------------------


class TestDeliver:
    def test_queues_matching_path_and_wakes(self, notifier, queue, wake, tmp_path):
        assert notifier.deliver(tmp_path / "a.log") is True
        assert queue.snapshot() == [tmp_path / "a.log"]
        assert wake.is_set()

    def test_ignores_non_matching_path(self, notifier, queue, wake, tmp_path):
        assert notifier.deliver(tmp_path / "a.txt") is False
        assert len(queue) == 0
        assert not wake.is_set()

    def test_repeat_signal_wakes_without_requeueing(self, notifier, queue, wake, tmp_path):
        notifier.deliver(tmp_path / "a.log")
        wake.wait(0)
        assert notifier.deliver(tmp_path / "a.log") is True
        assert len(queue) == 1
        assert wake.is_set()

    def test_signal_during_delivery_is_dropped(self, notifier, queue, tmp_path):
        """A re-entrant signal while one delivery is in progress is dropped."""
        notifier._delivering.acquire()
        try:
            with structlog.testing.capture_logs() as logs:
                assert notifier.deliver(tmp_path / "a.log") is False
        finally:
            notifier._delivering.release()
        assert len(queue) == 0
        assert logs[0]["event"] == "change signal dropped during delivery"

    def test_delivery_resumes_after_window(self, notifier, queue, tmp_path):
        notifier._delivering.acquire()
        notifier.deliver(tmp_path / "a.log")
        notifier._delivering.release()
        assert notifier.deliver(tmp_path / "b.log") is True
        assert queue.snapshot() == [tmp_path / "b.log"]

    def test_logs_newly_queued_file(self, notifier, tmp_path):
        with structlog.testing.capture_logs() as logs:
            notifier.deliver(tmp_path / "a.log")
            notifier.deliver(tmp_path / "a.log")
        queued = [e for e in logs if e["event"] == "file queued"]
        assert len(queued) == 1
        assert queued[0]["pending"] == 1


# ---------------------------------------------------------------------------
# watchdog event routing
# ---------------------------------------------------------------------------


class TestEventRouting:
    def test_schedules_non_recursive_watch_on_directory(self, notifier, observers, tmp_path):
        notifier.start()
        (observer,) = observers
        assert observer.path == str(tmp_path)
        assert observer.recursive is False
        assert observer.alive

    @pytest.mark.parametrize("event_cls", [FileCreatedEvent, FileModifiedEvent])
    def test_created_and_modified_events_are_delivered(self, notifier, observers, queue, tmp_path, event_cls):
        notifier.start()
        observers[0].handler.dispatch(event_cls(str(tmp_path / "a.log")))
        assert queue.snapshot() == [tmp_path / "a.log"]

    def test_moved_event_delivers_destination(self, notifier, observers, queue, tmp_path):
        notifier.start()
        event = FileMovedEvent(str(tmp_path / "a.tmp"), str(tmp_path / "a.log"))
        observers[0].handler.dispatch(event)
        assert queue.snapshot() == [tmp_path / "a.log"]

    def test_directory_events_are_ignored(self, notifier, observers, queue, tmp_path):
        notifier.start()
        observers[0].handler.dispatch(DirCreatedEvent(str(tmp_path / "sub.log")))
        assert len(queue) == 0

    def test_file_deleted_event_is_ignored(self, notifier, observers, queue, tmp_path):
        notifier.start()
        observers[0].handler.dispatch(FileDeletedEvent(str(tmp_path / "a.log")))
        assert len(queue) == 0
        notifier.check()


# ---------------------------------------------------------------------------
# start / stop
# ---------------------------------------------------------------------------


class TestLifecycle:
    def test_start_is_idempotent(self, notifier, observers):
        notifier.start()
        notifier.start()
        assert len(observers) == 1
        assert notifier.running

    def test_stop_stops_observer(self, notifier, observers):
        notifier.start()
        notifier.stop()
        assert observers[0].stopped.is_set()
        assert not notifier.running

    def test_stop_without_start_is_noop(self, notifier):
        notifier.stop()

    def test_restart_builds_fresh_observer(self, notifier, observers):
        notifier.start()
        notifier.stop()
        notifier.start()
        assert len(observers) == 2


# ---------------------------------------------------------------------------
# failures
# ---------------------------------------------------------------------------


class TestFailures:
    def test_check_passes_when_healthy(self, notifier):
        notifier.start()
        notifier.check()

    def test_check_passes_when_not_started(self, notifier):
        notifier.check()

    def test_recorded_failure_is_raised(self, notifier, wake):
        cause = OSError("inotify watch limit reached")
        notifier.fail(cause)
        assert wake.is_set()
        with pytest.raises(NotifierError) as excinfo:
            notifier.check()
        assert excinfo.value.__cause__ is cause

    def test_failure_is_never_cleared(self, notifier):
        notifier.fail(OSError("boom"))
        for _ in range(2):
            with pytest.raises(NotifierError):
                notifier.check()

    def test_first_failure_wins(self, notifier):
        first = OSError("first")
        notifier.fail(first)
        notifier.fail(OSError("second"))
        assert notifier.error is first

    def test_handler_exception_is_recorded(self, notifier, observers, tmp_path, monkeypatch):
        notifier.start()

        def broken(path):
            raise RuntimeError("enqueue exploded")

        monkeypatch.setattr(notifier, "deliver", broken)
        observers[0].handler.dispatch(FileCreatedEvent(str(tmp_path / "a.log")))
        with pytest.raises(NotifierError, match="enqueue exploded"):
            notifier.check()

    def test_watched_directory_removed_is_fatal(self, notifier, observers, tmp_path):
        notifier.start()
        observers[0].handler.dispatch(DirDeletedEvent(str(tmp_path)))
        with pytest.raises(NotifierError, match="watched directory removed"):
            notifier.check()

    def test_dead_observer_thread_is_fatal(self, notifier, observers):
        notifier.start()
        observers[0].alive = False
        with pytest.raises(NotifierError, match="stopped unexpectedly"):
            notifier.check()

    def test_dead_emitter_is_fatal(self, notifier, observers):
        notifier.start()
        observers[0].emitters[0].alive = False
        with pytest.raises(NotifierError, match="stopped unexpectedly"):
            notifier.check()

    def test_concurrent_deliveries_never_corrupt_queue(self, notifier, queue, tmp_path):
        paths = [tmp_path / f"{i}.log" for i in range(200)]

        def produce():
            for p in paths:
                notifier.deliver(p)

        threads = [threading.Thread(target=produce) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        entries = queue.snapshot()
        assert all(x != y for x, y in zip(entries, entries[1:]))
        assert set(entries) <= set(paths)
