"""Shared pytest helpers and fixtures for the logtail test suite.

write_records(path, records)  — append CRLF-terminated records to a file
wait_until(predicate)         — poll until a condition holds (threaded tests)
FakeObserver                  — stand-in for the watchdog observer; tests feed
                                events to ``observer.handler.dispatch(...)``
observers / observer_factory  — fixture pair that records every FakeObserver
fast_settings                 — Settings with short tail-loop waits
"""

import threading
import time
from collections.abc import Callable
from pathlib import Path

import pytest
import structlog

from logtail.config import Settings, get_settings

CRLF = "\r\n"


def write_records(path: Path, records: list[str], *, tail: str = "") -> None:
    """Append *records* (each CRLF-terminated) plus an unterminated *tail*."""
    with path.open("a", encoding="utf-8", newline="") as fh:
        fh.write("".join(r + CRLF for r in records) + tail)


def wait_until(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.01) -> bool:
    """Poll *predicate* until it returns True or *timeout* seconds pass."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


class _Emitter:
    def __init__(self) -> None:
        self.alive = True

    def is_alive(self) -> bool:
        return self.alive


class FakeObserver:
    """Records the scheduled handler instead of watching the file system."""

    def __init__(self) -> None:
        self.handler = None
        self.path: str | None = None
        self.recursive: bool | None = None
        self.alive = False
        self.emitters = [_Emitter()]
        self.stopped = threading.Event()

    def schedule(self, handler, path: str, recursive: bool = False) -> None:
        self.handler = handler
        self.path = path
        self.recursive = recursive

    def start(self) -> None:
        self.alive = True

    def stop(self) -> None:
        self.alive = False
        self.stopped.set()

    def join(self, timeout: float | None = None) -> None:
        pass

    def is_alive(self) -> bool:
        return self.alive


@pytest.fixture()
def observers() -> list[FakeObserver]:
    """Every FakeObserver built by ``observer_factory``, in creation order."""
    return []


@pytest.fixture()
def observer_factory(observers: list[FakeObserver]) -> Callable[[], FakeObserver]:
    def _factory() -> FakeObserver:
        observer = FakeObserver()
        observers.append(observer)
        return observer

    return _factory


@pytest.fixture()
def fast_settings() -> Settings:
    """Settings with waits short enough for threaded tests."""
    return Settings(tail={"idle_wait_seconds": 0.05, "active_wait_seconds": 0.1})


@pytest.fixture(autouse=True)
def _isolate_global_state():
    """Reset settings cache and structlog state around every test."""
    get_settings.cache_clear()
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    yield
    get_settings.cache_clear()
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
