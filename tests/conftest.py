"""Shared pytest fixtures for il-sync tests."""

from __future__ import annotations

import threading
import time
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from il_sync.config import Config
from il_sync.sync.gateway import InMemoryGateway
from il_sync.sync.state import CursorStore


class FakeWatch:
    """Stand-in for a watchdog ``ObservedWatch``."""

    def __init__(self, path: str, recursive: bool) -> None:
        self.path = path
        self.is_recursive = recursive


class FakeObserver:
    """In-process stand-in for a watchdog observer.

    Records every schedule/unschedule call; paths listed in ``refuse``
    raise ``OSError`` from ``schedule()`` as if they vanished first.
    """

    instances: list[FakeObserver] = []

    def __init__(self) -> None:
        self.watches: dict[str, FakeWatch] = {}
        self.scheduled: list[str] = []
        self.unscheduled: list[str] = []
        self.refuse: set[str] = set()
        self.started = False
        self.stopped = False
        self.joined = False
        self.handler = None
        FakeObserver.instances.append(self)

    def schedule(self, handler, path: str, recursive: bool = False) -> FakeWatch:
        if path in self.refuse:
            raise OSError(f"No such file or directory: {path}")
        self.handler = handler
        watch = FakeWatch(path, recursive)
        self.watches[path] = watch
        self.scheduled.append(path)
        return watch

    def unschedule(self, watch: FakeWatch) -> None:
        if watch.path not in self.watches:
            raise KeyError(watch.path)
        del self.watches[watch.path]
        self.unscheduled.append(watch.path)

    def unschedule_all(self) -> None:
        self.watches.clear()

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.stopped = True

    def join(self, timeout: float | None = None) -> None:
        self.joined = True


def wait_for(predicate, timeout: float = 3.0, interval: float = 0.01) -> bool:
    """Poll *predicate* until it is truthy or *timeout* elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return bool(predicate())


def start_thread(target) -> threading.Thread:
    thread = threading.Thread(target=target, daemon=True)
    thread.start()
    return thread


def make_tree(root: Path, files: dict[str, str | bytes]) -> Path:
    """Create *files* (slash path -> content) under *root*.

    A path ending in ``/`` creates an empty directory.
    """
    root.mkdir(parents=True, exist_ok=True)
    for rel, content in files.items():
        path = root / rel
        if rel.endswith("/"):
            path.mkdir(parents=True, exist_ok=True)
            continue
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
    return root


@pytest.fixture
def fake_observer_factory():
    """Factory returning fresh ``FakeObserver`` instances."""
    FakeObserver.instances = []
    return FakeObserver


@pytest.fixture
def gateway() -> InMemoryGateway:
    return InMemoryGateway()


@pytest.fixture
def cursor_store() -> CursorStore:
    """In-memory cursor store."""
    return CursorStore()


@pytest.fixture
def sync_root(tmp_path: Path) -> Path:
    root = tmp_path / "root"
    root.mkdir()
    return root


@pytest.fixture
def mock_config(sync_root: Path) -> Config:
    """Create a Config instance for testing."""
    return Config(
        sync_root=str(sync_root),
        server_url="https://notes.example.com",
        auth_token="test-token",
        insecure=False,
    )


@pytest.fixture
def mock_gateway():
    """A ``MagicMock`` gateway for call-level assertions."""
    from il_sync.sync.gateway import RemoteGateway

    return MagicMock(spec=RemoteGateway)
