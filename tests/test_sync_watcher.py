"""Tests for the ChangeWatcher control loop.

The watchdog observer is replaced by ``FakeObserver``; events are fed
straight into the watcher's handler, and timers are kept short so each
test finishes in well under a second.
"""

from __future__ import annotations

import threading
import time
from pathlib import Path

from watchdog.events import (
    DirCreatedEvent,
    DirDeletedEvent,
    DirMovedEvent,
    FileClosedEvent,
    FileCreatedEvent,
    FileModifiedEvent,
)

from il_sync.sync.watcher import ChangeWatcher

from conftest import FakeObserver, make_tree, start_thread, wait_for


class Recorder:
    """Counts callback invocations; optionally raises."""

    def __init__(self, error: Exception | None = None) -> None:
        self.calls = 0
        self.error = error
        self._lock = threading.Lock()

    def __call__(self) -> None:
        with self._lock:
            self.calls += 1
        if self.error is not None:
            raise self.error


def _make_watcher(
    root: Path,
    push: Recorder,
    pull: Recorder,
    debounce: float = 0.1,
    pull_interval: float = 60.0,
    push_on_start: bool = False,
) -> ChangeWatcher:
    FakeObserver.instances = []
    return ChangeWatcher(
        root,
        on_push=push,
        on_pull=pull,
        debounce_seconds=debounce,
        pull_interval_seconds=pull_interval,
        push_on_start=push_on_start,
        observer_factory=FakeObserver,
    )


def _observer() -> FakeObserver:
    assert wait_for(lambda: FakeObserver.instances and FakeObserver.instances[-1].started)
    return FakeObserver.instances[-1]


def _stop(watcher: ChangeWatcher, thread: threading.Thread) -> None:
    watcher.stop()
    thread.join(timeout=3)
    assert not thread.is_alive()


# ---------------------------------------------------------------------------
# Debounce and timers
# ---------------------------------------------------------------------------


class TestDebounce:
    def test_burst_produces_single_push(self, sync_root: Path) -> None:
        push, pull = Recorder(), Recorder()
        watcher = _make_watcher(sync_root, push, pull)
        thread = start_thread(watcher.run)
        _observer()

        for i in range(5):
            watcher.handler.on_any_event(FileModifiedEvent(str(sync_root / f"{i}.md")))
            time.sleep(0.02)

        assert wait_for(lambda: push.calls >= 1)
        time.sleep(0.3)
        _stop(watcher, thread)
        assert push.calls == 1
        assert pull.calls == 0

    def test_no_events_no_push(self, sync_root: Path) -> None:
        push, pull = Recorder(), Recorder()
        watcher = _make_watcher(sync_root, push, pull)
        thread = start_thread(watcher.run)
        _observer()
        time.sleep(0.3)
        _stop(watcher, thread)
        assert push.calls == 0

    def test_push_on_start(self, sync_root: Path) -> None:
        push, pull = Recorder(), Recorder()
        watcher = _make_watcher(sync_root, push, pull, push_on_start=True)
        thread = start_thread(watcher.run)
        assert wait_for(lambda: push.calls == 1)
        _stop(watcher, thread)

    def test_non_qualifying_event_ignored(self, sync_root: Path) -> None:
        push, pull = Recorder(), Recorder()
        watcher = _make_watcher(sync_root, push, pull)
        thread = start_thread(watcher.run)
        _observer()
        watcher.handler.on_any_event(FileClosedEvent(str(sync_root / "a.md")))
        time.sleep(0.3)
        _stop(watcher, thread)
        assert push.calls == 0

    def test_hidden_path_ignored(self, sync_root: Path) -> None:
        push, pull = Recorder(), Recorder()
        watcher = _make_watcher(sync_root, push, pull)
        thread = start_thread(watcher.run)
        _observer()
        watcher.handler.on_any_event(FileCreatedEvent(str(sync_root / ".a.md.tmp")))
        time.sleep(0.3)
        _stop(watcher, thread)
        assert push.calls == 0

    def test_periodic_pull(self, sync_root: Path) -> None:
        push, pull = Recorder(), Recorder()
        watcher = _make_watcher(sync_root, push, pull, pull_interval=0.05)
        thread = start_thread(watcher.run)
        assert wait_for(lambda: pull.calls >= 3)
        _stop(watcher, thread)
        assert push.calls == 0

    def test_callback_error_does_not_stop_loop(self, sync_root: Path) -> None:
        push, pull = Recorder(), Recorder(error=RuntimeError("boom"))
        watcher = _make_watcher(sync_root, push, pull, pull_interval=0.05)
        thread = start_thread(watcher.run)
        assert wait_for(lambda: pull.calls >= 2)
        assert thread.is_alive()
        _stop(watcher, thread)


# ---------------------------------------------------------------------------
# Directory registration
# ---------------------------------------------------------------------------


class TestDirectoryWatches:
    def test_every_directory_watched_non_recursively(self, sync_root: Path) -> None:
        make_tree(sync_root, {"a/b/": "", "c/": "", ".git/objects/": ""})
        watcher = _make_watcher(sync_root, Recorder(), Recorder())
        thread = start_thread(watcher.run)
        observer = _observer()

        assert set(observer.watches) == {
            str(sync_root),
            str(sync_root / "a"),
            str(sync_root / "a" / "b"),
            str(sync_root / "c"),
        }
        assert not any(w.is_recursive for w in observer.watches.values())
        _stop(watcher, thread)

    def test_created_directory_registered_with_subtree(self, sync_root: Path) -> None:
        push = Recorder()
        watcher = _make_watcher(sync_root, push, Recorder())
        thread = start_thread(watcher.run)
        observer = _observer()

        make_tree(sync_root, {"new/inner/": ""})
        watcher.handler.on_any_event(DirCreatedEvent(str(sync_root / "new")))

        assert wait_for(lambda: str(sync_root / "new" / "inner") in observer.watches)
        assert str(sync_root / "new") in observer.watches
        assert wait_for(lambda: push.calls == 1)
        _stop(watcher, thread)

    def test_deleted_directory_unregistered_with_subtree(self, sync_root: Path) -> None:
        make_tree(sync_root, {"gone/sub/": "", "kept/": ""})
        watcher = _make_watcher(sync_root, Recorder(), Recorder())
        thread = start_thread(watcher.run)
        observer = _observer()

        watcher.handler.on_any_event(DirDeletedEvent(str(sync_root / "gone")))

        assert wait_for(lambda: str(sync_root / "gone") not in observer.watches)
        assert str(sync_root / "gone" / "sub") not in observer.watches
        assert str(sync_root / "kept") in observer.watches
        _stop(watcher, thread)

    def test_moved_directory_rewatched(self, sync_root: Path) -> None:
        make_tree(sync_root, {"old/": ""})
        watcher = _make_watcher(sync_root, Recorder(), Recorder())
        thread = start_thread(watcher.run)
        observer = _observer()

        (sync_root / "old").rename(sync_root / "renamed")
        watcher.handler.on_any_event(
            DirMovedEvent(str(sync_root / "old"), str(sync_root / "renamed"))
        )

        assert wait_for(lambda: str(sync_root / "renamed") in observer.watches)
        assert str(sync_root / "old") not in observer.watches
        _stop(watcher, thread)

    def test_directory_vanishing_before_watch_is_tolerated(self, sync_root: Path) -> None:
        push = Recorder()
        watcher = _make_watcher(sync_root, push, Recorder())
        thread = start_thread(watcher.run)
        observer = _observer()

        # Created and removed again before the event is processed
        watcher.handler.on_any_event(DirCreatedEvent(str(sync_root / "flash")))
        # Present on disk, but the observer refuses it
        make_tree(sync_root, {"refused/": ""})
        observer.refuse.add(str(sync_root / "refused"))
        watcher.handler.on_any_event(DirCreatedEvent(str(sync_root / "refused")))

        assert wait_for(lambda: push.calls == 1)
        assert thread.is_alive()
        assert str(sync_root / "refused") not in observer.watches
        _stop(watcher, thread)


# ---------------------------------------------------------------------------
# Shutdown
# ---------------------------------------------------------------------------


class TestStop:
    def test_stop_releases_observer(self, sync_root: Path) -> None:
        watcher = _make_watcher(sync_root, Recorder(), Recorder())
        thread = start_thread(watcher.run)
        observer = _observer()
        _stop(watcher, thread)
        assert observer.watches == {}
        assert observer.stopped
        assert observer.joined

    def test_stop_is_idempotent(self, sync_root: Path) -> None:
        watcher = _make_watcher(sync_root, Recorder(), Recorder())
        thread = start_thread(watcher.run)
        _observer()
        watcher.stop()
        watcher.stop()
        thread.join(timeout=3)
        assert not thread.is_alive()
        watcher.stop()
        assert watcher.stopped

    def test_stop_before_run_returns_immediately(self, sync_root: Path) -> None:
        watcher = _make_watcher(sync_root, Recorder(), Recorder())
        watcher.stop()
        watcher.run()
        assert FakeObserver.instances == []

    def test_pending_push_cancelled_by_stop(self, sync_root: Path) -> None:
        push = Recorder()
        watcher = _make_watcher(sync_root, push, Recorder(), debounce=0.5)
        thread = start_thread(watcher.run)
        _observer()
        watcher.handler.on_any_event(FileModifiedEvent(str(sync_root / "a.md")))
        time.sleep(0.05)
        _stop(watcher, thread)
        time.sleep(0.6)
        assert push.calls == 0
