"""Change watcher: filesystem events -> debounced push, timer -> pull.

A single control loop owns all watcher state.  It multiplexes:

- filesystem events delivered by a watchdog observer (one non-recursive
  watch per directory, added and removed as directories come and go);
- the debounce deadline, reset by every qualifying event, which fires the
  push callback once the tree has been quiet for the debounce period;
- the periodic pull deadline;
- the stop signal.

Push and pull run synchronously inside the loop, so they never overlap.
``stop()`` may be called from any thread (e.g. a signal handler): it sets
a one-shot event and wakes the loop through the event queue, and never
touches loop state directly.  A cycle already running finishes; no new
one starts.
"""

from __future__ import annotations

import logging
import os
import queue
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from il_sync.file_handler import walk_tree

logger = logging.getLogger(__name__)

QUALIFYING_EVENTS = frozenset(
    {EVENT_TYPE_CREATED, EVENT_TYPE_MODIFIED, EVENT_TYPE_DELETED, EVENT_TYPE_MOVED}
)

_WAKE = object()


class _QueueingHandler(FileSystemEventHandler):
    """Forward every watchdog event onto the loop's queue."""

    def __init__(self, events: queue.Queue) -> None:
        self._events = events

    def on_any_event(self, event: FileSystemEvent) -> None:
        self._events.put(event)


@dataclass
class WatcherState:
    """Mutable state owned exclusively by the watch loop.

    Attributes:
        watches: Watched directory path -> observer watch handle.
        push_due: Monotonic time at which the debounced push fires, or
            ``None`` when no push is pending.
        pull_due: Monotonic time of the next periodic pull.
    """

    watches: dict[str, Any] = field(default_factory=dict)
    push_due: float | None = None
    pull_due: float = 0.0


class ChangeWatcher:
    """Watch *root* and drive the push/pull callbacks.

    Args:
        root: Directory tree to watch.
        on_push: Called once per debounced burst of local changes.
        on_pull: Called every *pull_interval_seconds*.
        debounce_seconds: Quiet period before a push fires.
        pull_interval_seconds: Period of the pull timer.
        push_on_start: Arm the debounce timer at start-up so edits made
            while the watcher was down are pushed.
        observer_factory: Builds the watchdog observer (overridable for
            tests).
    """

    def __init__(
        self,
        root: Path,
        on_push: Callable[[], Any],
        on_pull: Callable[[], Any],
        debounce_seconds: float = 3.0,
        pull_interval_seconds: float = 30.0,
        push_on_start: bool = True,
        observer_factory: Callable[[], Any] = Observer,
    ) -> None:
        self.root = root
        self.on_push = on_push
        self.on_pull = on_pull
        self.debounce_seconds = debounce_seconds
        self.pull_interval_seconds = pull_interval_seconds
        self.push_on_start = push_on_start
        self._observer_factory = observer_factory

        self._events: queue.Queue = queue.Queue()
        self._stop = threading.Event()
        self.handler = _QueueingHandler(self._events)

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    @property
    def stopped(self) -> bool:
        """True once ``stop()`` has been called."""
        return self._stop.is_set()

    def stop(self) -> None:
        """Ask the loop to exit.  Safe from any thread, any number of times."""
        self._stop.set()
        self._events.put(_WAKE)

    def run(self) -> None:
        """Run the watch loop until ``stop()`` is called."""
        if self._stop.is_set():
            return

        observer = self._observer_factory()
        state = WatcherState(
            pull_due=time.monotonic() + self.pull_interval_seconds
        )
        if self.push_on_start:
            state.push_due = time.monotonic() + self.debounce_seconds

        self._register_tree(observer, state, self.root)
        observer.start()
        logger.info(
            "Watching %s (recursive, %d directories)",
            self.root,
            len(state.watches),
        )

        try:
            while not self._stop.is_set():
                try:
                    item = self._events.get(timeout=self._timeout(state))
                except queue.Empty:
                    item = None
                if self._stop.is_set():
                    break
                if item is not None and item is not _WAKE:
                    self._handle_event(observer, state, item)
                self._fire_due(state)
        finally:
            state.push_due = None
            state.watches.clear()
            observer.unschedule_all()
            observer.stop()
            observer.join()
            logger.info("Stopped watching %s", self.root)

    # ------------------------------------------------------------------
    # Loop internals
    # ------------------------------------------------------------------

    def _timeout(self, state: WatcherState) -> float:
        due = state.pull_due
        if state.push_due is not None:
            due = min(due, state.push_due)
        return max(0.0, due - time.monotonic())

    def _fire_due(self, state: WatcherState) -> None:
        now = time.monotonic()
        if state.push_due is not None and now >= state.push_due:
            state.push_due = None
            if not self._stop.is_set():
                self._invoke(self.on_push, "push")
        if now >= state.pull_due:
            if not self._stop.is_set():
                self._invoke(self.on_pull, "pull")
            state.pull_due = time.monotonic() + self.pull_interval_seconds

    @staticmethod
    def _invoke(callback: Callable[[], Any], name: str) -> None:
        try:
            callback()
        except Exception:
            logger.exception("Unhandled error during %s; waiting for next trigger", name)

    def _handle_event(
        self, observer: Any, state: WatcherState, event: FileSystemEvent
    ) -> None:
        if event.event_type not in QUALIFYING_EVENTS:
            return
        src = os.fsdecode(event.src_path)
        dest = os.fsdecode(getattr(event, "dest_path", "") or "")
        if self._is_hidden(src) and (not dest or self._is_hidden(dest)):
            return

        if event.is_directory:
            if event.event_type == EVENT_TYPE_CREATED:
                self._register_tree(observer, state, Path(src))
            elif event.event_type == EVENT_TYPE_DELETED:
                self._unregister(observer, state, src)
            elif event.event_type == EVENT_TYPE_MOVED:
                self._unregister(observer, state, src)
                if dest and not self._is_hidden(dest):
                    self._register_tree(observer, state, Path(dest))

        logger.debug("%s %s", event.event_type, src)
        state.push_due = time.monotonic() + self.debounce_seconds

    def _register_tree(
        self, observer: Any, state: WatcherState, path: Path
    ) -> None:
        """Watch *path* and every directory below it.

        A directory that vanishes before its watch is added is ignored.
        """
        for dirpath, _, _ in walk_tree(path):
            key = str(dirpath)
            if key in state.watches:
                continue
            try:
                state.watches[key] = observer.schedule(
                    self.handler, key, recursive=False
                )
            except OSError as exc:
                logger.debug("Could not watch %s: %s", key, exc)

    def _unregister(self, observer: Any, state: WatcherState, path: str) -> None:
        """Drop the watches on *path* and everything below it."""
        prefix = path.rstrip(os.sep) + os.sep
        for key in [k for k in state.watches if k == path or k.startswith(prefix)]:
            watch = state.watches.pop(key)
            try:
                observer.unschedule(watch)
            except (KeyError, OSError) as exc:
                logger.debug("Could not unwatch %s: %s", key, exc)

    def _is_hidden(self, path: str) -> bool:
        try:
            rel = Path(path).relative_to(self.root)
        except ValueError:
            return False
        return any(part.startswith(".") for part in rel.parts)
