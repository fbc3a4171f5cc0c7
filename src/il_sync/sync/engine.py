"""Sync engine: wires configuration, gateway, cursor and reconcilers.

The ``SyncEngine`` owns one push reconciler, one pull reconciler and the
change watcher that drives them.  It:

1. Skips every cycle (with a log line) while no auth token is configured.
2. Runs a push or pull cycle on demand and returns its report.
3. Logs and swallows whole-cycle failures, so a failed cycle never stops
   the watcher loop; the next debounce or pull tick retries.
4. Runs the watch loop until ``stop()`` is called.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from il_sync.config import Config
from il_sync.sync.errors import SyncError
from il_sync.sync.gateway import RemoteGateway
from il_sync.sync.models import PullReport, PushReport
from il_sync.sync.pull import PullReconciler
from il_sync.sync.push import PushReconciler
from il_sync.sync.state import CursorStore
from il_sync.sync.watcher import ChangeWatcher

logger = logging.getLogger(__name__)


class SyncEngine:
    """Drive push/pull cycles for one sync root.

    Args:
        config: Runtime configuration.
        gateway: Remote store.
        cursor_store: Cursor persistence.
        observer_factory: Builds the watchdog observer; ``None`` uses the
            platform default.
    """

    def __init__(
        self,
        config: Config,
        gateway: RemoteGateway,
        cursor_store: CursorStore,
        observer_factory: Callable[[], Any] | None = None,
    ) -> None:
        self.config = config
        self.gateway = gateway
        self.cursor_store = cursor_store
        self.root: Path = config.root_path

        self.pusher = PushReconciler(
            self.root,
            gateway,
            cursor_store,
            document_extensions=config.document_extensions,
        )
        self.puller = PullReconciler(
            self.root, gateway, cursor_store, blob_host=config.blob_host
        )

        watcher_kwargs: dict[str, Any] = {}
        if observer_factory is not None:
            watcher_kwargs["observer_factory"] = observer_factory
        self.watcher = ChangeWatcher(
            self.root,
            on_push=self.push,
            on_pull=self.pull,
            debounce_seconds=config.debounce_seconds,
            pull_interval_seconds=config.pull_interval_seconds,
            **watcher_kwargs,
        )

    @classmethod
    def from_config(
        cls, config: Config, config_path: Path | None = None
    ) -> SyncEngine:
        """Build an engine talking HTTP to ``config.server_url``.

        The cursor is persisted in *config_path* when given, and a cursor
        already stored there takes precedence over ``config.last_sync_at``.
        """
        from il_sync.core.client import SyncClient

        cursor_store = CursorStore(config_path, cursor=config.last_sync_at)
        cursor_store.load()
        return cls(config, SyncClient(config), cursor_store)

    # ------------------------------------------------------------------
    # Cycles
    # ------------------------------------------------------------------

    @property
    def authenticated(self) -> bool:
        return bool(self.config.auth_token)

    def push(self) -> PushReport | None:
        """Run one push cycle; ``None`` when skipped or failed."""
        if not self.authenticated:
            logger.info("Push skipped: not signed in")
            return None
        try:
            return self.pusher.run()
        except (SyncError, OSError) as exc:
            logger.error("Push failed: %s", exc)
            return None

    def pull(self) -> PullReport | None:
        """Run one pull cycle; ``None`` when skipped or failed."""
        if not self.authenticated:
            logger.info("Pull skipped: not signed in")
            return None
        try:
            return self.puller.run()
        except (SyncError, OSError) as exc:
            logger.error("Pull failed: %s", exc)
            return None

    # ------------------------------------------------------------------
    # Daemon loop
    # ------------------------------------------------------------------

    def run(self) -> None:
        """Watch the root and sync until ``stop()`` is called."""
        self.root.mkdir(parents=True, exist_ok=True)
        logger.info("Syncing %s with %s", self.root, self.config.server_url)
        self.watcher.run()

    def stop(self) -> None:
        """Stop the watch loop.  Idempotent and safe from signal handlers."""
        self.watcher.stop()
