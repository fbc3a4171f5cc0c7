"""Sync cursor persistence.

The cursor (``lastSyncAt`` on the wire) is the only state that survives
between runs.  It lives in the ``sync.last_sync_at`` key of the YAML
configuration file and is rewritten after every successful advance.

Key design choices:

* **Atomic writes** -- the config file is rewritten through
  ``save_config_file()`` (temp file + ``os.replace()``) so a crash never
  leaves a truncated config behind.
* **In-memory mode** -- a ``CursorStore`` without a path only keeps the
  cursor in memory, which is what tests and one-off runs use.
"""

from __future__ import annotations

import logging
from pathlib import Path

from il_sync.config_loader import read_config_file, save_config_file
from il_sync.sync.errors import LocalIOError

logger = logging.getLogger(__name__)


class CursorStore:
    """Load and save the sync cursor.

    Args:
        config_path: YAML config file holding ``sync.last_sync_at``, or
            ``None`` to keep the cursor in memory only.
        cursor: Initial cursor, used when *config_path* is ``None`` or
            does not hold one yet.
    """

    def __init__(self, config_path: Path | None = None, cursor: str = "") -> None:
        self._path = config_path
        self._cursor = cursor or ""

    @property
    def cursor(self) -> str:
        """The most recently loaded or saved cursor."""
        return self._cursor

    def load(self) -> str:
        """Re-read the cursor from disk (if backed by a file) and return it."""
        if self._path is not None and self._path.exists():
            data = read_config_file(self._path)
            section = data.get("sync") or {}
            self._cursor = str(section.get("last_sync_at") or "")
        return self._cursor

    def save(self, cursor: str) -> None:
        """Record *cursor* and persist it.

        Raises:
            LocalIOError: If the config file cannot be rewritten.  The
                in-memory cursor is still advanced.
        """
        self._cursor = cursor
        if self._path is None:
            return

        try:
            data = read_config_file(self._path) if self._path.exists() else {}
            section = data.get("sync")
            if not isinstance(section, dict):
                section = {}
                data["sync"] = section
            section["last_sync_at"] = cursor
            save_config_file(self._path, data)
        except OSError as exc:
            raise LocalIOError(
                f"could not persist cursor to {self._path}: {exc}"
            ) from exc
        logger.debug("Cursor saved: %s", cursor)
