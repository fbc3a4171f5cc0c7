"""Error taxonomy for the sync engine.

Three families of failure are distinguished:

- ``TransportError``: network failures and non-2xx responses from the
  remote store.
- ``RemoteDataError``: payloads that cannot be decoded or do not match
  the expected shape.
- ``LocalIOError``: filesystem failures while walking, reading or
  writing the local tree.

A whole-cycle failure (bulk push batch, change fetch) propagates as one
of these up to ``SyncEngine``, which logs it and waits for the next
trigger.  Per-item failures are caught inside the reconcilers.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base class for all sync failures."""


class TransportError(SyncError):
    """The remote store could not be reached or rejected the request.

    Attributes:
        status_code: HTTP status code when the server answered, else ``None``.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RemoteDataError(SyncError):
    """The remote store answered with a malformed payload."""


class LocalIOError(SyncError):
    """A local filesystem operation failed."""
