"""Two-way folder/document sync with a remote document store.

Architecture
------------
Identity is content-independent: every folder and document id is derived
from its slash path relative to the sync root (``identity.derive_id``),
so re-running a push converges on the same remote state instead of
creating duplicates.  The only persisted state is the sync cursor.

Modules:

- ``engine``   -- ``SyncEngine``: wires config, gateway, cursor and the
  reconcilers; never lets a failed cycle stop the daemon.
- ``push``     -- ``PushReconciler``: local tree -> one bulk batch, then
  per-document image upload and follow-up update.
- ``pull``     -- ``PullReconciler``: remote delta -> local tree, with
  blob images downloaded next to each document.
- ``folders``  -- ``FolderResolver`` and fixed-point path reconstruction.
- ``images``   -- Markdown image reference scanning and rewriting.
- ``watcher``  -- ``ChangeWatcher``: debounced push, periodic pull.
- ``state``    -- ``CursorStore``: cursor persistence.
- ``gateway``  -- ``RemoteGateway`` protocol and ``InMemoryGateway``.
- ``models``   -- pydantic data contracts.
- ``errors``   -- error taxonomy.

Usage example
-------------
::

    from il_sync.sync import CursorStore, InMemoryGateway, SyncEngine

    engine = SyncEngine(config, InMemoryGateway(), CursorStore())
    print(engine.push().summary())
"""

from .engine import SyncEngine
from .errors import LocalIOError, RemoteDataError, SyncError, TransportError
from .gateway import InMemoryGateway, RemoteGateway
from .identity import derive_id
from .models import ChangeSet, Document, Folder, Operation, PullReport, PushReport
from .state import CursorStore

__all__ = [
    "ChangeSet",
    "CursorStore",
    "Document",
    "Folder",
    "InMemoryGateway",
    "LocalIOError",
    "Operation",
    "PullReport",
    "PushReport",
    "RemoteDataError",
    "RemoteGateway",
    "SyncEngine",
    "SyncError",
    "TransportError",
    "derive_id",
]
