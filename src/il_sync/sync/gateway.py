"""Remote Gateway contract and its in-memory implementation.

The reconcilers only ever talk to the remote store through the
``RemoteGateway`` protocol.  ``il_sync.core.client.SyncClient`` speaks it
over HTTP; ``InMemoryGateway`` keeps the whole store in process and is
used by the test-suite and for dry experiments.
"""

from __future__ import annotations

import logging
import threading
from typing import Protocol

from il_sync.sync.errors import TransportError
from il_sync.sync.identity import derive_id
from il_sync.sync.models import (
    ChangeSet,
    Document,
    DocumentUpsert,
    EntityType,
    Folder,
    FolderCreate,
    Operation,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class RemoteGateway(Protocol):
    """Protocol that every remote store transport must satisfy."""

    def fetch_changes(self, cursor: str) -> ChangeSet:
        """Return folders and documents changed since *cursor*.

        An empty cursor asks for the full snapshot.

        Raises:
            TransportError: If the store cannot be reached or refuses.
            RemoteDataError: If the response cannot be decoded.
        """
        ...  # pragma: no cover

    def apply_operations(self, operations: list[Operation]) -> str:
        """Apply a batch of operations in order and return the new cursor.

        Raises:
            TransportError: If the batch was not accepted.
        """
        ...  # pragma: no cover

    def upload_blob(self, owner_id: str, filename: str, data: bytes) -> str:
        """Store *data* as an image owned by document *owner_id*.

        Returns:
            The public URL of the stored blob.
        """
        ...  # pragma: no cover

    def download_blob(self, url: str) -> bytes:
        """Return the bytes stored at blob *url*."""
        ...  # pragma: no cover


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------


class InMemoryGateway:
    """A complete remote store held in memory.

    Mirrors the server's behaviour closely enough for the reconcilers to
    be exercised end to end:

    * folder creates resolve the parent by walking the path's name
      segments and are deduplicated on ``(parent_id, name)``;
    * document creates and updates are upserts keyed by ``id``;
    * every mutation bumps a revision counter, and ``fetch_changes()``
      returns only what changed after the revision named by the cursor;
    * uploads are refused for documents that do not exist yet.

    Every call is recorded (``batches``, ``uploads``, ``fetches``) and
    ``fail_call()`` makes a specific call raise ``TransportError``.

    Args:
        blob_host: Host name used for the URLs of uploaded blobs.
    """

    def __init__(self, blob_host: str = "blob.vercel-storage.com") -> None:
        self.blob_host = blob_host
        self.folders: dict[str, Folder] = {}
        self.documents: dict[str, Document] = {}
        self.blobs: dict[str, bytes] = {}

        self.batches: list[list[Operation]] = []
        self.uploads: list[tuple[str, str, bytes]] = []
        self.fetches: list[str] = []

        self._revision = 0
        self._changed_at: dict[tuple[str, str], int] = {}
        self._calls: dict[str, int] = {}
        self._failures: dict[str, set[int]] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Test helpers
    # ------------------------------------------------------------------

    def fail_call(self, method: str, *call_numbers: int) -> None:
        """Make the given (1-based, counted since creation) calls of
        *method* raise ``TransportError`` instead of doing anything."""
        self._failures.setdefault(method, set()).update(call_numbers)

    def add_folder(self, folder: Folder) -> None:
        """Insert *folder* as if another client had created it."""
        with self._lock:
            self.folders[folder.id] = folder
            self._touch(EntityType.FOLDER, folder.id)

    def add_document(self, document: Document) -> None:
        """Insert *document* as if another client had created it."""
        with self._lock:
            self.documents[document.id] = document
            self._touch(EntityType.DOCUMENT, document.id)

    def document_by_path(self, relative_path: str) -> Document | None:
        """Return the stored document at *relative_path*, if any."""
        for doc in self.documents.values():
            if doc.relative_path == relative_path:
                return doc
        return None

    @property
    def cursor(self) -> str:
        """Cursor naming the current revision."""
        return str(self._revision)

    # ------------------------------------------------------------------
    # RemoteGateway
    # ------------------------------------------------------------------

    def fetch_changes(self, cursor: str) -> ChangeSet:
        with self._lock:
            self._enter("fetch_changes")
            self.fetches.append(cursor)
            since = int(cursor) if cursor and cursor.isdigit() else 0
            return ChangeSet(
                folders=[
                    f
                    for f in self.folders.values()
                    if self._changed_at[(EntityType.FOLDER, f.id)] > since
                ],
                documents=[
                    d
                    for d in self.documents.values()
                    if self._changed_at[(EntityType.DOCUMENT, d.id)] > since
                ],
                cursor=str(self._revision),
            )

    def apply_operations(self, operations: list[Operation]) -> str:
        with self._lock:
            self._enter("apply_operations")
            self.batches.append(list(operations))
            for op in operations:
                if isinstance(op.data, FolderCreate):
                    self._create_folder(op.path, op.data)
                else:
                    self._upsert_document(op.data)
            return str(self._revision)

    def upload_blob(self, owner_id: str, filename: str, data: bytes) -> str:
        with self._lock:
            self._enter("upload_blob")
            if owner_id not in self.documents:
                raise TransportError(
                    f"image upload 404: document {owner_id} not found",
                    status_code=404,
                )
            url = f"https://{self.blob_host}/{owner_id}/{filename}"
            self.blobs[url] = data
            self.uploads.append((owner_id, filename, data))
            return url

    def download_blob(self, url: str) -> bytes:
        with self._lock:
            self._enter("download_blob")
            if url not in self.blobs:
                raise TransportError(f"blob GET 404: {url}", status_code=404)
            return self.blobs[url]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _enter(self, method: str) -> None:
        count = self._calls.get(method, 0) + 1
        self._calls[method] = count
        if count in self._failures.get(method, ()):
            raise TransportError(
                f"{method} failed (injected, call {count})", status_code=500
            )

    def _touch(self, kind: EntityType, entity_id: str) -> None:
        self._revision += 1
        self._changed_at[(kind, entity_id)] = self._revision

    def _find_folder(self, parent_id: str | None, name: str) -> Folder | None:
        for folder in self.folders.values():
            if (folder.parent_id or None) == parent_id and folder.name == name:
                return folder
        return None

    def _create_folder(self, path: str, payload: FolderCreate) -> None:
        parent_path, _, name = path.rpartition("/")
        parent_id: str | None = None
        if parent_path:
            for part in parent_path.split("/"):
                found = self._find_folder(parent_id, part)
                if found is None:
                    break
                parent_id = found.id

        if self._find_folder(parent_id, name) is not None:
            return
        folder_id = payload.id or derive_id(path)
        if folder_id in self.folders:
            logger.debug("Folder id %s already taken; skipping %s", folder_id, path)
            return
        self.folders[folder_id] = Folder(
            id=folder_id, parent_id=parent_id, name=name
        )
        self._touch(EntityType.FOLDER, folder_id)

    def _upsert_document(self, payload: DocumentUpsert) -> None:
        if not payload.id or not payload.relative_path:
            return
        existing = self.documents.get(payload.id)
        if existing is None:
            title = payload.title or payload.relative_path.removesuffix(".md")
            self.documents[payload.id] = Document(
                id=payload.id,
                folder_id=payload.folder_id,
                title=title,
                content=payload.content,
                relative_path=payload.relative_path,
            )
        else:
            changes: dict = {
                "title": payload.title,
                "content": payload.content,
            }
            if payload.folder_id is not None:
                changes["folder_id"] = payload.folder_id
            self.documents[payload.id] = existing.model_copy(update=changes)
        self._touch(EntityType.DOCUMENT, payload.id)
