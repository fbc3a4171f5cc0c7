"""Pull reconciliation: remote snapshot -> local tree.

One pull cycle fetches everything that changed since the stored cursor,
rebuilds the folder hierarchy locally, writes each document to its
``relative_path`` (remote content always wins), downloads blob-hosted
images next to the document and rewrites their references to the bare
filename, then advances the cursor.

A failed fetch propagates and leaves the cursor untouched.  Per-folder,
per-document and per-image failures are logged and recorded in the
report without stopping the rest of the cycle.
"""

from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath

from il_sync.config import DEFAULT_BLOB_HOST
from il_sync.file_handler import write_bytes_atomic, write_file
from il_sync.sync.errors import LocalIOError, RemoteDataError, SyncError
from il_sync.sync.folders import resolve_folder_paths
from il_sync.sync.gateway import RemoteGateway
from il_sync.sync.images import blob_filename, rewrite_remote_refs
from il_sync.sync.models import Document, ImageRef, PullReport
from il_sync.sync.state import CursorStore

logger = logging.getLogger(__name__)


class PullReconciler:
    """Pull remote changes into the local tree under *root*.

    Args:
        root: Sync root directory.
        gateway: Remote store.
        cursor_store: Where the cursor is read from and saved to.
        blob_host: Host whose image URLs are downloaded and rewritten.
    """

    def __init__(
        self,
        root: Path,
        gateway: RemoteGateway,
        cursor_store: CursorStore,
        blob_host: str = DEFAULT_BLOB_HOST,
    ) -> None:
        self.root = root
        self.gateway = gateway
        self.cursor_store = cursor_store
        self.blob_host = blob_host

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    def run(self) -> PullReport:
        """Execute one pull cycle.

        Returns:
            A ``PullReport`` for the cycle.

        Raises:
            TransportError: If the changes could not be fetched.
            RemoteDataError: If the fetch returned a malformed payload.
        """
        changes = self.gateway.fetch_changes(self.cursor_store.cursor)
        errors: list[str] = []

        folders = 0
        for path in sorted(set(resolve_folder_paths(changes.folders).values())):
            try:
                self.local_path(path).mkdir(parents=True, exist_ok=True)
            except (OSError, RemoteDataError) as exc:
                logger.warning("Pull: mkdir %s: %s", path, exc)
                errors.append(f"{path}: {exc}")
                continue
            folders += 1

        documents = 0
        images = 0
        for doc in changes.documents:
            try:
                images += self._write_document(doc, errors)
            except (OSError, RemoteDataError) as exc:
                logger.warning("Pull: write %s: %s", doc.relative_path, exc)
                errors.append(f"{doc.relative_path}: {exc}")
                continue
            documents += 1

        try:
            self.cursor_store.save(changes.cursor)
        except LocalIOError as exc:
            logger.error("Pull: %s", exc)
            errors.append(str(exc))

        report = PullReport(
            folders=folders,
            documents=documents,
            images=images,
            errors=errors,
            cursor=changes.cursor,
        )
        logger.info(report.summary())
        return report

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def local_path(self, relative_path: str) -> Path:
        """Map a remote slash path onto the local tree.

        Raises:
            RemoteDataError: If the path is empty, absolute, or would
                escape the sync root.
        """
        rel = PurePosixPath(relative_path)
        if not relative_path or rel.is_absolute() or ".." in rel.parts:
            raise RemoteDataError(f"unsafe relative path {relative_path!r}")
        return self.root.joinpath(*rel.parts)

    def _write_document(self, doc: Document, errors: list[str]) -> int:
        """Write *doc* locally; return the number of images downloaded."""
        target = self.local_path(doc.relative_path)
        directory = target.parent
        directory.mkdir(parents=True, exist_ok=True)

        downloaded = 0
        # url -> local name, or None when the download failed
        fetched: dict[str, str | None] = {}

        def _fetch(ref: ImageRef) -> str | None:
            nonlocal downloaded
            if ref.target in fetched:
                return fetched[ref.target]
            fetched[ref.target] = None
            name = blob_filename(ref.target)
            try:
                data = self.gateway.download_blob(ref.target)
                write_bytes_atomic(directory / name, data)
            except (SyncError, OSError) as exc:
                logger.warning(
                    "Pull: image %s in %s: %s", ref.target, doc.relative_path, exc
                )
                errors.append(f"{doc.relative_path}: image {ref.target}: {exc}")
                return None
            downloaded += 1
            fetched[ref.target] = name
            return name

        content = rewrite_remote_refs(doc.content, self.blob_host, _fetch)
        write_file(target, content)
        return downloaded
