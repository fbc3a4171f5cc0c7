"""Push reconciliation: local tree -> remote operations.

One push cycle:

1. Walk the tree and turn every directory below the root into a
   folder-create operation.
2. Resolve ``path -> folder id`` through the ``FolderResolver``.
3. Walk the tree again and turn every document file into a document
   create/upsert operation pointing at its folder.
4. Send folders (sorted by path, so parents precede children) followed by
   documents as one batch, and persist the returned cursor.
5. For each document that references local images, upload every image,
   substitute the returned blob URLs into that document's content, and
   send a single follow-up update with the final content.

Failure of the bulk batch aborts the cycle (the error propagates).  Image
reads, uploads and follow-up updates fail per document: they are logged,
recorded in the report, and the next document carries on.  Nothing that
the remote already accepted is rolled back; because ids are derived from
paths, re-running the push converges on the same remote state.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from il_sync.file_handler import (
    is_document,
    read_file_with_encoding,
    relative_slash_path,
    walk_tree,
)
from il_sync.sync.errors import LocalIOError, SyncError
from il_sync.sync.folders import FolderResolver
from il_sync.sync.gateway import RemoteGateway
from il_sync.sync.identity import derive_id
from il_sync.sync.images import local_image_refs, replace_ref
from il_sync.sync.models import (
    DocumentUpsert,
    ImageRef,
    Operation,
    OperationKind,
    PushReport,
)
from il_sync.sync.state import CursorStore

logger = logging.getLogger(__name__)

DEFAULT_DOCUMENT_EXTENSIONS = (".md",)


class PushReconciler:
    """Push the local tree under *root* to the remote store.

    Args:
        root: Sync root directory.
        gateway: Remote store.
        cursor_store: Where the latest cursor is read from and saved to.
        document_extensions: File suffixes treated as documents.
    """

    def __init__(
        self,
        root: Path,
        gateway: RemoteGateway,
        cursor_store: CursorStore,
        document_extensions: Iterable[str] = DEFAULT_DOCUMENT_EXTENSIONS,
    ) -> None:
        self.root = root
        self.gateway = gateway
        self.cursor_store = cursor_store
        self.document_extensions = tuple(document_extensions)

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    def run(self) -> PushReport:
        """Execute one push cycle.

        Returns:
            A ``PushReport`` for the cycle.

        Raises:
            TransportError: If the bulk batch was not accepted.
            RemoteDataError: If the remote answered with a malformed payload.
        """
        errors: list[str] = []

        folder_paths = self.collect_folders()
        folder_ids = FolderResolver(
            self.gateway, self.cursor_store.cursor
        ).resolve(folder_paths)
        documents = self.collect_documents(folder_ids, errors)

        operations = self.build_batch(folder_paths, documents)
        if not operations:
            logger.debug("Push: nothing to send")
            return PushReport(errors=errors)

        cursor = self.gateway.apply_operations(operations)
        self._save_cursor(cursor, errors)

        uploads = 0
        updates = 0
        for doc in documents:
            refs = local_image_refs(doc.content)
            if not refs:
                continue
            uploaded, new_cursor = self._push_images(doc, refs, errors)
            uploads += uploaded
            if new_cursor is not None:
                updates += 1
                cursor = new_cursor

        if updates:
            self._save_cursor(cursor, errors)

        report = PushReport(
            folders=len(folder_paths),
            documents=len(documents),
            uploads=uploads,
            updates=updates,
            errors=errors,
            cursor=cursor,
        )
        logger.info(report.summary())
        return report

    # ------------------------------------------------------------------
    # Tree walks
    # ------------------------------------------------------------------

    def collect_folders(self) -> list[str]:
        """Return the slash path of every directory below the root."""
        paths: list[str] = []
        for dirpath, _, _ in walk_tree(self.root):
            rel = relative_slash_path(self.root, dirpath)
            if rel:
                paths.append(rel)
        return paths

    def collect_documents(
        self, folder_ids: dict[str, str], errors: list[str]
    ) -> list[DocumentUpsert]:
        """Read every document file into a ``DocumentUpsert``.

        Unreadable files are logged, recorded in *errors* and skipped.
        """
        documents: list[DocumentUpsert] = []
        for dirpath, _, filenames in walk_tree(self.root):
            dir_rel = relative_slash_path(self.root, dirpath)
            for name in filenames:
                path = dirpath / name
                if not is_document(path, self.document_extensions):
                    continue
                rel = relative_slash_path(self.root, path)
                try:
                    content, _ = read_file_with_encoding(path)
                except OSError as exc:
                    logger.warning("Push: read %s: %s", rel, exc)
                    errors.append(f"{rel}: {exc}")
                    continue
                documents.append(
                    DocumentUpsert(
                        id=derive_id(rel),
                        folder_id=folder_ids.get(dir_rel) if dir_rel else None,
                        title=path.stem,
                        content=content,
                        relative_path=rel,
                    )
                )
        return documents

    @staticmethod
    def build_batch(
        folder_paths: Iterable[str], documents: Iterable[DocumentUpsert]
    ) -> list[Operation]:
        """Folder creates sorted by path, then document creates."""
        folder_ops = sorted(
            (Operation.create_folder(p) for p in folder_paths),
            key=lambda op: op.path,
        )
        return folder_ops + [Operation.upsert_document(d) for d in documents]

    # ------------------------------------------------------------------
    # Image phase
    # ------------------------------------------------------------------

    def _push_images(
        self,
        doc: DocumentUpsert,
        refs: list[ImageRef],
        errors: list[str],
    ) -> tuple[int, str | None]:
        """Upload *doc*'s local images and send the rewritten content.

        Targets that resolve outside the sync root are never read.

        Returns:
            ``(images uploaded, cursor of the follow-up update)``; the
            cursor is ``None`` when no update was sent or it failed.
        """
        doc_dir = (self.root / doc.relative_path).parent
        root = self.root.resolve()
        content = doc.content
        uploaded = 0

        for ref in refs:
            image_path = doc_dir / ref.target.strip()
            if not image_path.resolve().is_relative_to(root):
                logger.warning(
                    "Push: image %s in %s is outside the sync root",
                    ref.target,
                    doc.relative_path,
                )
                errors.append(f"{doc.relative_path}: image {ref.target}: outside the sync root")
                continue
            try:
                data = image_path.read_bytes()
            except OSError as exc:
                logger.warning(
                    "Push: image %s in %s: %s", ref.target, doc.relative_path, exc
                )
                errors.append(f"{doc.relative_path}: image {ref.target}: {exc}")
                continue
            try:
                url = self.gateway.upload_blob(doc.id, image_path.name, data)
            except SyncError as exc:
                logger.warning(
                    "Push: upload %s in %s: %s", ref.target, doc.relative_path, exc
                )
                errors.append(f"{doc.relative_path}: upload {ref.target}: {exc}")
                continue
            content = replace_ref(content, ref, url)
            uploaded += 1

        if content == doc.content:
            return uploaded, None

        update = Operation.upsert_document(
            doc.model_copy(update={"content": content}),
            op=OperationKind.UPDATE,
        )
        try:
            cursor = self.gateway.apply_operations([update])
        except SyncError as exc:
            logger.warning("Push: update %s: %s", doc.relative_path, exc)
            errors.append(f"{doc.relative_path}: update: {exc}")
            return uploaded, None
        return uploaded, cursor

    def _save_cursor(self, cursor: str, errors: list[str]) -> None:
        try:
            self.cursor_store.save(cursor)
        except LocalIOError as exc:
            logger.error("Push: %s", exc)
            errors.append(str(exc))
