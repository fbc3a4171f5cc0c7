"""Folder hierarchy reconstruction and folder-id resolution.

The remote store reports folders as a flat list of
``(id, parent_id, name)`` records in no particular order.  Full paths are
recovered by fixed-point propagation: top-level folders are placed at
their bare name, then every folder whose parent has already been placed
is placed under it, pass after pass, until a pass places nothing new.
Folders whose ancestor chain never resolves (dangling parent, cycle) are
left out.

An explicit ``id -> path`` index is updated once per placed folder, so
looking up a parent is a dict hit rather than a scan of every known path.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from il_sync.sync.errors import SyncError
from il_sync.sync.gateway import RemoteGateway
from il_sync.sync.identity import derive_id
from il_sync.sync.models import Folder

logger = logging.getLogger(__name__)


def resolve_folder_paths(
    folders: Iterable[Folder],
    known: dict[str, str] | None = None,
) -> dict[str, str]:
    """Return ``folder id -> full slash path`` for every placeable folder.

    Args:
        folders: Remote folder records in any order.
        known: Optional pre-seeded ``id -> path`` entries that parents may
            resolve against (e.g. folders this client is about to create).
            Seed entries are not included in the result.

    Returns:
        Mapping of each resolvable remote folder's id to its path.
    """
    index: dict[str, str] = dict(known or {})
    placed: dict[str, str] = {}
    pending = [f for f in folders if f.name]

    while pending:
        remaining: list[Folder] = []
        for folder in pending:
            if folder.is_root:
                path = folder.name
            elif folder.parent_id in index:
                path = f"{index[folder.parent_id]}/{folder.name}"
            else:
                remaining.append(folder)
                continue
            index[folder.id] = path
            placed[folder.id] = path

        if len(remaining) == len(pending):
            break
        pending = remaining

    if pending:
        logger.warning(
            "Skipping %d folder(s) with unresolved parents: %s",
            len(pending),
            ", ".join(sorted(f.name for f in pending)),
        )
    return placed


class FolderResolver:
    """Map local folder paths to the remote folder ids they should use.

    Args:
        gateway: Remote store to read the folder graph from.
        cursor: Cursor to fetch the folder graph with.
    """

    def __init__(self, gateway: RemoteGateway, cursor: str = "") -> None:
        self.gateway = gateway
        self.cursor = cursor

    def resolve(self, local_paths: Iterable[str]) -> dict[str, str]:
        """Return ``path -> folder id`` for *local_paths* and every remote
        folder that could be placed.

        Every local path is first seeded with its derived id (it is about
        to be created with that id).  Remote folders then override the
        seed for the same path, so folders that already exist remotely
        are reused.  If the remote graph cannot be fetched the seeds are
        returned unchanged.
        """
        mapping = {path: derive_id(path) for path in local_paths}

        try:
            changes = self.gateway.fetch_changes(self.cursor)
        except SyncError as exc:
            logger.warning(
                "Could not fetch remote folders, using derived ids: %s", exc
            )
            return mapping

        seeds = {folder_id: path for path, folder_id in mapping.items()}
        for folder_id, path in resolve_folder_paths(
            changes.folders, known=seeds
        ).items():
            mapping[path] = folder_id
        return mapping
