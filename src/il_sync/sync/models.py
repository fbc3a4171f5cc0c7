"""Pydantic models for the sync engine.

Defines the data contracts shared by the reconcilers and the Remote
Gateway:

- ``Folder`` / ``Document``: entities as the remote store reports them.
- ``ChangeSet``: result of a fetch-changes call.
- ``FolderCreate`` / ``DocumentUpsert``: typed operation payloads.
- ``Operation``: the envelope sent to the remote store in batches.
- ``ImageRef``: an ``![alt](target)`` reference embedded in content.
- ``PushReport`` / ``PullReport``: per-cycle outcome summaries.

Field names are snake_case in Python and camelCase on the wire; every
model accepts both and ``to_wire()`` / ``model_dump(by_alias=True)``
produce the wire form.  All models are frozen (immutable).
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator

from il_sync.sync.identity import derive_id

_MODEL_CONFIG = {"frozen": True, "populate_by_name": True}


def _to_slash(path: str) -> str:
    return path.replace("\\", "/")


# ---------------------------------------------------------------------------
# Remote entities
# ---------------------------------------------------------------------------


class Folder(BaseModel):
    """A folder in the remote hierarchy.

    Attributes:
        id: Remote identifier (or a derived one for locally created folders).
        parent_id: Identifier of the parent folder; ``None`` or ``""`` for
            top-level folders.
        name: Last path segment of the folder.
    """

    id: str
    parent_id: str | None = Field(default=None, alias="parentId")
    name: str

    model_config = _MODEL_CONFIG

    @property
    def is_root(self) -> bool:
        """True when the folder has no parent."""
        return not self.parent_id


class Document(BaseModel):
    """A text document in the remote store.

    Attributes:
        id: Remote identifier.
        folder_id: Identifier of the containing folder, if any.
        title: Display title.
        content: Text content with embedded image references.
        relative_path: Forward-slash path relative to the sync root.
    """

    id: str
    folder_id: str | None = Field(default=None, alias="folderId")
    title: str = ""
    content: str = ""
    relative_path: str = Field(alias="relativePath")

    model_config = _MODEL_CONFIG

    @field_validator("relative_path")
    @classmethod
    def _normalise_path(cls, value: str) -> str:
        return _to_slash(value)

    @field_validator("content", "title", mode="before")
    @classmethod
    def _none_to_empty(cls, value: str | None) -> str:
        return value or ""


class ChangeSet(BaseModel):
    """Folders and documents changed since a cursor, plus the new cursor."""

    folders: list[Folder] = []
    documents: list[Document] = []
    cursor: str = Field(default="", alias="lastSyncAt")

    model_config = _MODEL_CONFIG

    @field_validator("folders", "documents", mode="before")
    @classmethod
    def _none_to_list(cls, value: list | None) -> list:
        return value or []

    @field_validator("cursor", mode="before")
    @classmethod
    def _none_cursor(cls, value: str | None) -> str:
        return value or ""


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


class OperationKind(str, Enum):
    """What the remote should do with an operation."""

    CREATE = "create"
    UPDATE = "update"


class EntityType(str, Enum):
    """Which kind of entity an operation targets."""

    FOLDER = "folder"
    DOCUMENT = "document"


class FolderCreate(BaseModel):
    """Payload for creating a folder.

    Attributes:
        id: Derived identifier proposed for the new folder.
        name: Last path segment.
        parent_path: Path of the parent folder, ``None`` at top level.
    """

    id: str
    name: str
    parent_path: str | None = Field(default=None, alias="parentPath")

    model_config = _MODEL_CONFIG


class DocumentUpsert(BaseModel):
    """Payload for creating or updating a document."""

    id: str
    folder_id: str | None = Field(default=None, alias="folderId")
    title: str
    content: str
    relative_path: str = Field(alias="relativePath")

    model_config = _MODEL_CONFIG

    @field_validator("relative_path")
    @classmethod
    def _normalise_path(cls, value: str) -> str:
        return _to_slash(value)


class Operation(BaseModel):
    """One unit of change sent to the remote store.

    The ``type`` tag and the payload class always agree: folder
    operations carry a ``FolderCreate``, document operations a
    ``DocumentUpsert``.  Use ``Operation.create_folder()`` and
    ``Operation.upsert_document()`` rather than building one by hand.
    """

    op: OperationKind
    type: EntityType
    path: str
    data: FolderCreate | DocumentUpsert

    model_config = _MODEL_CONFIG

    @model_validator(mode="after")
    def _check_payload(self) -> Operation:
        expected = (
            FolderCreate if self.type == EntityType.FOLDER else DocumentUpsert
        )
        if not isinstance(self.data, expected):
            raise ValueError(
                f"{self.type.value} operation cannot carry "
                f"{type(self.data).__name__}"
            )
        if self.type == EntityType.FOLDER and self.op != OperationKind.CREATE:
            raise ValueError("folders only support the create operation")
        return self

    @classmethod
    def create_folder(cls, path: str) -> Operation:
        """Build a folder-create operation for the root-relative *path*."""
        path = _to_slash(path)
        parent, _, name = path.rpartition("/")
        return cls(
            op=OperationKind.CREATE,
            type=EntityType.FOLDER,
            path=path,
            data=FolderCreate(
                id=derive_id(path), name=name, parent_path=parent or None
            ),
        )

    @classmethod
    def upsert_document(
        cls, payload: DocumentUpsert, op: OperationKind = OperationKind.CREATE
    ) -> Operation:
        """Wrap a ``DocumentUpsert`` in a create (default) or update envelope."""
        return cls(
            op=op,
            type=EntityType.DOCUMENT,
            path=payload.relative_path,
            data=payload,
        )

    def to_wire(self) -> dict:
        """Return the JSON-ready wire form of this operation."""
        return {
            "op": self.op.value,
            "type": self.type.value,
            "path": self.path,
            "data": self.data.model_dump(by_alias=True, exclude_none=True),
        }


# ---------------------------------------------------------------------------
# Image references
# ---------------------------------------------------------------------------


class ImageRef(BaseModel):
    """An ``![alt](target)`` span embedded in document content."""

    alt: str
    target: str

    model_config = _MODEL_CONFIG

    @property
    def markdown(self) -> str:
        """The exact span as it appears in content."""
        return f"![{self.alt}]({self.target})"

    @property
    def is_local(self) -> bool:
        """True when *target* is a relative path rather than a URL."""
        ref = self.target.strip()
        return bool(ref) and not ref.startswith(("http://", "https://"))

    def with_target(self, target: str) -> ImageRef:
        """Return a copy pointing at *target*."""
        return ImageRef(alt=self.alt, target=target)


# ---------------------------------------------------------------------------
# Cycle reports
# ---------------------------------------------------------------------------


class PushReport(BaseModel):
    """Outcome of one push cycle.

    Attributes:
        folders: Folder-create operations submitted.
        documents: Document operations submitted in the bulk batch.
        uploads: Images uploaded successfully.
        updates: Follow-up content updates accepted.
        errors: One message per isolated per-item failure.
        cursor: Latest cursor returned by the remote, if any.
    """

    folders: int = 0
    documents: int = 0
    uploads: int = 0
    updates: int = 0
    errors: list[str] = []
    cursor: str | None = None

    model_config = {"frozen": True}

    @property
    def operations(self) -> int:
        """Total operations sent to the remote store."""
        return self.folders + self.documents + self.updates

    def summary(self) -> str:
        """One-line human-readable summary."""
        return (
            f"Push complete ({self.operations} ops: {self.folders} folders, "
            f"{self.documents} documents, {self.uploads} images uploaded, "
            f"{self.updates} updates, {len(self.errors)} errors)"
        )


class PullReport(BaseModel):
    """Outcome of one pull cycle.

    Attributes:
        folders: Local directories ensured.
        documents: Document files written.
        images: Blob images downloaded and rewritten.
        errors: One message per isolated per-item failure.
        cursor: Cursor returned by the fetch.
    """

    folders: int = 0
    documents: int = 0
    images: int = 0
    errors: list[str] = []
    cursor: str | None = None

    model_config = {"frozen": True}

    def summary(self) -> str:
        """One-line human-readable summary."""
        return (
            f"Pull complete ({self.folders} folders, {self.documents} "
            f"documents, {self.images} images, {len(self.errors)} errors)"
        )
