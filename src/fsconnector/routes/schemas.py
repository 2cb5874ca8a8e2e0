"""Pydantic schemas for the upload-manifest service.

These schemas define the data structures exchanged with the host:
- ChangeRequest: One entry of an uploaded manifest
- UploadParameters: The "parameters" part of the multi-part upload
- ApplierResult: Per-entry outcome of applying a manifest
- UploadResponse: What the host renders back to the client
- TreeEntry: One object in a file-tree listing

All schemas use Pydantic v2 for validation and serialization. Wire field
names follow the service contract (``commitId``, ``content``), accessed in
Python by their snake_case attribute names.
"""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field


class ChangeType(str, Enum):
    """Kind of mutation requested by a manifest entry.

    Attributes:
        ADD: Add a new file; must not overwrite an existing one
        ADD_FOLDER: Add a (possibly empty) folder; existing folders are fine
        REVISE: Replace the content of an existing file
        MOVE: Move a file or folder to a new location
        REMOVE: Remove a file or a folder with all its content
    """

    ADD = "add"
    ADD_FOLDER = "addFolder"
    REVISE = "revise"
    MOVE = "move"
    REMOVE = "remove"


class ChangeProperties(BaseModel):
    """Optional file properties carried by add/revise entries.

    Attributes:
        executable: Whether the file should be executable. ``None`` means
            "not given": new files default to non-executable, revised files
            keep their current access.
    """

    executable: bool | None = None

    model_config = ConfigDict(extra="ignore", frozen=True)


class ChangeRequest(BaseModel):
    """A single manifest entry.

    Attributes:
        index: Unique number used to report problems with this entry
        type: The requested mutation
        id: Stable identifier of the object, its original relative path
        path: Target path (add, addFolder)
        destination: New path (move)
        content_part: Name of the multi-part part holding file content
        properties: Optional file properties
    """

    index: int
    type: ChangeType
    id: str
    path: str | None = None
    destination: str | None = None
    content_part: str | None = Field(default=None, alias="content")
    properties: ChangeProperties | None = None

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    @property
    def executable(self) -> bool | None:
        """The requested executable flag, or ``None`` when not given."""
        if self.properties is None:
            return None
        return self.properties.executable


class UploadParameters(BaseModel):
    """Parameters part of an upload.

    Attributes:
        commit_id: Client-side identifier of the change set (required)
        comment: Free-form description of the change set
    """

    commit_id: str = Field(default="", alias="commitId")
    comment: str = ""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class EntryResult(BaseModel):
    """Outcome of applying one manifest entry."""

    index: int
    type: ChangeType
    id: str
    ok: bool
    error: str | None = None


class ApplierResult(BaseModel):
    """Outcome of applying a whole manifest.

    ``completed`` and ``has_failures`` are independent: a batch that ran every
    entry can still contain failed entries, and a batch rejected by
    initialization is neither completed nor failure-free.

    Attributes:
        entries: One result per attempted entry, in manifest order
        completed: True when every entry was attempted
        has_failures: True when any entry (or the batch itself) failed
        error: Batch-level error from initialization or finishing
    """

    entries: list[EntryResult] = Field(default_factory=list)
    completed: bool
    has_failures: bool
    error: str | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def success(self) -> bool:
        """True when there is no batch error and every entry succeeded."""
        return self.error is None and all(entry.ok for entry in self.entries)

    @property
    def failures(self) -> list[EntryResult]:
        """Entries that failed, in manifest order."""
        return [entry for entry in self.entries if not entry.ok]


class EntryFailure(BaseModel):
    """A failed entry as reported to the client."""

    index: int
    error: str


class UploadResponse(BaseModel):
    """Response body for the upload-manifest service.

    Attributes:
        status: 'ok' when everything applied, 'failed' otherwise
        message: Summary text
        failures: Failed entries with their error messages
    """

    status: Literal["ok", "failed"]
    message: str
    failures: list[EntryFailure] = Field(default_factory=list)


class TreeEntry(BaseModel):
    """One object in a file-tree listing.

    Attributes:
        id: Relative path from the repository root, usable as a manifest id
        name: Leaf name
        type: 'file' or 'folder'
        size: File size in bytes (0 for folders)
        executable: Whether a file carries the executable bit
    """

    id: str
    name: str
    type: Literal["file", "folder"]
    size: int = 0
    executable: bool = False
