from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Optional, Protocol

from dhcore.internal.constants import RESOURCES


class ArtifactState(str, Enum):
    CREATED = "CREATED"
    UPLOADING = "UPLOADING"
    READY = "READY"
    ERROR = "ERROR"


@dataclass
class FileInfo:
    """
    One entry of `status.files`. `path` is relative to the artifact root,
    empty for the artifact's own root file.
    """
    path: str
    name: str
    content_type: str
    last_modified: str  # RFC 1123, GMT
    size: int

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ObjectEntry:
    """A stored object as returned by a listing."""
    key: str
    name: str  # key relative to the listed prefix
    size: int
    last_modified: str


@dataclass
class UploadRequest:
    project: str
    input: str
    resource: str = "artifacts"
    id: Optional[str] = None
    name: Optional[str] = None
    kind: Optional[str] = None
    bucket: Optional[str] = None
    run_id: Optional[str] = None
    verbose: bool = False

    def __post_init__(self):
        if self.kind is None:
            aliases = RESOURCES.get(self.resource)
            self.kind = aliases[0] if aliases else self.resource


@dataclass
class UploadResult:
    artifact_id: str
    files: list[dict] = field(default_factory=list)


@dataclass
class DownloadRequest:
    project: str
    resource: str = "artifacts"
    id: Optional[str] = None
    name: Optional[str] = None
    destination: Optional[str] = None
    verbose: bool = False


@dataclass
class DownloadInfo:
    filename: str
    size: int
    path: str


class ProgressHook(Protocol):
    """
    Observer for byte-level progress of one object.

    At most one `on_start` (only when the total is known), any number of
    `on_progress`, and one `on_done` once the object has been transferred.
    `total_bytes` is None when the size is unknown.
    """

    def on_start(self, key: str, total_bytes: int) -> None:
        ...

    def on_progress(self, key: str, written: int, total_bytes: Optional[int]) -> None:
        ...

    def on_done(self, key: str, total_bytes: Optional[int], elapsed: float) -> None:
        ...


def document_state(document: dict[str, Any]) -> Optional[str]:
    status = document.get("status")
    if not isinstance(status, dict):
        return None
    state = status.get("state")
    return state if isinstance(state, str) else None
