import os
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping


class Direction(Enum):
    SENDING = "sending"
    RECEIVING = "receiving"


class NotificationKind(Enum):
    SUCCESS = "success"
    INFO = "info"


@dataclass(frozen=True)
class Peer:
    id: str
    addresses: tuple[str, ...] = ()

    @property
    def first_address(self) -> str | None:
        return self.addresses[0] if self.addresses else None


@dataclass(frozen=True)
class Message:
    sender: str
    content: str


@dataclass(frozen=True)
class FileRecord:
    name: str
    sender: str
    size: int


@dataclass(frozen=True)
class ProgressUpdate:
    """A FILE_PROGRESS record, before we know which way the file is going."""
    key: str
    percent: float
    peer: str


@dataclass(frozen=True)
class TransferProgress:
    key: str
    percent: float
    direction: Direction
    peer: str


@dataclass(frozen=True)
class Notification:
    message: str
    kind: NotificationKind
    expires_at: float  # event loop time


@dataclass(frozen=True)
class UploadFile:
    path: str
    name: str
    size: int

    @classmethod
    def from_path(cls, path: str) -> "UploadFile":
        """
        Builds an UploadFile from a path on disk. Raises FileNotFoundError if
        the path isn't a regular file.
        """
        if not os.path.isfile(path):
            raise FileNotFoundError(f"No such file: {path}")
        return cls(path=path, name=os.path.basename(path), size=os.path.getsize(path))


def _empty_mapping() -> Mapping:
    return MappingProxyType({})


@dataclass(frozen=True)
class Snapshot:
    """
    Everything we know about the node at one point in time.
    Only StateReconciler builds these; each apply swaps in a new one.
    """
    peers: tuple[Peer, ...] = ()
    messages: tuple[Message, ...] = ()
    files: tuple[FileRecord, ...] = ()
    transfers: Mapping[str, TransferProgress] = field(default_factory=_empty_mapping)
    local_addr: str | None = None
    error: str | None = None
    action_errors: Mapping[str, Exception] = field(default_factory=_empty_mapping)

    def peer_ids(self) -> list[str]:
        return [p.id for p in self.peers]

    def find_file(self, name: str) -> FileRecord | None:
        for f in self.files:
            if f.name == name:
                return f
        return None
