from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Optional, Sequence, Tuple, Union

ROOT_DIRECTORY_ID = 0

TaskKey = Union[int, str]


class FileKind(IntEnum):
    FILE = 0
    DIRECTORY = 1


@dataclass(frozen=True)
class FileEntry:
    id: int
    name: str
    size_bytes: int
    kind: FileKind = FileKind.FILE
    content_hash: Optional[str] = None
    storage_key_flag: Optional[str] = None

    @property
    def is_directory(self) -> bool:
        return self.kind == FileKind.DIRECTORY


@dataclass(frozen=True)
class DirectoryListing:
    parent_id: int
    entries: Tuple[FileEntry, ...] = ()

    @classmethod
    def of(cls, parent_id: int, entries: Sequence[FileEntry]) -> "DirectoryListing":
        return cls(parent_id=parent_id, entries=tuple(entries))

    def find(self, entry_id: int) -> Optional[FileEntry]:
        return next((entry for entry in self.entries if entry.id == entry_id), None)


class TransferKind(str, Enum):
    DOWNLOAD = "download"
    UPLOAD = "upload"


class Phase(str, Enum):
    STARTING = "starting"
    HASHING = "hashing"
    IN_PROGRESS = "in_progress"
    FINISHED = "finished"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (Phase.FINISHED, Phase.FAILED)


@dataclass(frozen=True)
class TransferTask:
    kind: TransferKind
    key: TaskKey
    display_name: str
    progress: int = 0
    phase: Phase = Phase.STARTING
    error: Optional[str] = None


@dataclass(frozen=True)
class ProgressEvent:
    kind: TransferKind
    key: TaskKey
    progress: int
    phase: Phase
    message: Optional[str] = None


@dataclass(frozen=True)
class DownloadRequest:
    file_id: int
    file_name: str
    file_kind: FileKind
    content_hash: Optional[str]
    storage_key_flag: Optional[str]
    size: int
    destination_path: str

    @classmethod
    def for_entry(cls, entry: FileEntry, destination_path: str) -> "DownloadRequest":
        return cls(
            file_id=entry.id,
            file_name=entry.name,
            file_kind=entry.kind,
            content_hash=entry.content_hash,
            storage_key_flag=entry.storage_key_flag,
            size=entry.size_bytes,
            destination_path=destination_path,
        )


@dataclass(frozen=True)
class UploadRequest:
    parent_directory_id: int
    source_path: str


@dataclass(frozen=True)
class ShareResult:
    share_url: str
    share_password: Optional[str] = None
