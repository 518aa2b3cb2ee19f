"""Data models and enums for the Elevex ingestion console."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class TaskStatus(str, Enum):
    """Status of a file within the active ingestion batch."""

    WAITING = "waiting"
    UPLOADING = "uploading"
    PROCESSING = "processing"
    SAVING = "saving"
    DONE = "done"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.DONE, TaskStatus.ERROR)


class RecordStatus(str, Enum):
    """Status of a source file record in the catalog."""

    PENDING = "pending"
    PROCESSING = "processing"
    INDEXED = "indexed"
    ERROR = "error"


def derive_title(file_name: str) -> str:
    """Strip a trailing ``.pdf`` extension (any case) from a file name."""
    if file_name.lower().endswith(".pdf"):
        return file_name[:-4]
    return file_name


@dataclass
class FileTask:
    """Per-file progress record rendered by the console."""

    file_name: str
    status: TaskStatus = TaskStatus.WAITING
    message: str = ""
    progress: int | None = 0
    last_updated_at: float = 0.0


@dataclass(frozen=True)
class Scope:
    """Taxonomy node (brand, optionally narrowed to a model) a file belongs to."""

    brand_id: str
    brand_name: str | None = None
    model_id: str | None = None
    model_name: str | None = None

    @property
    def scope_id(self) -> str:
        return self.brand_id

    @property
    def label(self) -> str:
        brand = self.brand_name or self.brand_id
        if self.model_id:
            return f"{brand} -> {self.model_name or self.model_id}"
        return f"{brand} (general)"


@dataclass
class SourceDocument:
    """A local PDF selected for upload.

    Either ``path`` or ``data`` must be set; ``data`` wins when both are.
    """

    name: str
    size: int = 0
    path: Path | None = None
    data: bytes | None = None

    @classmethod
    def from_path(cls, path: Path | str) -> SourceDocument:
        path = Path(path)
        return cls(name=path.name, size=path.stat().st_size, path=path)

    @classmethod
    def from_bytes(cls, name: str, data: bytes) -> SourceDocument:
        return cls(name=name, size=len(data), data=data)

    @property
    def title(self) -> str:
        return derive_title(self.name)

    def read_bytes(self) -> bytes:
        if self.data is not None:
            return self.data
        if self.path is None:
            raise ValueError(f"Document {self.name!r} has neither data nor path")
        return self.path.read_bytes()


@dataclass
class MetadataRecord:
    """A catalog row describing an indexed source file."""

    id: str
    brand_id: str
    title: str
    url: str = ""
    model_id: str | None = None
    file_size: int = 0
    status: RecordStatus = RecordStatus.PENDING
    created_at: str | None = None

    @classmethod
    def from_row(cls, row: dict) -> MetadataRecord:
        return cls(
            id=row["id"],
            brand_id=row["brand_id"],
            title=row["title"],
            url=row.get("url") or "",
            model_id=row.get("model_id"),
            file_size=row.get("file_size") or 0,
            status=RecordStatus(row["status"]),
            created_at=row.get("created_at"),
        )


@dataclass
class IngestConfig:
    """Configuration for the ingestion console.

    Controls the RAG server target, credentials, request timeouts,
    polling cadence and the progress display windows.
    """

    server_url: str = "http://localhost:3002/api"
    api_key: str | None = None
    admin_key: str | None = None
    db_path: str = "data/catalog.db"
    upload_timeout_seconds: float = 120.0
    request_timeout_seconds: float = 30.0
    health_timeout_seconds: float = 10.0
    poll_interval_seconds: float = 1.0
    poll_max_attempts: int = 600
    stall_threshold_seconds: float = 25.0
    display_window_seconds: float = 5.0
    extra_headers: dict[str, str] = field(default_factory=dict)
