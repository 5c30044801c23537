from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from uuid import UUID

MAX_ERROR_LENGTH = 500


class JobKind(StrEnum):
    PREVIEW = "preview"
    EXPORT = "export"
    UPLOAD = "upload"


class JobStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"


class StorageProvider(StrEnum):
    GOOGLE_DRIVE = "google_drive"
    MICROSOFT_GRAPH = "microsoft_graph"


class ConnectionStatus(StrEnum):
    CONNECTED = "connected"
    ERROR = "error"
    REVOKED = "revoked"


def truncate_error(message: str) -> str:
    return message[:MAX_ERROR_LENGTH]


@dataclass
class JobRecord:
    """Represents a row from the jobs table."""

    id: UUID
    client_id: UUID
    subject_id: UUID
    kind: JobKind
    status: JobStatus
    attempts: int
    provider: StorageProvider | None = None
    last_error: str | None = None
    locked_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class ConnectionRecord:
    """Represents a row from the external_storage_connections table.

    ``access_token`` and ``refresh_token`` hold ciphertext, never plaintext.
    """

    id: UUID
    client_id: UUID
    provider: StorageProvider
    status: ConnectionStatus
    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None
    scope: str | None = None
    provider_account_id: str | None = None
    root_folder_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class DocumentRecord:
    """Subset of the documents table the worker reads."""

    id: UUID
    client_id: UUID
    name: str
    mime_type: str | None
    storage_path: str


@dataclass(frozen=True)
class ExportRecord:
    """Represents a row from the document_exports table."""

    id: UUID
    client_id: UUID
    status: str
    document_ids: list[UUID] = field(default_factory=list)
    storage_key: str | None = None
    error: str | None = None
