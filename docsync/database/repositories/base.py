from abc import ABC, abstractmethod
from datetime import datetime
from uuid import UUID

from docsync.database.models import (
    ConnectionRecord,
    ConnectionStatus,
    DocumentRecord,
    ExportRecord,
    JobKind,
    JobRecord,
    JobStatus,
    StorageProvider,
)


class BaseJobRepository(ABC):
    """Contract for the shared job table used by every job kind."""

    @abstractmethod
    async def enqueue(
        self,
        kind: JobKind,
        client_id: UUID,
        subject_id: UUID,
        provider: StorageProvider | None = None,
    ) -> JobRecord:
        """Insert a pending job, or return the open job for the same subject."""

    @abstractmethod
    async def claim_next(self, kind: JobKind) -> JobRecord | None:
        """Atomically move the oldest claimable job of ``kind`` to processing.

        Returns None when nothing is pending or another claimant won the race.
        """

    @abstractmethod
    async def complete(self, job: JobRecord) -> bool:
        """Mark a claimed job as done and release its lock.

        Only applies while ``job`` still holds the lease it was claimed with.
        Returns False when the lease was released or reclaimed meanwhile.
        """

    @abstractmethod
    async def fail(
        self, job: JobRecord, error: str, permanent: bool = False
    ) -> JobStatus | None:
        """Record a failed attempt and return the job's new status.

        Returns None when ``job`` no longer holds its lease.
        """

    @abstractmethod
    async def release_stale(self, kind: JobKind, lease_seconds: int) -> int:
        """Count processing jobs whose lock outlived the lease as failed attempts."""

    @abstractmethod
    async def find_by_id(self, job_id: UUID) -> JobRecord | None:
        """Find a job by ID."""


class BaseConnectionRepository(ABC):
    """Contract for the external_storage_connections table."""

    @abstractmethod
    async def find(
        self, client_id: UUID, provider: StorageProvider
    ) -> ConnectionRecord | None: ...

    @abstractmethod
    async def find_by_id(self, connection_id: UUID) -> ConnectionRecord | None: ...

    @abstractmethod
    async def list_for_client(self, client_id: UUID) -> list[ConnectionRecord]: ...

    @abstractmethod
    async def upsert(
        self,
        client_id: UUID,
        provider: StorageProvider,
        *,
        access_token: str,
        refresh_token: str | None,
        expires_at: datetime | None,
        scope: str | None,
        provider_account_id: str | None,
    ) -> ConnectionRecord:
        """Insert or replace the connection keyed by (client_id, provider)."""

    @abstractmethod
    async def update_tokens(
        self,
        connection_id: UUID,
        *,
        access_token: str,
        refresh_token: str | None,
        expires_at: datetime | None,
    ) -> bool:
        """Store refreshed tokens on a connected row.

        Returns False when the row is gone or no longer connected, so a
        refresh racing a revoke cannot write tokens back.
        """

    @abstractmethod
    async def set_status(
        self, connection_id: UUID, status: ConnectionStatus
    ) -> None:
        """Move a connected row to ``status``. Other rows are left as they are."""

    @abstractmethod
    async def set_root_folder(
        self, client_id: UUID, provider: StorageProvider, root_folder_id: str | None
    ) -> ConnectionRecord | None: ...

    @abstractmethod
    async def revoke(self, client_id: UUID, provider: StorageProvider) -> bool:
        """Clear tokens and mark revoked. Returns False when no row exists."""


class BaseDocumentRepository(ABC):
    """Contract for the documents and document_exports tables."""

    @abstractmethod
    async def find_by_id(self, document_id: UUID) -> DocumentRecord:
        """Raises DocumentNotFoundError if the document does not exist."""

    @abstractmethod
    async def find_many(
        self, client_id: UUID, document_ids: list[UUID]
    ) -> list[DocumentRecord]:
        """Return the client's non-deleted documents among ``document_ids``."""

    @abstractmethod
    async def mark_preview_ready(
        self, document_id: UUID, storage_key: str, mime_type: str, size: int
    ) -> None: ...

    @abstractmethod
    async def mark_preview_failed(self, document_id: UUID, error: str) -> None: ...

    @abstractmethod
    async def mark_external_synced(
        self,
        document_id: UUID,
        provider: StorageProvider,
        file_id: str,
        web_url: str | None,
        drive_id: str | None,
    ) -> None: ...

    @abstractmethod
    async def mark_external_failed(self, document_id: UUID, error: str) -> None: ...

    @abstractmethod
    async def find_export(self, export_id: UUID) -> ExportRecord:
        """Raises DocumentNotFoundError if the export request does not exist."""

    @abstractmethod
    async def mark_export_ready(self, export_id: UUID, storage_key: str) -> None: ...

    @abstractmethod
    async def mark_export_failed(self, export_id: UUID, error: str) -> None: ...
