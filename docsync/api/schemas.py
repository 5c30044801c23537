from datetime import datetime
from uuid import UUID

from pydantic import BaseModel

from docsync.database.models import ConnectionRecord, ConnectionStatus, StorageProvider


class ConnectionPublic(BaseModel):
    """A connection as exposed over HTTP. Token fields are never included."""

    id: UUID
    client_id: UUID
    provider: StorageProvider
    status: ConnectionStatus
    expires_at: datetime | None = None
    scope: str | None = None
    provider_account_id: str | None = None
    root_folder_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_record(cls, record: ConnectionRecord) -> "ConnectionPublic":
        return cls(
            id=record.id,
            client_id=record.client_id,
            provider=record.provider,
            status=record.status,
            expires_at=record.expires_at,
            scope=record.scope,
            provider_account_id=record.provider_account_id,
            root_folder_id=record.root_folder_id,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class ConnectionList(BaseModel):
    data: list[ConnectionPublic]


class ConnectionEnvelope(BaseModel):
    data: ConnectionPublic


class AuthUrlResponse(BaseModel):
    url: str


class RootFolderUpdate(BaseModel):
    root_folder_id: str | None = None
