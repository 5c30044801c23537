from datetime import datetime
from typing import Any
from uuid import UUID

from psycopg.rows import dict_row

from docsync.database.connection import get_connection
from docsync.database.models import ConnectionRecord, ConnectionStatus, StorageProvider
from docsync.database.repositories.base import BaseConnectionRepository
from docsync.exceptions import DocSyncError

_CONNECTION_COLUMNS = """
    id, client_id, provider, status, access_token, refresh_token, expires_at,
    scope, provider_account_id, root_folder_id, created_at, updated_at
"""


def _to_record(row: dict[str, Any]) -> ConnectionRecord:
    return ConnectionRecord(
        id=row["id"],
        client_id=row["client_id"],
        provider=StorageProvider(row["provider"]),
        status=ConnectionStatus(row["status"]),
        access_token=row["access_token"],
        refresh_token=row["refresh_token"],
        expires_at=row["expires_at"],
        scope=row["scope"],
        provider_account_id=row["provider_account_id"],
        root_folder_id=row["root_folder_id"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class ConnectionRepository(BaseConnectionRepository):
    """Database operations for the external_storage_connections table."""

    async def _fetch_one(self, query: str, params: tuple[Any, ...]) -> ConnectionRecord | None:
        async with get_connection() as conn:
            async with conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(query, params)
                row = await cur.fetchone()
            await conn.commit()
        if row is None:
            return None
        return _to_record(row)

    async def find(
        self, client_id: UUID, provider: StorageProvider
    ) -> ConnectionRecord | None:
        return await self._fetch_one(
            f"""
            SELECT {_CONNECTION_COLUMNS}
            FROM external_storage_connections
            WHERE client_id = %s AND provider = %s
            """,
            (client_id, provider.value),
        )

    async def find_by_id(self, connection_id: UUID) -> ConnectionRecord | None:
        return await self._fetch_one(
            f"SELECT {_CONNECTION_COLUMNS} FROM external_storage_connections WHERE id = %s",
            (connection_id,),
        )

    async def list_for_client(self, client_id: UUID) -> list[ConnectionRecord]:
        async with get_connection() as conn:
            async with conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(
                    f"""
                    SELECT {_CONNECTION_COLUMNS}
                    FROM external_storage_connections
                    WHERE client_id = %s
                    ORDER BY provider
                    """,
                    (client_id,),
                )
                rows = await cur.fetchall()
        return [_to_record(row) for row in rows]

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
        record = await self._fetch_one(
            f"""
            INSERT INTO external_storage_connections
                (client_id, provider, status, access_token, refresh_token,
                 expires_at, scope, provider_account_id)
            VALUES (%s, %s, 'connected', %s, %s, %s, %s, %s)
            ON CONFLICT (client_id, provider) DO UPDATE
            SET status = 'connected',
                access_token = EXCLUDED.access_token,
                refresh_token = EXCLUDED.refresh_token,
                expires_at = EXCLUDED.expires_at,
                scope = EXCLUDED.scope,
                provider_account_id = EXCLUDED.provider_account_id,
                updated_at = NOW()
            RETURNING {_CONNECTION_COLUMNS}
            """,
            (
                client_id,
                provider.value,
                access_token,
                refresh_token,
                expires_at,
                scope,
                provider_account_id,
            ),
        )
        if record is None:
            raise DocSyncError(f"Connection upsert for {provider} returned no row")
        return record

    async def update_tokens(
        self,
        connection_id: UUID,
        *,
        access_token: str,
        refresh_token: str | None,
        expires_at: datetime | None,
    ) -> bool:
        async with get_connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    UPDATE external_storage_connections
                    SET access_token = %s, refresh_token = %s, expires_at = %s,
                        updated_at = NOW()
                    WHERE id = %s AND status = 'connected'
                    """,
                    (access_token, refresh_token, expires_at, connection_id),
                )
                updated = cur.rowcount > 0
            await conn.commit()
        return updated

    async def set_status(
        self, connection_id: UUID, status: ConnectionStatus
    ) -> None:
        async with get_connection() as conn:
            await conn.execute(
                """
                UPDATE external_storage_connections
                SET status = %s, updated_at = NOW()
                WHERE id = %s AND status = 'connected'
                """,
                (status.value, connection_id),
            )
            await conn.commit()

    async def set_root_folder(
        self, client_id: UUID, provider: StorageProvider, root_folder_id: str | None
    ) -> ConnectionRecord | None:
        return await self._fetch_one(
            f"""
            UPDATE external_storage_connections
            SET root_folder_id = %s, updated_at = NOW()
            WHERE client_id = %s AND provider = %s
            RETURNING {_CONNECTION_COLUMNS}
            """,
            (root_folder_id, client_id, provider.value),
        )

    async def revoke(self, client_id: UUID, provider: StorageProvider) -> bool:
        async with get_connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    UPDATE external_storage_connections
                    SET status = 'revoked', access_token = '', refresh_token = NULL,
                        updated_at = NOW()
                    WHERE client_id = %s AND provider = %s
                    """,
                    (client_id, provider.value),
                )
                revoked = cur.rowcount > 0
            await conn.commit()
        return revoked
