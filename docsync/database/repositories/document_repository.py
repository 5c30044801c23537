from typing import Any
from uuid import UUID

from psycopg.rows import dict_row

from docsync.database.connection import get_connection
from docsync.database.models import (
    DocumentRecord,
    ExportRecord,
    StorageProvider,
    truncate_error,
)
from docsync.database.repositories.base import BaseDocumentRepository
from docsync.processor.exceptions import DocumentNotFoundError


def _to_document(row: dict[str, Any]) -> DocumentRecord:
    return DocumentRecord(
        id=row["id"],
        client_id=row["client_id"],
        name=row["name"],
        mime_type=row["mime_type"],
        storage_path=row["storage_path"],
    )


class DocumentRepository(BaseDocumentRepository):
    """Database operations for the documents and document_exports tables."""

    async def find_by_id(self, document_id: UUID) -> DocumentRecord:
        """Find a document by ID.

        Raises:
            DocumentNotFoundError: if no document with this ID exists.
        """
        async with get_connection() as conn:
            async with conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(
                    """
                    SELECT id, client_id, name, mime_type, storage_path
                    FROM documents
                    WHERE id = %s
                    """,
                    (document_id,),
                )
                row = await cur.fetchone()

        if row is None:
            raise DocumentNotFoundError(f"Document {document_id} not found")
        return _to_document(row)

    async def find_many(
        self, client_id: UUID, document_ids: list[UUID]
    ) -> list[DocumentRecord]:
        if not document_ids:
            return []
        async with get_connection() as conn:
            async with conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(
                    """
                    SELECT id, client_id, name, mime_type, storage_path
                    FROM documents
                    WHERE client_id = %s
                      AND id = ANY(%s)
                      AND deleted_at IS NULL
                    ORDER BY name
                    """,
                    (client_id, document_ids),
                )
                rows = await cur.fetchall()
        return [_to_document(row) for row in rows]

    async def _update_document(self, query: str, params: tuple[Any, ...]) -> None:
        async with get_connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(query, params)
                if cur.rowcount == 0:
                    raise DocumentNotFoundError(f"Document {params[-1]} not found")
            await conn.commit()

    async def mark_preview_ready(
        self, document_id: UUID, storage_key: str, mime_type: str, size: int
    ) -> None:
        await self._update_document(
            """
            UPDATE documents
            SET preview_status = 'ready',
                preview_storage_key = %s,
                preview_mime_type = %s,
                preview_size = %s,
                preview_error = NULL,
                preview_updated_at = NOW()
            WHERE id = %s
            """,
            (storage_key, mime_type, size, document_id),
        )

    async def mark_preview_failed(self, document_id: UUID, error: str) -> None:
        await self._update_document(
            """
            UPDATE documents
            SET preview_status = 'failed',
                preview_error = %s,
                preview_updated_at = NOW()
            WHERE id = %s
            """,
            (truncate_error(error), document_id),
        )

    async def mark_external_synced(
        self,
        document_id: UUID,
        provider: StorageProvider,
        file_id: str,
        web_url: str | None,
        drive_id: str | None,
    ) -> None:
        await self._update_document(
            """
            UPDATE documents
            SET external_provider = %s,
                external_file_id = %s,
                external_web_url = %s,
                external_drive_id = %s,
                external_sync_status = 'synced',
                external_synced_at = NOW(),
                external_error = NULL
            WHERE id = %s
            """,
            (provider.value, file_id, web_url, drive_id, document_id),
        )

    async def mark_external_failed(self, document_id: UUID, error: str) -> None:
        await self._update_document(
            """
            UPDATE documents
            SET external_sync_status = 'failed',
                external_error = %s
            WHERE id = %s
            """,
            (truncate_error(error), document_id),
        )

    async def find_export(self, export_id: UUID) -> ExportRecord:
        """Find an export request by ID.

        Raises:
            DocumentNotFoundError: if no export with this ID exists.
        """
        async with get_connection() as conn:
            async with conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(
                    """
                    SELECT id, client_id, status, document_ids, storage_key, error
                    FROM document_exports
                    WHERE id = %s
                    """,
                    (export_id,),
                )
                row = await cur.fetchone()

        if row is None:
            raise DocumentNotFoundError(f"Export {export_id} not found")
        return ExportRecord(
            id=row["id"],
            client_id=row["client_id"],
            status=row["status"],
            document_ids=list(row["document_ids"] or []),
            storage_key=row["storage_key"],
            error=row["error"],
        )

    async def _update_export(self, query: str, params: tuple[Any, ...]) -> None:
        async with get_connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(query, params)
                if cur.rowcount == 0:
                    raise DocumentNotFoundError(f"Export {params[-1]} not found")
            await conn.commit()

    async def mark_export_ready(self, export_id: UUID, storage_key: str) -> None:
        await self._update_export(
            """
            UPDATE document_exports
            SET status = 'ready', storage_key = %s, error = NULL, updated_at = NOW()
            WHERE id = %s
            """,
            (storage_key, export_id),
        )

    async def mark_export_failed(self, export_id: UUID, error: str) -> None:
        await self._update_export(
            """
            UPDATE document_exports
            SET status = 'failed', error = %s, updated_at = NOW()
            WHERE id = %s
            """,
            (truncate_error(error), export_id),
        )
