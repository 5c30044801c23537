import asyncio
import io
import zipfile

from docsync.database.models import JobKind, JobRecord
from docsync.database.repositories.base import BaseDocumentRepository
from docsync.documents.base import BaseDocumentStore, export_key
from docsync.exceptions import ValidationError
from docsync.logging.logger import Log
from docsync.processor.base import BaseJobProcessor
from docsync.processor.exceptions import DocumentStoreError, ExportError
from docsync.processor.models import ExportPayload, payload_for

ZIP_COMPRESSION_LEVEL = 6


def build_archive(files: list[tuple[str, bytes]]) -> bytes:
    """Zip ``(name, data)`` pairs, suffixing repeated names so none is shadowed."""
    buffer = io.BytesIO()
    seen: dict[str, int] = {}
    with zipfile.ZipFile(
        buffer,
        "w",
        compression=zipfile.ZIP_DEFLATED,
        compresslevel=ZIP_COMPRESSION_LEVEL,
    ) as archive:
        for name, data in files:
            count = seen.get(name, 0)
            seen[name] = count + 1
            if count:
                stem, dot, ext = name.rpartition(".")
                name = f"{stem} ({count}).{ext}" if dot and stem else f"{name} ({count})"
            archive.writestr(name, data)
    return buffer.getvalue()


class ExportProcessor(BaseJobProcessor):
    """Bundles the documents of an export request into one zip archive."""

    kind = JobKind.EXPORT

    def __init__(self, doc_repo: BaseDocumentRepository, store: BaseDocumentStore) -> None:
        self._doc_repo = doc_repo
        self._store = store

    async def process(self, job: JobRecord) -> None:
        payload = payload_for(job)
        if not isinstance(payload, ExportPayload):
            raise ValidationError(f"Export processor cannot run {job.kind} job {job.id}")

        export = await self._doc_repo.find_export(payload.export_id)
        documents = await self._doc_repo.find_many(export.client_id, export.document_ids)
        if not documents:
            raise ExportError("No valid documents found for export")
        if len(documents) != len(export.document_ids):
            Log.warning(
                "Some documents not found or deleted",
                export_id=export.id,
                requested=len(export.document_ids),
                found=len(documents),
            )

        files: list[tuple[str, bytes]] = []
        for document in documents:
            try:
                data = await self._store.download(document.storage_path)
            except DocumentStoreError as exc:
                Log.warning(
                    "Failed to download document, skipping",
                    export_id=export.id,
                    document_id=document.id,
                    error=exc,
                )
                continue
            files.append((document.name, data))

        if not files:
            raise ExportError("None of the export's documents could be downloaded")

        archive = await asyncio.to_thread(build_archive, files)
        key = export_key(export.client_id, export.id)
        await self._store.upload(key, archive, "application/zip")
        await self._doc_repo.mark_export_ready(export.id, key)
        Log.info(
            "Export ready",
            job_id=job.id,
            export_id=export.id,
            files=len(files),
            size=len(archive),
        )

    async def on_failure(self, job: JobRecord, error: Exception, will_retry: bool) -> None:
        if not will_retry:
            await self._doc_repo.mark_export_failed(job.subject_id, str(error))
