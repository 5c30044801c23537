from docsync.database.models import JobKind, JobRecord
from docsync.database.repositories.base import BaseDocumentRepository
from docsync.documents.base import BaseDocumentStore
from docsync.exceptions import ValidationError
from docsync.logging.logger import Log
from docsync.processor.base import BaseJobProcessor
from docsync.processor.models import UploadPayload, payload_for
from docsync.storage.token_manager import TokenLifecycleManager


class UploadProcessor(BaseJobProcessor):
    """Mirrors a document into the client's connected external drive."""

    kind = JobKind.UPLOAD

    def __init__(
        self,
        doc_repo: BaseDocumentRepository,
        store: BaseDocumentStore,
        token_manager: TokenLifecycleManager,
    ) -> None:
        self._doc_repo = doc_repo
        self._store = store
        self._token_manager = token_manager

    async def process(self, job: JobRecord) -> None:
        payload = payload_for(job)
        if not isinstance(payload, UploadPayload):
            raise ValidationError(f"Upload processor cannot run {job.kind} job {job.id}")

        document = await self._doc_repo.find_by_id(payload.document_id)
        connection = await self._token_manager.load(job.client_id, payload.provider)

        raw_bytes = await self._store.download(document.storage_path)
        result = await self._token_manager.upload_file(
            connection,
            raw_bytes,
            document.name,
            document.mime_type or "application/octet-stream",
        )

        await self._doc_repo.mark_external_synced(
            document.id,
            payload.provider,
            result.file_id,
            result.web_url,
            result.drive_id,
        )
        Log.info(
            "Document mirrored to external storage",
            job_id=job.id,
            document_id=document.id,
            provider=payload.provider,
            file_id=result.file_id,
        )

    async def on_failure(self, job: JobRecord, error: Exception, will_retry: bool) -> None:
        await self._doc_repo.mark_external_failed(job.subject_id, str(error))
