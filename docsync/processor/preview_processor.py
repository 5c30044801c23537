from docsync.database.models import JobKind, JobRecord
from docsync.database.repositories.base import BaseDocumentRepository
from docsync.documents.base import BaseDocumentStore, preview_key
from docsync.exceptions import ValidationError
from docsync.logging.logger import Log
from docsync.preview.exceptions import UnsupportedPreviewTypeError
from docsync.preview.renderer import PreviewRenderer, is_supported_for_preview
from docsync.processor.base import BaseJobProcessor
from docsync.processor.models import PreviewPayload, payload_for


class PreviewProcessor(BaseJobProcessor):
    """Renders a document's first page or image into a stored WEBP preview.

    Pipeline: load document -> check type -> download -> render -> store -> mark ready.
    """

    kind = JobKind.PREVIEW

    def __init__(
        self,
        doc_repo: BaseDocumentRepository,
        store: BaseDocumentStore,
        renderer: PreviewRenderer,
    ) -> None:
        self._doc_repo = doc_repo
        self._store = store
        self._renderer = renderer

    async def process(self, job: JobRecord) -> None:
        payload = payload_for(job)
        if not isinstance(payload, PreviewPayload):
            raise ValidationError(f"Preview processor cannot run {job.kind} job {job.id}")

        document = await self._doc_repo.find_by_id(payload.document_id)
        if not is_supported_for_preview(document.mime_type):
            raise UnsupportedPreviewTypeError(f"Unsupported file type: {document.mime_type}")

        raw_bytes = await self._store.download(document.storage_path)
        Log.info(f"Loaded {len(raw_bytes)} bytes for document {document.id}", job_id=job.id)

        preview = await self._renderer.render_async(raw_bytes, document.mime_type)

        key = preview_key(document.client_id, document.id)
        await self._store.upload(key, preview.data, preview.mime_type)
        await self._doc_repo.mark_preview_ready(
            document.id, key, preview.mime_type, preview.size
        )
        Log.info(
            "Preview ready",
            job_id=job.id,
            document_id=document.id,
            preview_size=preview.size,
        )

    async def on_failure(self, job: JobRecord, error: Exception, will_retry: bool) -> None:
        await self._doc_repo.mark_preview_failed(job.subject_id, str(error))
