import io
import uuid
import zipfile
from unittest.mock import AsyncMock, MagicMock

import pytest
from PIL import Image

from docsync.database.models import (
    DocumentRecord,
    ExportRecord,
    JobKind,
    JobRecord,
    JobStatus,
    StorageProvider,
)
from docsync.documents.base import export_key, preview_key
from docsync.exceptions import ConnectionUnavailableError, ValidationError
from docsync.preview.exceptions import UnsupportedPreviewTypeError
from docsync.preview.renderer import PreviewRenderer
from docsync.processor.exceptions import DocumentNotFoundError, ExportError
from docsync.processor.export_processor import ExportProcessor, build_archive
from docsync.processor.factory import build_processors
from docsync.processor.preview_processor import PreviewProcessor
from docsync.processor.upload_processor import UploadProcessor
from docsync.storage.base import UploadResult
from tests.fakes import InMemoryDocumentRepository, InMemoryDocumentStore, make_png


def _job(
    kind: JobKind,
    client_id: uuid.UUID,
    subject_id: uuid.UUID,
    provider: StorageProvider | None = None,
) -> JobRecord:
    return JobRecord(
        id=uuid.uuid4(),
        client_id=client_id,
        subject_id=subject_id,
        kind=kind,
        status=JobStatus.PROCESSING,
        attempts=0,
        provider=provider,
    )


def _document(
    client_id: uuid.UUID,
    name: str = "scan.png",
    mime_type: str | None = "image/png",
) -> DocumentRecord:
    document_id = uuid.uuid4()
    return DocumentRecord(
        id=document_id,
        client_id=client_id,
        name=name,
        mime_type=mime_type,
        storage_path=f"clients/{client_id}/documents/{document_id}/{name}",
    )


class TestPreviewProcessor:
    async def test_stores_preview_and_marks_ready(
        self,
        doc_repo: InMemoryDocumentRepository,
        store: InMemoryDocumentStore,
        client_id: uuid.UUID,
    ) -> None:
        document = doc_repo.add(_document(client_id))
        store.objects[document.storage_path] = make_png(1024, 768)
        processor = PreviewProcessor(doc_repo, store, PreviewRenderer(MagicMock()))

        await processor.process(_job(JobKind.PREVIEW, client_id, document.id))

        key = preview_key(client_id, document.id)
        assert store.content_types[key] == "image/webp"
        with Image.open(io.BytesIO(store.objects[key])) as image:
            assert image.size == (512, 384)
        assert doc_repo.preview[document.id]["status"] == "ready"
        assert doc_repo.preview[document.id]["storage_key"] == key
        assert doc_repo.preview[document.id]["size"] == len(store.objects[key])

    async def test_unsupported_type_skips_download(
        self,
        doc_repo: InMemoryDocumentRepository,
        store: InMemoryDocumentStore,
        client_id: uuid.UUID,
    ) -> None:
        document = doc_repo.add(_document(client_id, "table.csv", "text/csv"))
        processor = PreviewProcessor(doc_repo, store, PreviewRenderer(MagicMock()))

        with pytest.raises(UnsupportedPreviewTypeError):
            await processor.process(_job(JobKind.PREVIEW, client_id, document.id))

        assert store.downloads == []

    async def test_missing_document_raises(
        self,
        doc_repo: InMemoryDocumentRepository,
        store: InMemoryDocumentStore,
        client_id: uuid.UUID,
    ) -> None:
        processor = PreviewProcessor(doc_repo, store, PreviewRenderer(MagicMock()))

        with pytest.raises(DocumentNotFoundError):
            await processor.process(_job(JobKind.PREVIEW, client_id, uuid.uuid4()))

    async def test_failure_marks_preview_failed_on_every_attempt(
        self,
        doc_repo: InMemoryDocumentRepository,
        store: InMemoryDocumentStore,
        client_id: uuid.UUID,
    ) -> None:
        document_id = uuid.uuid4()
        processor = PreviewProcessor(doc_repo, store, PreviewRenderer(MagicMock()))

        await processor.on_failure(
            _job(JobKind.PREVIEW, client_id, document_id), RuntimeError("decode"), True
        )

        assert doc_repo.preview[document_id] == {"status": "failed", "error": "decode"}


class TestBuildArchive:
    def test_repeated_names_are_suffixed(self) -> None:
        archive = build_archive(
            [("report.pdf", b"a"), ("report.pdf", b"b"), ("notes", b"c"), ("notes", b"d")]
        )

        with zipfile.ZipFile(io.BytesIO(archive)) as zf:
            assert zf.namelist() == ["report.pdf", "report (1).pdf", "notes", "notes (1)"]
            assert zf.read("report (1).pdf") == b"b"
            assert all(info.compress_type == zipfile.ZIP_DEFLATED for info in zf.infolist())


class TestExportProcessor:
    def _setup(
        self,
        doc_repo: InMemoryDocumentRepository,
        store: InMemoryDocumentStore,
        client_id: uuid.UUID,
        documents: list[DocumentRecord],
        extra_ids: list[uuid.UUID] | None = None,
    ) -> ExportRecord:
        for document in documents:
            doc_repo.add(document)
        return doc_repo.add_export(
            ExportRecord(
                id=uuid.uuid4(),
                client_id=client_id,
                status="pending",
                document_ids=[d.id for d in documents] + (extra_ids or []),
            )
        )

    async def test_zips_documents_and_marks_ready(
        self,
        doc_repo: InMemoryDocumentRepository,
        store: InMemoryDocumentStore,
        client_id: uuid.UUID,
    ) -> None:
        first = _document(client_id, "a.pdf", "application/pdf")
        second = _document(client_id, "b.txt", "text/plain")
        store.objects[first.storage_path] = b"%PDF-a"
        store.objects[second.storage_path] = b"hello"
        export = self._setup(doc_repo, store, client_id, [first, second], [uuid.uuid4()])

        await ExportProcessor(doc_repo, store).process(_job(JobKind.EXPORT, client_id, export.id))

        key = export_key(client_id, export.id)
        assert store.content_types[key] == "application/zip"
        with zipfile.ZipFile(io.BytesIO(store.objects[key])) as zf:
            assert sorted(zf.namelist()) == ["a.pdf", "b.txt"]
            assert zf.read("b.txt") == b"hello"
        assert doc_repo.export_status[export.id] == {"status": "ready", "storage_key": key}

    async def test_skips_documents_that_fail_to_download(
        self,
        doc_repo: InMemoryDocumentRepository,
        store: InMemoryDocumentStore,
        client_id: uuid.UUID,
    ) -> None:
        present = _document(client_id, "present.pdf")
        absent = _document(client_id, "absent.pdf")
        store.objects[present.storage_path] = b"data"
        export = self._setup(doc_repo, store, client_id, [present, absent])

        await ExportProcessor(doc_repo, store).process(_job(JobKind.EXPORT, client_id, export.id))

        with zipfile.ZipFile(io.BytesIO(store.objects[export_key(client_id, export.id)])) as zf:
            assert zf.namelist() == ["present.pdf"]

    async def test_other_clients_documents_are_excluded(
        self,
        doc_repo: InMemoryDocumentRepository,
        store: InMemoryDocumentStore,
        client_id: uuid.UUID,
    ) -> None:
        foreign = _document(uuid.uuid4(), "foreign.pdf")
        store.objects[foreign.storage_path] = b"data"
        export = self._setup(doc_repo, store, client_id, [foreign])

        with pytest.raises(ExportError, match="No valid documents"):
            await ExportProcessor(doc_repo, store).process(
                _job(JobKind.EXPORT, client_id, export.id)
            )

    async def test_nothing_downloaded_raises(
        self,
        doc_repo: InMemoryDocumentRepository,
        store: InMemoryDocumentStore,
        client_id: uuid.UUID,
    ) -> None:
        export = self._setup(doc_repo, store, client_id, [_document(client_id)])

        with pytest.raises(ExportError):
            await ExportProcessor(doc_repo, store).process(
                _job(JobKind.EXPORT, client_id, export.id)
            )

        assert export_key(client_id, export.id) not in store.objects

    async def test_failure_marks_export_failed_only_when_final(
        self,
        doc_repo: InMemoryDocumentRepository,
        store: InMemoryDocumentStore,
        client_id: uuid.UUID,
    ) -> None:
        export_id = uuid.uuid4()
        processor = ExportProcessor(doc_repo, store)
        job = _job(JobKind.EXPORT, client_id, export_id)

        await processor.on_failure(job, ExportError("boom"), will_retry=True)
        assert export_id not in doc_repo.export_status

        await processor.on_failure(job, ExportError("boom"), will_retry=False)
        assert doc_repo.export_status[export_id] == {"status": "failed", "error": "boom"}


class TestUploadProcessor:
    def _token_manager(self) -> MagicMock:
        manager = MagicMock()
        manager.load = AsyncMock(return_value=MagicMock(name="active-connection"))
        manager.upload_file = AsyncMock(
            return_value=UploadResult(file_id="f-1", web_url="https://drive/f-1", drive_id=None)
        )
        return manager

    async def test_mirrors_document_and_marks_synced(
        self,
        doc_repo: InMemoryDocumentRepository,
        store: InMemoryDocumentStore,
        client_id: uuid.UUID,
    ) -> None:
        document = doc_repo.add(_document(client_id, "invoice.pdf", "application/pdf"))
        store.objects[document.storage_path] = b"%PDF"
        manager = self._token_manager()
        processor = UploadProcessor(doc_repo, store, manager)

        await processor.process(
            _job(JobKind.UPLOAD, client_id, document.id, StorageProvider.GOOGLE_DRIVE)
        )

        manager.load.assert_awaited_once_with(client_id, StorageProvider.GOOGLE_DRIVE)
        manager.upload_file.assert_awaited_once_with(
            manager.load.return_value, b"%PDF", "invoice.pdf", "application/pdf"
        )
        assert doc_repo.external[document.id] == {
            "status": "synced",
            "provider": StorageProvider.GOOGLE_DRIVE,
            "file_id": "f-1",
            "web_url": "https://drive/f-1",
            "drive_id": None,
        }

    async def test_unknown_mime_type_falls_back_to_octet_stream(
        self,
        doc_repo: InMemoryDocumentRepository,
        store: InMemoryDocumentStore,
        client_id: uuid.UUID,
    ) -> None:
        document = doc_repo.add(_document(client_id, "blob", None))
        store.objects[document.storage_path] = b"\x00"
        manager = self._token_manager()

        await UploadProcessor(doc_repo, store, manager).process(
            _job(JobKind.UPLOAD, client_id, document.id, StorageProvider.MICROSOFT_GRAPH)
        )

        assert manager.upload_file.await_args.args[3] == "application/octet-stream"

    async def test_missing_connection_does_not_download(
        self,
        doc_repo: InMemoryDocumentRepository,
        store: InMemoryDocumentStore,
        client_id: uuid.UUID,
    ) -> None:
        document = doc_repo.add(_document(client_id))
        manager = self._token_manager()
        manager.load.side_effect = ConnectionUnavailableError("No connected google_drive")

        with pytest.raises(ConnectionUnavailableError):
            await UploadProcessor(doc_repo, store, manager).process(
                _job(JobKind.UPLOAD, client_id, document.id, StorageProvider.GOOGLE_DRIVE)
            )

        assert store.downloads == []

    async def test_failure_marks_external_failed(
        self,
        doc_repo: InMemoryDocumentRepository,
        store: InMemoryDocumentStore,
        client_id: uuid.UUID,
    ) -> None:
        document_id = uuid.uuid4()
        processor = UploadProcessor(doc_repo, store, self._token_manager())

        await processor.on_failure(
            _job(JobKind.UPLOAD, client_id, document_id, StorageProvider.GOOGLE_DRIVE),
            RuntimeError("quota exceeded"),
            will_retry=True,
        )

        assert doc_repo.external[document_id] == {"status": "failed", "error": "quota exceeded"}


class TestWrongJobKind:
    async def test_preview_processor_rejects_export_job(
        self,
        doc_repo: InMemoryDocumentRepository,
        store: InMemoryDocumentStore,
        client_id: uuid.UUID,
    ) -> None:
        processor = PreviewProcessor(doc_repo, store, PreviewRenderer(MagicMock()))

        with pytest.raises(ValidationError, match="Preview processor cannot run export"):
            await processor.process(_job(JobKind.EXPORT, client_id, uuid.uuid4()))

        assert store.downloads == []

    async def test_export_processor_rejects_preview_job(
        self,
        doc_repo: InMemoryDocumentRepository,
        store: InMemoryDocumentStore,
        client_id: uuid.UUID,
    ) -> None:
        with pytest.raises(ValidationError, match="Export processor cannot run preview"):
            await ExportProcessor(doc_repo, store).process(
                _job(JobKind.PREVIEW, client_id, uuid.uuid4())
            )

    async def test_upload_processor_rejects_preview_job(
        self,
        doc_repo: InMemoryDocumentRepository,
        store: InMemoryDocumentStore,
        client_id: uuid.UUID,
    ) -> None:
        manager = MagicMock()
        manager.load = AsyncMock()

        with pytest.raises(ValidationError, match="Upload processor cannot run preview"):
            await UploadProcessor(doc_repo, store, manager).process(
                _job(JobKind.PREVIEW, client_id, uuid.uuid4())
            )

        manager.load.assert_not_awaited()


class TestBuildProcessors:
    def test_one_processor_per_kind(
        self, doc_repo: InMemoryDocumentRepository, store: InMemoryDocumentStore
    ) -> None:
        processors = build_processors(doc_repo, store, PreviewRenderer(MagicMock()), MagicMock())

        assert sorted(p.kind for p in processors) == sorted(JobKind)
