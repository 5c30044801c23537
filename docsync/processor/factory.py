from docsync.database.repositories.base import BaseDocumentRepository
from docsync.documents.base import BaseDocumentStore
from docsync.preview.renderer import PreviewRenderer
from docsync.processor.base import BaseJobProcessor
from docsync.processor.export_processor import ExportProcessor
from docsync.processor.preview_processor import PreviewProcessor
from docsync.processor.upload_processor import UploadProcessor
from docsync.storage.token_manager import TokenLifecycleManager


def build_processors(
    doc_repo: BaseDocumentRepository,
    store: BaseDocumentStore,
    renderer: PreviewRenderer,
    token_manager: TokenLifecycleManager,
) -> list[BaseJobProcessor]:
    """Build one processor per job kind."""
    return [
        PreviewProcessor(doc_repo, store, renderer),
        ExportProcessor(doc_repo, store),
        UploadProcessor(doc_repo, store, token_manager),
    ]
