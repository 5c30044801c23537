from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta

import httpx

from docsync.config.settings import Settings
from docsync.database.connection import close_pool, init_pool
from docsync.database.models import JobKind
from docsync.database.repositories.base import BaseConnectionRepository, BaseJobRepository
from docsync.database.repositories.connection_repository import ConnectionRepository
from docsync.database.repositories.document_repository import DocumentRepository
from docsync.database.repositories.job_repository import JobRepository
from docsync.documents.factory import DocumentStoreFactory
from docsync.pdf.factory import PdfRasterizerFactory
from docsync.preview.renderer import PreviewRenderer
from docsync.processor.base import BaseJobProcessor
from docsync.processor.factory import build_processors
from docsync.security.state_signer import StateSigner
from docsync.security.token_cipher import TokenCipher
from docsync.storage.factory import ProviderRegistry, StorageProviderFactory
from docsync.storage.oauth import OAuthService
from docsync.storage.token_manager import TokenLifecycleManager
from docsync.worker.job_runner import JobRunner
from docsync.worker.worker import QueueConfig, Worker


@dataclass
class Services:
    """Process-wide dependencies shared by the HTTP surface and the worker."""

    settings: Settings
    registry: ProviderRegistry
    connection_repo: BaseConnectionRepository
    job_repo: BaseJobRepository
    oauth: OAuthService
    token_manager: TokenLifecycleManager
    worker: Worker


def build_queues(settings: Settings) -> list[QueueConfig]:
    return [
        QueueConfig(
            kind=JobKind.PREVIEW,
            interval_seconds=settings.preview_poll_interval_seconds,
            timeout_seconds=settings.preview_timeout_seconds,
        ),
        QueueConfig(
            kind=JobKind.EXPORT,
            interval_seconds=settings.export_poll_interval_seconds,
            timeout_seconds=settings.export_timeout_seconds,
        ),
        QueueConfig(
            kind=JobKind.UPLOAD,
            interval_seconds=settings.upload_poll_interval_seconds,
            batch_size=settings.upload_batch_size,
        ),
    ]


def build_worker(
    settings: Settings,
    job_repo: BaseJobRepository,
    processors: list[BaseJobProcessor],
) -> Worker:
    queues = build_queues(settings)
    timeouts = {queue.kind: queue.timeout_seconds for queue in queues}
    runners = {
        processor.kind: JobRunner(processor, job_repo, timeouts.get(processor.kind))
        for processor in processors
    }
    return Worker(job_repo, runners, queues, settings.stale_job_lease_seconds)


@asynccontextmanager
async def build_services(settings: Settings) -> AsyncGenerator[Services, None]:
    """Initialize pool and HTTP client -> build dependencies -> close on exit."""
    cipher = TokenCipher(settings.token_encryption_key)
    signer = StateSigner(settings.oauth_state_secret)
    renderer = PreviewRenderer(PdfRasterizerFactory.create(settings))

    async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as http:
        store = DocumentStoreFactory.create(settings, http)
        registry = StorageProviderFactory.create_registry(settings, http)

        await init_pool(settings)
        try:
            job_repo = JobRepository(settings.max_job_attempts)
            connection_repo = ConnectionRepository()
            doc_repo = DocumentRepository()
            token_manager = TokenLifecycleManager(
                registry,
                connection_repo,
                cipher,
                refresh_buffer=timedelta(minutes=settings.token_refresh_buffer_minutes),
            )
            processors = build_processors(doc_repo, store, renderer, token_manager)
            yield Services(
                settings=settings,
                registry=registry,
                connection_repo=connection_repo,
                job_repo=job_repo,
                oauth=OAuthService(registry, signer, connection_repo, cipher),
                token_manager=token_manager,
                worker=build_worker(settings, job_repo, processors),
            )
        finally:
            await close_pool()
