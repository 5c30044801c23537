from pathlib import Path

import httpx

from docsync.config.settings import Settings
from docsync.documents.base import BaseDocumentStore
from docsync.documents.local_store import LocalDocumentStore
from docsync.documents.supabase_store import SupabaseDocumentStore
from docsync.exceptions import ConfigurationError


class DocumentStoreFactory:
    """Creates the document store named by ``settings.document_store``."""

    @staticmethod
    def create(settings: Settings, http: httpx.AsyncClient) -> BaseDocumentStore:
        store = settings.document_store.lower()
        if store == "local":
            return LocalDocumentStore(files_root=Path(settings.files_root))
        if store == "supabase":
            if not settings.supabase_url or not settings.supabase_service_role_key:
                raise ConfigurationError(
                    "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are required "
                    "when DOCUMENT_STORE=supabase"
                )
            return SupabaseDocumentStore(
                http,
                url=settings.supabase_url,
                service_role_key=settings.supabase_service_role_key,
                bucket=settings.supabase_bucket,
            )
        raise ConfigurationError(
            f"Unknown document store '{store}'. Choose from: ['local', 'supabase']"
        )
