from collections.abc import Iterable

import httpx

from docsync.config.settings import Settings
from docsync.database.models import StorageProvider
from docsync.exceptions import UnregisteredProviderError
from docsync.logging.logger import Log
from docsync.storage.base import BaseStorageProvider
from docsync.storage.google_drive import GoogleDriveProvider
from docsync.storage.microsoft_graph import MicrosoftGraphProvider


class ProviderRegistry:
    """Maps each provider to its driver instance. Built once at startup."""

    def __init__(self, drivers: Iterable[BaseStorageProvider]) -> None:
        self._drivers = {driver.provider: driver for driver in drivers}

    def get(self, provider: StorageProvider) -> BaseStorageProvider:
        driver = self._drivers.get(provider)
        if driver is None:
            raise UnregisteredProviderError(
                f"No storage driver registered for provider '{provider}'"
            )
        return driver

    def providers(self) -> list[StorageProvider]:
        return list(self._drivers)


class StorageProviderFactory:
    """Creates the provider registry from settings."""

    @classmethod
    def create_registry(cls, settings: Settings, http: httpx.AsyncClient) -> ProviderRegistry:
        candidates: list[BaseStorageProvider] = [
            GoogleDriveProvider(
                client_id=settings.google_drive_client_id,
                client_secret=settings.google_drive_client_secret,
                redirect_uri=settings.google_drive_redirect_uri,
                http=http,
                chunk_retries=settings.upload_chunk_retries,
            ),
            MicrosoftGraphProvider(
                client_id=settings.microsoft_client_id,
                client_secret=settings.microsoft_client_secret,
                redirect_uri=settings.microsoft_redirect_uri,
                http=http,
                chunk_retries=settings.upload_chunk_retries,
            ),
        ]
        drivers = []
        for driver in candidates:
            if driver.is_configured():
                drivers.append(driver)
                Log.info(f"Storage provider registered: {driver.display_name}")
            else:
                Log.warning(
                    f"Storage provider {driver.provider} skipped, "
                    "missing client id/secret/redirect uri"
                )
        return ProviderRegistry(drivers)
