from urllib.parse import quote

import httpx

from docsync.documents.base import BaseDocumentStore
from docsync.logging.logger import Log
from docsync.processor.exceptions import DocumentStoreError


class SupabaseDocumentStore(BaseDocumentStore):
    """Supabase Storage REST client authenticated with the service role key."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        url: str,
        service_role_key: str,
        bucket: str,
    ) -> None:
        self._http = http
        self._base_url = url.rstrip("/")
        self._service_role_key = service_role_key
        self._bucket = bucket

    def _object_url(self, path: str) -> str:
        return (
            f"{self._base_url}/storage/v1/object/{self._bucket}/"
            f"{quote(path.lstrip('/'))}"
        )

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._service_role_key}",
            "apikey": self._service_role_key,
        }

    async def download(self, path: str) -> bytes:
        try:
            response = await self._http.get(self._object_url(path), headers=self._headers())
        except httpx.TransportError as exc:
            raise DocumentStoreError(f"Failed to download {path}: {exc}") from exc
        if response.status_code != 200:
            raise DocumentStoreError(
                f"Failed to download {path}: HTTP {response.status_code}"
            )
        return response.content

    async def upload(self, path: str, data: bytes, content_type: str) -> None:
        headers = {
            **self._headers(),
            "Content-Type": content_type,
            "x-upsert": "true",
        }
        try:
            response = await self._http.post(
                self._object_url(path), content=data, headers=headers
            )
        except httpx.TransportError as exc:
            raise DocumentStoreError(f"Failed to upload {path}: {exc}") from exc
        if not response.is_success:
            Log.error(
                "Storage upload rejected",
                path=path,
                status=response.status_code,
                body=response.text[:200],
            )
            raise DocumentStoreError(f"Failed to upload {path}: HTTP {response.status_code}")
