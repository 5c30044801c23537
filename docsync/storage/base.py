"""Driver contract shared by every external storage vendor.

Drivers receive an :class:`ActiveConnection` carrying *plaintext* tokens; the
token lifecycle manager is the only component that builds one.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, ClassVar
from uuid import UUID

import httpx

from docsync.database.models import ConnectionRecord, ConnectionStatus, StorageProvider
from docsync.exceptions import UpstreamAuthError, UpstreamError
from docsync.logging.logger import Log

DIRECT_UPLOAD_LIMIT = 4 * 1024 * 1024


@dataclass(frozen=True)
class ActiveConnection:
    """A connection with decrypted tokens, valid for the current operation only."""

    id: UUID
    client_id: UUID
    provider: StorageProvider
    status: ConnectionStatus
    access_token: str
    refresh_token: str | None
    expires_at: datetime | None
    root_folder_id: str | None
    stored_access_token: str

    @classmethod
    def from_record(
        cls, record: ConnectionRecord, access_token: str, refresh_token: str | None
    ) -> "ActiveConnection":
        return cls(
            id=record.id,
            client_id=record.client_id,
            provider=record.provider,
            status=record.status,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=record.expires_at,
            root_folder_id=record.root_folder_id,
            stored_access_token=record.access_token,
        )

    def with_tokens(
        self,
        access_token: str,
        refresh_token: str | None,
        expires_at: datetime | None,
        stored_access_token: str,
    ) -> "ActiveConnection":
        return replace(
            self,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
            stored_access_token=stored_access_token,
        )


@dataclass(frozen=True)
class UploadResult:
    file_id: str
    web_url: str | None = None
    drive_id: str | None = None


@dataclass(frozen=True)
class TokenRefreshResult:
    access_token: str
    expires_at: datetime
    refresh_token: str | None = None


@dataclass(frozen=True)
class TokenGrant:
    """Tokens returned by an authorization-code exchange."""

    access_token: str
    refresh_token: str | None
    expires_at: datetime
    scope: str | None


def raise_for_upstream(response: httpx.Response, action: str) -> None:
    """Translate a vendor HTTP failure into the upstream error taxonomy."""
    if response.is_success:
        return
    message = f"{action} failed with HTTP {response.status_code}: {response.text[:200]}"
    if response.status_code == 401:
        raise UpstreamAuthError(message, status_code=401)
    raise UpstreamError(message, status_code=response.status_code)


class BaseStorageProvider(ABC):
    """Contract for all external storage drivers.

    Files below ``DIRECT_UPLOAD_LIMIT`` go up in a single request; larger files
    use the vendor's resumable session, one ``chunk_size`` slice per request.
    """

    provider: ClassVar[StorageProvider]
    display_name: ClassVar[str]
    chunk_size: ClassVar[int]
    # Status codes a session returns while it still expects more bytes.
    incomplete_statuses: ClassVar[frozenset[int]]

    def __init__(
        self,
        *,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        http: httpx.AsyncClient,
        chunk_retries: int = 2,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._redirect_uri = redirect_uri
        self._http = http
        self._chunk_retries = chunk_retries

    def is_configured(self) -> bool:
        return bool(self._client_id and self._client_secret and self._redirect_uri)

    @abstractmethod
    def authorization_url(self, state: str) -> str:
        """Build the vendor consent URL carrying the signed ``state``."""

    @abstractmethod
    async def exchange_code(self, code: str) -> TokenGrant:
        """Exchange an authorization code for tokens."""

    @abstractmethod
    async def fetch_account_id(self, access_token: str) -> str | None:
        """Return the vendor's identifier for the authorized account."""

    @abstractmethod
    async def refresh_token(self, connection: ActiveConnection) -> TokenRefreshResult:
        """Obtain a fresh access token using the connection's refresh token."""

    async def upload_file(
        self,
        connection: ActiveConnection,
        data: bytes,
        filename: str,
        mime_type: str,
    ) -> UploadResult:
        if len(data) < DIRECT_UPLOAD_LIMIT:
            return await self._direct_upload(connection, data, filename, mime_type)
        Log.info(
            f"Using {self.display_name} upload session for {filename}",
            size=len(data),
            connection_id=connection.id,
        )
        return await self._session_upload(connection, data, filename, mime_type)

    @abstractmethod
    async def _direct_upload(
        self, connection: ActiveConnection, data: bytes, filename: str, mime_type: str
    ) -> UploadResult: ...

    @abstractmethod
    async def _session_upload(
        self, connection: ActiveConnection, data: bytes, filename: str, mime_type: str
    ) -> UploadResult: ...

    @abstractmethod
    def _to_upload_result(self, item: dict[str, Any]) -> UploadResult: ...

    async def _send_chunks(
        self,
        session_url: str,
        data: bytes,
        headers: dict[str, str] | None = None,
    ) -> UploadResult:
        """PUT ``data`` to an open upload session until the vendor reports completion."""
        total = len(data)
        offset = 0
        stalls = 0
        while offset < total:
            chunk = data[offset : offset + self.chunk_size]
            chunk_headers = {
                **(headers or {}),
                "Content-Length": str(len(chunk)),
                "Content-Range": f"bytes {offset}-{offset + len(chunk) - 1}/{total}",
            }
            response = await self._put_chunk(session_url, chunk, chunk_headers)
            if response.status_code in (200, 201):
                return self._to_upload_result(response.json())
            if response.status_code not in self.incomplete_statuses:
                raise_for_upstream(response, f"{self.display_name} chunk upload")
                raise UpstreamError(
                    f"{self.display_name} chunk upload returned unexpected HTTP "
                    f"{response.status_code}",
                    status_code=response.status_code,
                )
            next_offset = self._next_offset(response, offset + len(chunk))
            if not 0 <= next_offset <= total:
                raise UpstreamError(
                    f"{self.display_name} upload session reported offset {next_offset} "
                    f"outside 0-{total}"
                )
            if next_offset < offset + len(chunk):
                Log.warning(
                    f"{self.display_name} kept part of a chunk, resending from {next_offset}",
                    range=chunk_headers["Content-Range"],
                )
                if next_offset <= offset:
                    stalls += 1
                    if stalls > self._chunk_retries:
                        raise UpstreamError(
                            f"{self.display_name} upload session stopped accepting bytes "
                            f"at offset {offset}"
                        )
            offset = next_offset

        raise UpstreamError(
            f"{self.display_name} upload session consumed all bytes without completing"
        )

    def _next_offset(self, response: httpx.Response, sent_through: int) -> int:
        """Offset of the next byte the session expects after an incomplete chunk.

        ``sent_through`` is where the next chunk would start if the vendor
        kept every byte; drivers override this to honor what it reports.
        """
        return sent_through

    async def _put_chunk(
        self, url: str, chunk: bytes, headers: dict[str, str]
    ) -> httpx.Response:
        """PUT one chunk, retrying transport errors and 5xx a bounded number of times."""
        attempt = 0
        while True:
            try:
                response = await self._http.put(url, content=chunk, headers=headers)
            except httpx.TransportError as exc:
                if attempt >= self._chunk_retries:
                    raise UpstreamError(
                        f"{self.display_name} chunk upload failed: {exc}"
                    ) from exc
                Log.warning(
                    f"{self.display_name} chunk transport error, retrying",
                    range=headers["Content-Range"],
                    error=exc,
                )
            else:
                if response.status_code < 500 or attempt >= self._chunk_retries:
                    return response
                Log.warning(
                    f"{self.display_name} chunk rejected with HTTP {response.status_code}, retrying",
                    range=headers["Content-Range"],
                )
            attempt += 1
            await asyncio.sleep(0.5 * attempt)

    async def _post_token(self, url: str, form: dict[str, str], action: str) -> dict[str, Any]:
        try:
            response = await self._http.post(
                url,
                data=form,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.TransportError as exc:
            raise UpstreamError(f"{action} failed: {exc}") from exc
        raise_for_upstream(response, action)
        payload: dict[str, Any] = response.json()
        if "access_token" not in payload:
            raise UpstreamError(f"{action} returned no access_token")
        return payload
