import json
import re
from datetime import UTC, datetime, timedelta
from typing import Any
from urllib.parse import urlencode

import httpx

from docsync.database.models import StorageProvider
from docsync.exceptions import UpstreamError
from docsync.logging.logger import Log
from docsync.storage.base import (
    ActiveConnection,
    BaseStorageProvider,
    TokenGrant,
    TokenRefreshResult,
    UploadResult,
    raise_for_upstream,
)

_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
_TOKEN_URL = "https://oauth2.googleapis.com/token"
_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files"
_SCOPE = "https://www.googleapis.com/auth/drive.file"
_MULTIPART_BOUNDARY = "-------314159265358979323846"
_RECEIVED_RANGE = re.compile(r"bytes=0-(\d+)")


class GoogleDriveProvider(BaseStorageProvider):
    """Google Drive v3 driver.

    Small files use ``uploadType=multipart``; large files use a resumable
    session whose chunks must be multiples of 256 KiB.
    """

    provider = StorageProvider.GOOGLE_DRIVE
    display_name = "Google Drive"
    chunk_size = 256 * 1024 * 12
    incomplete_statuses = frozenset({308})

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self._client_id,
            "redirect_uri": self._redirect_uri,
            "response_type": "code",
            "scope": _SCOPE,
            "access_type": "offline",
            "prompt": "consent",
            "state": state,
        }
        return f"{_AUTH_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> TokenGrant:
        payload = await self._post_token(
            _TOKEN_URL,
            {
                "code": code,
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "redirect_uri": self._redirect_uri,
                "grant_type": "authorization_code",
            },
            "Google Drive code exchange",
        )
        return TokenGrant(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            expires_at=datetime.now(UTC) + timedelta(seconds=payload.get("expires_in", 3600)),
            scope=payload.get("scope"),
        )

    async def fetch_account_id(self, access_token: str) -> str | None:
        response = await self._http.get(
            _USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"}
        )
        raise_for_upstream(response, "Google user info")
        return response.json().get("id")

    async def refresh_token(self, connection: ActiveConnection) -> TokenRefreshResult:
        if not connection.refresh_token:
            raise UpstreamError("No refresh token available")
        payload = await self._post_token(
            _TOKEN_URL,
            {
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "refresh_token": connection.refresh_token,
                "grant_type": "refresh_token",
            },
            "Google Drive token refresh",
        )
        return TokenRefreshResult(
            access_token=payload["access_token"],
            expires_at=datetime.now(UTC) + timedelta(seconds=payload.get("expires_in", 3600)),
            refresh_token=payload.get("refresh_token") or connection.refresh_token,
        )

    def _metadata(self, connection: ActiveConnection, filename: str) -> dict[str, Any]:
        metadata: dict[str, Any] = {"name": filename}
        if connection.root_folder_id:
            metadata["parents"] = [connection.root_folder_id]
        return metadata

    async def _direct_upload(
        self, connection: ActiveConnection, data: bytes, filename: str, mime_type: str
    ) -> UploadResult:
        delimiter = f"\r\n--{_MULTIPART_BOUNDARY}\r\n".encode()
        close_delimiter = f"\r\n--{_MULTIPART_BOUNDARY}--".encode()
        body = b"".join(
            [
                delimiter,
                b"Content-Type: application/json; charset=UTF-8\r\n\r\n",
                json.dumps(self._metadata(connection, filename)).encode(),
                delimiter,
                f"Content-Type: {mime_type}\r\n\r\n".encode(),
                data,
                close_delimiter,
            ]
        )
        try:
            response = await self._http.post(
                _UPLOAD_URL,
                params={"uploadType": "multipart", "fields": "id,webViewLink"},
                content=body,
                headers={
                    "Authorization": f"Bearer {connection.access_token}",
                    "Content-Type": f"multipart/related; boundary={_MULTIPART_BOUNDARY}",
                },
            )
        except httpx.TransportError as exc:
            raise UpstreamError(f"Google Drive upload failed: {exc}") from exc
        raise_for_upstream(response, "Google Drive upload")
        return self._to_upload_result(response.json())

    async def _session_upload(
        self, connection: ActiveConnection, data: bytes, filename: str, mime_type: str
    ) -> UploadResult:
        try:
            response = await self._http.post(
                _UPLOAD_URL,
                params={"uploadType": "resumable", "fields": "id,webViewLink"},
                json=self._metadata(connection, filename),
                headers={
                    "Authorization": f"Bearer {connection.access_token}",
                    "X-Upload-Content-Type": mime_type,
                    "X-Upload-Content-Length": str(len(data)),
                },
            )
        except httpx.TransportError as exc:
            raise UpstreamError(f"Google Drive upload session failed: {exc}") from exc
        raise_for_upstream(response, "Google Drive upload session")

        session_url = response.headers.get("Location")
        if not session_url:
            raise UpstreamError("Google Drive upload session returned no Location header")
        Log.debug("Google Drive resumable session opened", connection_id=connection.id)
        return await self._send_chunks(
            session_url,
            data,
            headers={"Authorization": f"Bearer {connection.access_token}"},
        )

    def _next_offset(self, response: httpx.Response, sent_through: int) -> int:
        received = response.headers.get("Range")
        if not received:
            return sent_through
        match = _RECEIVED_RANGE.fullmatch(received.strip())
        if match is None:
            raise UpstreamError(f"Google Drive returned an unreadable Range header: {received}")
        return int(match.group(1)) + 1

    def _to_upload_result(self, item: dict[str, Any]) -> UploadResult:
        return UploadResult(file_id=item["id"], web_url=item.get("webViewLink"))
