from datetime import UTC, datetime, timedelta
from typing import Any
from urllib.parse import quote, urlencode

import httpx

from docsync.database.models import StorageProvider
from docsync.exceptions import UpstreamError
from docsync.storage.base import (
    ActiveConnection,
    BaseStorageProvider,
    TokenGrant,
    TokenRefreshResult,
    UploadResult,
    raise_for_upstream,
)

_AUTH_URL = "https://login.microsoftonline.com/common/oauth2/v2.0/authorize"
_TOKEN_URL = "https://login.microsoftonline.com/common/oauth2/v2.0/token"
_GRAPH_API_BASE = "https://graph.microsoft.com/v1.0"
_SCOPE = "Files.ReadWrite.All offline_access"


class MicrosoftGraphProvider(BaseStorageProvider):
    """OneDrive / SharePoint driver on Microsoft Graph.

    Upload session chunks must be multiples of 320 KiB.
    """

    provider = StorageProvider.MICROSOFT_GRAPH
    display_name = "Microsoft Graph"
    chunk_size = 320 * 1024 * 10
    incomplete_statuses = frozenset({202})

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self._client_id,
            "redirect_uri": self._redirect_uri,
            "response_type": "code",
            "scope": _SCOPE,
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
            "Microsoft code exchange",
        )
        return TokenGrant(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            expires_at=datetime.now(UTC) + timedelta(seconds=payload.get("expires_in", 3600)),
            scope=payload.get("scope"),
        )

    async def fetch_account_id(self, access_token: str) -> str | None:
        response = await self._http.get(
            f"{_GRAPH_API_BASE}/me", headers={"Authorization": f"Bearer {access_token}"}
        )
        raise_for_upstream(response, "Microsoft user info")
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
            "Microsoft token refresh",
        )
        return TokenRefreshResult(
            access_token=payload["access_token"],
            expires_at=datetime.now(UTC) + timedelta(seconds=payload.get("expires_in", 3600)),
            refresh_token=payload.get("refresh_token") or connection.refresh_token,
        )

    def _item_path(self, connection: ActiveConnection, filename: str) -> str:
        root = (
            f"/me/drive/items/{connection.root_folder_id}"
            if connection.root_folder_id
            else "/me/drive/root"
        )
        return f"{_GRAPH_API_BASE}{root}:/{quote(filename)}:"

    async def _direct_upload(
        self, connection: ActiveConnection, data: bytes, filename: str, mime_type: str
    ) -> UploadResult:
        try:
            response = await self._http.put(
                f"{self._item_path(connection, filename)}/content",
                content=data,
                headers={
                    "Authorization": f"Bearer {connection.access_token}",
                    "Content-Type": mime_type,
                },
            )
        except httpx.TransportError as exc:
            raise UpstreamError(f"Microsoft Graph upload failed: {exc}") from exc
        raise_for_upstream(response, "Microsoft Graph upload")
        return self._to_upload_result(response.json())

    async def _session_upload(
        self, connection: ActiveConnection, data: bytes, filename: str, mime_type: str
    ) -> UploadResult:
        try:
            response = await self._http.post(
                f"{self._item_path(connection, filename)}/createUploadSession",
                json={"item": {"@microsoft.graph.conflictBehavior": "rename"}},
                headers={"Authorization": f"Bearer {connection.access_token}"},
            )
        except httpx.TransportError as exc:
            raise UpstreamError(f"Microsoft Graph upload session failed: {exc}") from exc
        raise_for_upstream(response, "Microsoft Graph upload session")

        upload_url = response.json().get("uploadUrl")
        if not upload_url:
            raise UpstreamError("Microsoft Graph upload session returned no uploadUrl")
        # The pre-authenticated uploadUrl rejects Authorization headers.
        return await self._send_chunks(upload_url, data)

    def _next_offset(self, response: httpx.Response, sent_through: int) -> int:
        if not response.content:
            return sent_through
        expected = response.json().get("nextExpectedRanges") or []
        if not expected:
            return sent_through
        start = str(expected[0]).partition("-")[0]
        if not start.isdigit():
            raise UpstreamError(f"Microsoft Graph returned an unreadable range: {expected[0]}")
        return int(start)

    def _to_upload_result(self, item: dict[str, Any]) -> UploadResult:
        parent = item.get("parentReference") or {}
        return UploadResult(
            file_id=item["id"],
            web_url=item.get("webUrl"),
            drive_id=parent.get("driveId"),
        )
