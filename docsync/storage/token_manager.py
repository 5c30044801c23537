"""Expiry-aware token handling around storage driver calls.

Every driver call goes through :meth:`TokenLifecycleManager.call`: tokens
about to expire are refreshed before the call, and a 401 from the vendor
triggers exactly one refresh followed by exactly one retry.
"""

import asyncio
import weakref
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import TypeVar
from uuid import UUID

from docsync.database.models import ConnectionRecord, ConnectionStatus, StorageProvider
from docsync.database.repositories.base import BaseConnectionRepository
from docsync.exceptions import (
    ConnectionUnavailableError,
    DecryptionError,
    TokenRefreshError,
    UpstreamAuthError,
)
from docsync.logging.logger import Log
from docsync.security.token_cipher import TokenCipher
from docsync.storage.base import ActiveConnection, UploadResult
from docsync.storage.factory import ProviderRegistry

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(UTC)


class TokenLifecycleManager:
    def __init__(
        self,
        registry: ProviderRegistry,
        connection_repo: BaseConnectionRepository,
        cipher: TokenCipher,
        refresh_buffer: timedelta = timedelta(minutes=5),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._registry = registry
        self._connection_repo = connection_repo
        self._cipher = cipher
        self._refresh_buffer = refresh_buffer
        self._clock = clock
        # Entries disappear once no refresh holds or awaits the lock.
        self._refresh_locks: weakref.WeakValueDictionary[UUID, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    async def load(
        self, client_id: UUID, provider: StorageProvider
    ) -> ActiveConnection:
        """Load and decrypt the client's connection for ``provider``.

        Raises:
            ConnectionUnavailableError: no connection, or it is not connected.
            DecryptionError: stored tokens are corrupted; the connection is
                flipped to ``error`` first.
        """
        record = await self._connection_repo.find(client_id, provider)
        if record is None:
            raise ConnectionUnavailableError(f"No connection found for provider: {provider}")
        if record.status != ConnectionStatus.CONNECTED:
            raise ConnectionUnavailableError(f"Connection is not active: {record.status}")
        return await self._decrypt(record)

    async def _decrypt(self, record: ConnectionRecord) -> ActiveConnection:
        try:
            access_token = self._cipher.decrypt(record.access_token)
            refresh_token = (
                self._cipher.decrypt(record.refresh_token) if record.refresh_token else None
            )
        except DecryptionError:
            Log.error(
                "Failed to decrypt connection tokens",
                connection_id=record.id,
                client_id=record.client_id,
                provider=record.provider,
            )
            await self._connection_repo.set_status(record.id, ConnectionStatus.ERROR)
            raise
        return ActiveConnection.from_record(record, access_token, refresh_token)

    def is_expiring(self, connection: ActiveConnection) -> bool:
        if connection.expires_at is None:
            return False
        return connection.expires_at - self._clock() < self._refresh_buffer

    async def call(
        self,
        connection: ActiveConnection,
        operation: Callable[[ActiveConnection], Awaitable[T]],
    ) -> T:
        """Run a driver operation with proactive and reactive refresh."""
        if self.is_expiring(connection):
            Log.info("Access token expiring, refreshing before use", connection_id=connection.id)
            connection = await self.refresh(connection)

        try:
            return await operation(connection)
        except UpstreamAuthError:
            Log.warning("Vendor rejected access token, refreshing once", connection_id=connection.id)
            connection = await self.refresh(connection)
            return await operation(connection)

    async def upload_file(
        self,
        connection: ActiveConnection,
        data: bytes,
        filename: str,
        mime_type: str,
    ) -> UploadResult:
        driver = self._registry.get(connection.provider)
        return await self.call(
            connection,
            lambda active: driver.upload_file(active, data, filename, mime_type),
        )

    async def refresh(self, connection: ActiveConnection) -> ActiveConnection:
        """Refresh and persist the connection's tokens.

        Refreshes for the same connection are serialized; a caller that waited
        on another refresh reuses its result instead of refreshing again.

        Raises:
            ConnectionUnavailableError: the connection was revoked, deleted or
                flipped to ``error`` since it was loaded.
            TokenRefreshError: the vendor refused; the connection is flipped
                to ``error`` first.
        """
        lock = self._refresh_locks.get(connection.id)
        if lock is None:
            lock = asyncio.Lock()
            self._refresh_locks[connection.id] = lock
        async with lock:
            current = await self._connection_repo.find_by_id(connection.id)
            if current is None:
                raise ConnectionUnavailableError(f"Connection {connection.id} no longer exists")
            if current.status != ConnectionStatus.CONNECTED:
                raise ConnectionUnavailableError(f"Connection is not active: {current.status}")
            if current.access_token != connection.stored_access_token:
                reused = await self._decrypt(current)
                if not self.is_expiring(reused):
                    Log.debug("Reusing token refreshed concurrently", connection_id=connection.id)
                    return reused
            return await self._refresh_locked(connection)

    async def _refresh_locked(self, connection: ActiveConnection) -> ActiveConnection:
        driver = self._registry.get(connection.provider)
        try:
            result = await driver.refresh_token(connection)
        except Exception as exc:
            Log.error(
                "Token refresh failed",
                connection_id=connection.id,
                provider=connection.provider,
                error=exc,
            )
            await self._connection_repo.set_status(connection.id, ConnectionStatus.ERROR)
            raise TokenRefreshError(f"Token refresh failed: {exc}") from exc

        refresh_token = result.refresh_token or connection.refresh_token
        encrypted_access = self._cipher.encrypt(result.access_token)
        encrypted_refresh = self._cipher.encrypt(refresh_token) if refresh_token else None
        stored = await self._connection_repo.update_tokens(
            connection.id,
            access_token=encrypted_access,
            refresh_token=encrypted_refresh,
            expires_at=result.expires_at,
        )
        if not stored:
            Log.warning(
                "Connection left connected state during refresh, discarding tokens",
                connection_id=connection.id,
            )
            raise ConnectionUnavailableError(f"Connection {connection.id} is no longer active")
        Log.info(
            "Refreshed access token",
            connection_id=connection.id,
            provider=connection.provider,
            expires_at=result.expires_at.isoformat(),
        )
        return connection.with_tokens(
            access_token=result.access_token,
            refresh_token=refresh_token,
            expires_at=result.expires_at,
            stored_access_token=encrypted_access,
        )
