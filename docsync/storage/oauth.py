from uuid import UUID

from docsync.database.models import ConnectionRecord, StorageProvider
from docsync.database.repositories.base import BaseConnectionRepository
from docsync.logging.logger import Log
from docsync.security.state_signer import StateSigner
from docsync.security.token_cipher import TokenCipher
from docsync.storage.factory import ProviderRegistry


class OAuthService:
    """Authorization-code flow that creates or replaces a client's connection."""

    def __init__(
        self,
        registry: ProviderRegistry,
        signer: StateSigner,
        connection_repo: BaseConnectionRepository,
        cipher: TokenCipher,
    ) -> None:
        self._registry = registry
        self._signer = signer
        self._connection_repo = connection_repo
        self._cipher = cipher

    def authorization_url(self, client_id: UUID, provider: StorageProvider) -> str:
        driver = self._registry.get(provider)
        state = self._signer.issue(client_id, provider)
        return driver.authorization_url(state)

    async def complete(
        self, provider: StorageProvider, code: str, state: str
    ) -> ConnectionRecord:
        """Verify the callback state, exchange the code and store the connection.

        Nothing is exchanged or stored unless the state verifies for this
        provider.
        """
        verified = self._signer.verify(state, provider)
        driver = self._registry.get(provider)

        grant = await driver.exchange_code(code)

        account_id: str | None = None
        try:
            account_id = await driver.fetch_account_id(grant.access_token)
        except Exception as exc:
            Log.warning(
                f"Failed to fetch {driver.display_name} account id",
                client_id=verified.client_id,
                error=exc,
            )

        connection = await self._connection_repo.upsert(
            verified.client_id,
            provider,
            access_token=self._cipher.encrypt(grant.access_token),
            refresh_token=(
                self._cipher.encrypt(grant.refresh_token) if grant.refresh_token else None
            ),
            expires_at=grant.expires_at,
            scope=grant.scope,
            provider_account_id=account_id,
        )
        Log.info(
            "External storage connected",
            client_id=verified.client_id,
            provider=provider,
            connection_id=connection.id,
        )
        return connection
