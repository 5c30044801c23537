import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass
from uuid import UUID

import jwt

from docsync.database.models import StorageProvider
from docsync.exceptions import (
    ConfigurationError,
    InvalidStateError,
    ProviderMismatchError,
)

STATE_TTL_SECONDS = 600
_ALGORITHM = "HS256"


@dataclass(frozen=True)
class VerifiedState:
    client_id: UUID
    provider: StorageProvider


class StateSigner:
    """Issues and verifies the signed OAuth ``state`` parameter.

    The state is an HS256 JWT carrying the client, the provider, a random
    nonce and a ten minute expiry. It is never stored server-side.
    """

    def __init__(
        self,
        secret: str,
        ttl_seconds: int = STATE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret:
            raise ConfigurationError("OAuth state secret is not configured")
        self._secret = secret
        self._ttl_seconds = ttl_seconds
        self._clock = clock

    def issue(self, client_id: UUID, provider: StorageProvider) -> str:
        now = int(self._clock())
        payload = {
            "clientId": str(client_id),
            "provider": provider.value,
            "nonce": secrets.token_hex(16),
            "iat": now,
            "exp": now + self._ttl_seconds,
        }
        return jwt.encode(payload, self._secret, algorithm=_ALGORITHM)

    def verify(self, state: str, expected_provider: StorageProvider) -> VerifiedState:
        """Check signature, expiry and provider binding of a callback state.

        Raises:
            InvalidStateError: bad signature, malformed payload or expired state.
            ProviderMismatchError: state was issued for another provider.
        """
        # Time claims are checked against the injected clock, not PyJWT's.
        try:
            payload = jwt.decode(
                state,
                self._secret,
                algorithms=[_ALGORITHM],
                options={
                    "require": ["exp", "iat"],
                    "verify_exp": False,
                    "verify_iat": False,
                    "verify_nbf": False,
                },
            )
        except jwt.InvalidTokenError as exc:
            raise InvalidStateError(f"Invalid OAuth state: {exc}") from exc

        try:
            client_id = UUID(payload["clientId"])
            provider = StorageProvider(payload["provider"])
            expires_at = int(payload["exp"])
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidStateError("OAuth state payload is malformed") from exc

        if expires_at <= self._clock():
            raise InvalidStateError("OAuth state expired")

        if provider != expected_provider:
            raise ProviderMismatchError("Provider mismatch")
        return VerifiedState(client_id=client_id, provider=provider)
