class DocSyncError(Exception):
    """Base exception for the job engine and storage integration."""


class ValidationError(DocSyncError):
    """Raised when caller-supplied input is malformed or not allowed."""


class InvalidStateError(ValidationError):
    """Raised when an OAuth state is malformed, tampered with or expired."""


class ProviderMismatchError(ValidationError):
    """Raised when an OAuth state is replayed against another provider's callback."""


class ConfigurationError(DocSyncError):
    """Raised for deployment mistakes. Jobs failing with it are not retried."""


class UnregisteredProviderError(ConfigurationError):
    """Raised when no storage driver is registered for a provider."""


class UpstreamError(DocSyncError):
    """Raised when a storage vendor call fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class UpstreamAuthError(UpstreamError):
    """Raised when a storage vendor rejects the access token (HTTP 401)."""


class TokenRefreshError(UpstreamError):
    """Raised when a connection's access token could not be refreshed."""


class DecryptionError(DocSyncError):
    """Raised when a stored token is malformed or fails authentication."""


class ConnectionUnavailableError(DocSyncError):
    """Raised when a client has no usable connection for a provider."""


class JobTimeoutError(DocSyncError):
    """Raised when a job exceeds its wall-clock processing budget."""
