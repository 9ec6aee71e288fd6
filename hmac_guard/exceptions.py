"""
HMAC Guard Exceptions
=====================
Exception classes for configuration and infrastructure faults.

Expected authentication outcomes are never raised; they are returned as
VerificationResult values.
"""

from typing import Optional


class HmacAuthError(Exception):
    """Base class for all hmac_guard errors."""
    pass


class ConfigurationError(HmacAuthError, ValueError):
    """Raised when HmacConfig receives an invalid value."""
    pass


class CacheUnavailableError(HmacAuthError):
    """Raised when the shared cache cannot be reached."""

    def __init__(self, message: str, context: Optional[str] = None):
        super().__init__(message)
        self.context = context


class NonceStoreUnavailable(CacheUnavailableError):
    """Raised when nonce freshness cannot be verified (fail-closed)."""
    pass


class ProductionGuardError(HmacAuthError, RuntimeError):
    """Raised when a test-only operation is called in production."""
    pass


class TenancyDisabledError(HmacAuthError, RuntimeError):
    """Raised when a tenant-scoped query is used while tenancy is off."""

    def __init__(self, message: str = "Tenancy is not enabled. Set HMAC_TENANCY_ENABLED to use this method."):
        super().__init__(message)


class SecretDecryptionError(HmacAuthError):
    """Raised by a secret cipher when ciphertext cannot be decrypted."""
    pass


class CredentialNotFoundError(HmacAuthError, LookupError):
    """Raised by administrative operations on an unknown client ID."""

    def __init__(self, client_id: str):
        super().__init__(f"No credential found for client ID '{client_id}'")
        self.client_id = client_id
