"""
HMAC Guard
==========
HMAC request authentication for Starlette and FastAPI services.
"""

__version__ = "1.0.0"

# Config
from hmac_guard.config import (
    HmacConfig,
    HeaderNames,
    RateLimitSettings,
    IpBlockingSettings,
    TenancySettings,
)

# Exceptions
from hmac_guard.exceptions import (
    HmacAuthError,
    ConfigurationError,
    CacheUnavailableError,
    NonceStoreUnavailable,
    ProductionGuardError,
    TenancyDisabledError,
    SecretDecryptionError,
    CredentialNotFoundError,
)

# Models
from hmac_guard.models import (
    Credential,
    Environment,
    GeneratedCredential,
    RotatedSecret,
    RequestContext,
    RequestLogEntry,
)

# Secrets
from hmac_guard.crypto import FernetSecretCipher, SealedSecret, SecretCipher

# Signatures
from hmac_guard.signature import (
    HmacAlgorithm,
    SignaturePayload,
    sign,
    verify,
    create_signed_headers,
    generate_nonce,
)

# Verification
from hmac_guard.verifier import (
    HmacVerifier,
    VerificationResult,
    VerificationFailureReason,
    VerificationListener,
    CallbackListener,
)

# Components
from hmac_guard.audit import RequestLogger, BlockedIp
from hmac_guard.credentials import CredentialStore, CredentialService
from hmac_guard.nonce import NonceStore, InMemoryNonceStore
from hmac_guard.rate_limit import FailureRateLimiter, InMemoryFailureRateLimiter

# Wiring
from hmac_guard.manager import HmacManager, create_hmac_manager
from hmac_guard.middleware import (
    HmacAuthMiddleware,
    get_hmac_credential,
    require_hmac_credential,
)
from hmac_guard.log import setup_logging

__all__ = [
    # Config
    "HmacConfig",
    "HeaderNames",
    "RateLimitSettings",
    "IpBlockingSettings",
    "TenancySettings",
    # Exceptions
    "HmacAuthError",
    "ConfigurationError",
    "CacheUnavailableError",
    "NonceStoreUnavailable",
    "ProductionGuardError",
    "TenancyDisabledError",
    "SecretDecryptionError",
    "CredentialNotFoundError",
    # Models
    "Credential",
    "Environment",
    "GeneratedCredential",
    "RotatedSecret",
    "RequestContext",
    "RequestLogEntry",
    # Secrets
    "FernetSecretCipher",
    "SealedSecret",
    "SecretCipher",
    # Signatures
    "HmacAlgorithm",
    "SignaturePayload",
    "sign",
    "verify",
    "create_signed_headers",
    "generate_nonce",
    # Verification
    "HmacVerifier",
    "VerificationResult",
    "VerificationFailureReason",
    "VerificationListener",
    "CallbackListener",
    # Components
    "RequestLogger",
    "BlockedIp",
    "CredentialStore",
    "CredentialService",
    "NonceStore",
    "InMemoryNonceStore",
    "FailureRateLimiter",
    "InMemoryFailureRateLimiter",
    # Wiring
    "HmacManager",
    "create_hmac_manager",
    "HmacAuthMiddleware",
    "get_hmac_credential",
    "require_hmac_credential",
    "setup_logging",
]
