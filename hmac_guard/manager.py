"""
HMAC Manager
============
Wires every component from one config and one Redis client, and exposes
the administrative and client-helper surface.

Usage:
    from hmac_guard import create_hmac_manager

    manager = create_hmac_manager()  # reads HMAC_* and REDIS_URL
    generated = await manager.generate_credentials("production", created_by="ops")
    result = await manager.verify(context)
"""

import os
import time
from datetime import datetime
from typing import Callable, Dict, List, Optional, Union

import structlog

from .audit import BlockedIp, RequestLogger
from .config import HmacConfig
from .credentials import CredentialService, CredentialStore
from .crypto import FernetSecretCipher, SecretCipher
from .exceptions import ConfigurationError
from .keys import SecureKeyGenerator
from .models import Credential, Environment, GeneratedCredential, RequestContext, RotatedSecret
from .nonce import NonceStore
from .rate_limit import FailureRateLimiter
from .signature import SignaturePayload, create_signed_headers, sign
from .storage import (
    CredentialRepository,
    RedisCredentialRepository,
    RedisRequestLogRepository,
    RequestLogRepository,
)
from .tenancy import build_tenancy_scope
from .verifier import HmacVerifier, VerificationListener, VerificationResult

logger = structlog.get_logger(__name__)

CredentialRef = Union[Credential, str]


class HmacManager:
    """Facade over the verifier, credential service and request log."""

    def __init__(
        self,
        config: HmacConfig,
        redis_client,
        cipher: SecretCipher,
        credential_repository: Optional[CredentialRepository] = None,
        log_repository: Optional[RequestLogRepository] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.redis = redis_client
        self.cipher = cipher
        self._clock = clock
        self.tenancy = build_tenancy_scope(config)
        self.key_generator = SecureKeyGenerator(config)

        credential_repository = credential_repository or RedisCredentialRepository(
            redis_client, config.redis_prefix
        )
        log_repository = log_repository or RedisRequestLogRepository(
            redis_client, config.redis_prefix
        )

        self.credentials = CredentialStore(
            credential_repository, redis_client, config, self.tenancy, clock=clock
        )
        self.service = CredentialService(
            self.credentials, cipher, config, self.key_generator, clock=clock
        )
        self.nonce_store = NonceStore(redis_client, config)
        self.rate_limiter = FailureRateLimiter(redis_client, config)
        self.request_logger = RequestLogger(log_repository, config, self.tenancy, clock=clock)
        self.verifier = HmacVerifier(
            config,
            self.credentials,
            self.nonce_store,
            self.rate_limiter,
            self.request_logger,
            cipher,
            clock=clock,
        )

    async def _resolve(self, credential: CredentialRef) -> Credential:
        if isinstance(credential, Credential):
            return credential
        return await self.service.get(credential)

    # =========================================================================
    # Verification
    # =========================================================================

    async def verify(self, context: RequestContext) -> VerificationResult:
        return await self.verifier.verify(context)

    def add_listener(self, listener: VerificationListener) -> None:
        self.verifier.add_listener(listener)

    # =========================================================================
    # Credential administration
    # =========================================================================

    async def generate_credentials(
        self,
        environment: Union[str, Environment] = Environment.TESTING,
        expires_at: Optional[datetime] = None,
        tenant_id: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> GeneratedCredential:
        return await self.service.generate(environment, expires_at, tenant_id, created_by)

    async def rotate_secret(self, credential: CredentialRef, grace_days: int = 7) -> RotatedSecret:
        return await self.service.rotate_secret(await self._resolve(credential), grace_days)

    async def regenerate_client_id(self, credential: CredentialRef) -> Credential:
        return await self.service.regenerate_client_id(await self._resolve(credential))

    async def activate(self, credential: CredentialRef) -> Credential:
        return await self.service.activate(await self._resolve(credential))

    async def deactivate(self, credential: CredentialRef) -> Credential:
        return await self.service.deactivate(await self._resolve(credential))

    async def toggle_status(self, credential: CredentialRef) -> Credential:
        return await self.service.toggle_status(await self._resolve(credential))

    async def set_expiration(
        self,
        credential: CredentialRef,
        expires_at: Optional[datetime],
    ) -> Credential:
        return await self.service.set_expiration(await self._resolve(credential), expires_at)

    async def delete(self, credential: CredentialRef) -> bool:
        return await self.service.delete(await self._resolve(credential))

    async def deactivate_expired(self) -> int:
        return await self.credentials.deactivate_expired()

    # =========================================================================
    # Request log administration
    # =========================================================================

    async def purge_logs(self, days: Optional[int] = None, batch_size: int = 1000) -> int:
        return await self.request_logger.purge_older_than(days, batch_size)

    async def blocked_ips(
        self,
        threshold: Optional[int] = None,
        window_minutes: Optional[int] = None,
    ) -> List[BlockedIp]:
        return await self.request_logger.blocked_ips(threshold, window_minutes)

    async def unblock_ip(self, ip_address: str) -> int:
        return await self.request_logger.clear_failures_for_ip(ip_address)

    # =========================================================================
    # Client helpers
    # =========================================================================

    def generate_nonce(self) -> str:
        return self.key_generator.generate_nonce()

    def generate_client_id(self, environment: Union[str, Environment]) -> str:
        return self.key_generator.generate_client_id(environment)

    def generate_client_secret(self) -> str:
        return self.key_generator.generate_client_secret()

    def generate_signature(
        self,
        payload: SignaturePayload,
        secret: str,
        algorithm: Optional[str] = None,
    ) -> str:
        return sign(payload, secret, algorithm or self.config.algorithm)

    def create_signed_headers(
        self,
        client_id: str,
        secret: str,
        method: str,
        path: str,
        body: Union[bytes, str] = b"",
        algorithm: Optional[str] = None,
        nonce: Optional[str] = None,
    ) -> Dict[str, str]:
        names = self.config.headers
        return create_signed_headers(
            client_id,
            secret,
            method,
            path,
            body,
            algorithm=algorithm or self.config.algorithm,
            timestamp=int(self._clock()),
            nonce=nonce,
            api_key_header=names.api_key,
            signature_header=names.signature,
            timestamp_header=names.timestamp,
            nonce_header=names.nonce,
        )


def create_hmac_manager(
    config: Optional[HmacConfig] = None,
    redis_client=None,
    cipher: Optional[SecretCipher] = None,
    redis_url: Optional[str] = None,
    **kwargs,
) -> HmacManager:
    """
    Build an HmacManager from the environment.

    REDIS_URL selects the Redis server and HMAC_ENCRYPTION_KEYS (comma
    separated Fernet keys, newest first) the secret cipher, unless a
    client or cipher is passed in.

    Raises:
        ConfigurationError: No cipher and no HMAC_ENCRYPTION_KEYS
    """
    config = config or HmacConfig.from_env()

    if redis_client is None:
        import redis.asyncio as aioredis

        redis_client = aioredis.from_url(
            redis_url or os.getenv("REDIS_URL", "redis://localhost:6379/0"),
            decode_responses=True,
        )

    if cipher is None:
        keys = [k.strip() for k in os.getenv("HMAC_ENCRYPTION_KEYS", "").split(",") if k.strip()]
        if not keys:
            raise ConfigurationError("HMAC_ENCRYPTION_KEYS must be set to encrypt client secrets")
        cipher = FernetSecretCipher(*keys)

    logger.info(
        "hmac_manager_created",
        app_environment=config.app_environment,
        algorithm=config.algorithm,
        enabled=config.enabled,
    )
    return HmacManager(config, redis_client, cipher, **kwargs)
