"""
Redis Nonce Store
=================
Replay protection backed by the shared cache.
"""

import structlog

from ..cache.keys import CacheKeys
from ..cache.redis_ops import execute_redis_operation
from ..config import HmacConfig
from ..exceptions import NonceStoreUnavailable, ProductionGuardError
from ..log import mask_sensitive_value

logger = structlog.get_logger(__name__)


class NonceStore:
    """
    Redis-backed nonce store.

    Cache failures raise NonceStoreUnavailable (fail closed) unless
    config.nonce_fail_open is set, in which case the nonce is treated as
    fresh and the failure is only logged.
    """

    def __init__(self, redis_client, config: HmacConfig):
        self.redis = redis_client
        self.config = config
        self.keys = CacheKeys(config.redis_prefix, "nonce")

    @property
    def fail_open(self) -> bool:
        return self.config.nonce_fail_open

    def _key(self, nonce: str) -> str:
        return self.keys.hashed("seen", nonce)

    async def exists(self, nonce: str) -> bool:
        key = self._key(nonce)

        async def _exists() -> bool:
            return await self.redis.exists(key) > 0

        return await execute_redis_operation(
            _exists,
            context="NonceStore.exists",
            default=False,
            raise_on_error=not self.fail_open,
            exception_class=NonceStoreUnavailable,
            log_data={"nonce_prefix": mask_sensitive_value(nonce)},
        )

    async def store(self, nonce: str) -> None:
        key = self._key(nonce)

        async def _store() -> bool:
            return bool(await self.redis.set(key, "1", ex=self.config.nonce_ttl))

        await execute_redis_operation(
            _store,
            context="NonceStore.store",
            default=False,
            raise_on_error=not self.fail_open,
            exception_class=NonceStoreUnavailable,
            log_data={"nonce_prefix": mask_sensitive_value(nonce)},
        )

    async def check_and_store(self, nonce: str) -> bool:
        """
        Atomically record the nonce.

        Returns:
            True if the nonce was fresh, False if it was already present
        """
        key = self._key(nonce)

        async def _check_and_store() -> bool:
            return bool(await self.redis.set(key, "1", ex=self.config.nonce_ttl, nx=True))

        fresh = await execute_redis_operation(
            _check_and_store,
            context="NonceStore.check_and_store",
            default=True,
            raise_on_error=not self.fail_open,
            exception_class=NonceStoreUnavailable,
            log_data={"nonce_prefix": mask_sensitive_value(nonce)},
        )
        if not fresh:
            logger.warning("replay_detected", nonce_prefix=mask_sensitive_value(nonce))
        return fresh

    async def clear(self) -> int:
        """
        Delete every stored nonce. Test contexts only.

        Raises:
            ProductionGuardError: When running in production
        """
        if self.config.is_production:
            raise ProductionGuardError("NonceStore.clear() cannot be called in production")

        deleted = 0
        async for key in self.redis.scan_iter(match=self.keys.pattern()):
            deleted += await self.redis.delete(key)

        logger.info("nonce_store_cleared", deleted=deleted)
        return deleted
