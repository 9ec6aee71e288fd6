"""
Redis Failure Rate Limiter
==========================
Per-client authentication failure counter on the shared cache.
"""

import structlog

from ..cache.keys import CacheKeys
from ..cache.redis_ops import execute_redis_operation
from ..config import HmacConfig
from ..log import sanitize_for_log
from .models import RateLimitInfo

logger = structlog.get_logger(__name__)


class FailureRateLimiter:
    """
    Counts attacker-attributable failures per client ID.

    The counter is incremented with INCR + EXPIRE inside one MULTI/EXEC
    pipeline, so concurrent failures never lose an increment or leave a
    counter without a TTL. Keys hash the client ID.

    is_limited() raises CacheUnavailableError when Redis is down so the
    caller can fail closed; record_failure() and reset() only log.
    """

    def __init__(self, redis_client, config: HmacConfig):
        self.redis = redis_client
        self.config = config
        self.settings = config.rate_limit
        self.keys = CacheKeys(config.redis_prefix, "rate_limit")

    def get_key(self, client_id: str) -> str:
        return self.keys.hashed("attempts", client_id)

    async def attempts(self, client_id: str) -> int:
        key = self.get_key(client_id)

        async def _get() -> int:
            value = await self.redis.get(key)
            return int(value) if value else 0

        return await execute_redis_operation(_get, context="FailureRateLimiter.attempts")

    async def is_limited(self, client_id: str) -> bool:
        if not self.settings.enabled:
            return False
        return await self.attempts(client_id) >= self.settings.max_attempts

    async def record_failure(self, client_id: str) -> None:
        if not self.settings.enabled:
            return

        key = self.get_key(client_id)

        async def _incr() -> int:
            pipe = self.redis.pipeline(transaction=True)
            pipe.incr(key)
            pipe.expire(key, self.settings.decay_seconds)
            results = await pipe.execute()
            return int(results[0])

        count = await execute_redis_operation(
            _incr,
            context="FailureRateLimiter.record_failure",
            default=None,
            raise_on_error=False,
            log_data={"client_id": sanitize_for_log(client_id)},
        )
        if count is not None and count == self.settings.max_attempts:
            logger.warning(
                "client_rate_limited",
                client_id=sanitize_for_log(client_id),
                attempts=count,
                decay_minutes=self.settings.decay_minutes,
            )

    async def reset(self, client_id: str) -> None:
        if not self.settings.enabled:
            return

        key = self.get_key(client_id)

        async def _delete() -> int:
            return await self.redis.delete(key)

        await execute_redis_operation(
            _delete,
            context="FailureRateLimiter.reset",
            default=0,
            raise_on_error=False,
            log_data={"client_id": sanitize_for_log(client_id)},
        )

    async def info(self, client_id: str) -> RateLimitInfo:
        """Current counter state, for diagnostics and Retry-After headers."""
        key = self.get_key(client_id)
        count = await self.attempts(client_id)

        async def _ttl() -> int:
            return await self.redis.ttl(key)

        ttl = await execute_redis_operation(_ttl, context="FailureRateLimiter.info")
        allowed = not self.settings.enabled or count < self.settings.max_attempts
        return RateLimitInfo(
            allowed=allowed,
            attempts=count,
            limit=self.settings.max_attempts,
            retry_after=None if allowed or ttl is None or ttl < 0 else int(ttl),
        )
