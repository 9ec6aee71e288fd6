"""
Distributed Lock
================
Redis mutex with an owner token and a bounded acquire wait.
"""

import asyncio
import secrets
import time
from typing import Optional

import structlog

from ..exceptions import HmacAuthError

logger = structlog.get_logger(__name__)

# Delete the key only if we still own it
RELEASE_LOCK_SCRIPT = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
end
return 0
"""


class LockTimeout(HmacAuthError):
    """Raised when the lock could not be acquired within the wait bound."""
    pass


class DistributedLock:
    """
    Redis SET NX PX lock.

    Example:
        async with DistributedLock(redis, "hmac:lock:abc", ttl=10, wait=3):
            ...

    Entering raises LockTimeout after `wait` seconds; it never blocks
    indefinitely. The lock expires after `ttl` seconds even if the owner dies.
    """

    def __init__(
        self,
        redis_client,
        key: str,
        ttl: float = 10.0,
        wait: float = 3.0,
        retry_interval: float = 0.05,
    ):
        self.redis = redis_client
        self.key = key
        self.ttl = ttl
        self.wait = wait
        self.retry_interval = retry_interval
        self._token: Optional[str] = None

    @property
    def owned(self) -> bool:
        return self._token is not None

    async def acquire(self) -> bool:
        """Try until acquired or the wait bound elapses."""
        token = secrets.token_hex(16)
        ttl_ms = max(1, int(self.ttl * 1000))
        deadline = time.monotonic() + self.wait

        while True:
            if await self.redis.set(self.key, token, nx=True, px=ttl_ms):
                self._token = token
                return True
            if time.monotonic() >= deadline:
                return False
            await asyncio.sleep(self.retry_interval)

    async def release(self) -> bool:
        if self._token is None:
            return False
        token, self._token = self._token, None
        released = await self.redis.eval(RELEASE_LOCK_SCRIPT, 1, self.key, token)
        if not released:
            logger.warning("lock_expired_before_release", key=self.key)
        return bool(released)

    async def __aenter__(self) -> "DistributedLock":
        if not await self.acquire():
            raise LockTimeout(f"Could not acquire lock {self.key} within {self.wait}s")
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.release()
