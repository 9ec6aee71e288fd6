"""
In-Memory Failure Rate Limiter
==============================
Process-local failure counter for development and testing.
"""

import time
from typing import Callable, Dict

from ..config import RateLimitSettings
from .models import RateLimitInfo


class InMemoryFailureRateLimiter:
    """
    Per-client failure counter with a refreshed decay window.

    For development and testing only.
    Use FailureRateLimiter in production.
    """

    def __init__(
        self,
        settings: RateLimitSettings = RateLimitSettings(),
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings
        self._clock = clock
        self._buckets: Dict[str, dict] = {}

    def _bucket(self, client_id: str) -> dict:
        now = self._clock()
        bucket = self._buckets.get(client_id)
        if bucket is None or bucket["expires_at"] <= now:
            bucket = {"count": 0, "expires_at": now + self.settings.decay_seconds}
            self._buckets[client_id] = bucket
        return bucket

    async def attempts(self, client_id: str) -> int:
        return self._bucket(client_id)["count"]

    async def is_limited(self, client_id: str) -> bool:
        if not self.settings.enabled:
            return False
        return await self.attempts(client_id) >= self.settings.max_attempts

    async def record_failure(self, client_id: str) -> None:
        if not self.settings.enabled:
            return
        bucket = self._bucket(client_id)
        bucket["count"] += 1
        bucket["expires_at"] = self._clock() + self.settings.decay_seconds

    async def reset(self, client_id: str) -> None:
        self._buckets.pop(client_id, None)

    async def info(self, client_id: str) -> RateLimitInfo:
        bucket = self._bucket(client_id)
        allowed = not self.settings.enabled or bucket["count"] < self.settings.max_attempts
        return RateLimitInfo(
            allowed=allowed,
            attempts=bucket["count"],
            limit=self.settings.max_attempts,
            retry_after=None if allowed else int(bucket["expires_at"] - self._clock()),
        )
