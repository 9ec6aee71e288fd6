"""
In-Memory Nonce Store
=====================
Process-local nonce store for development and single-instance tests.
"""

import time
from typing import Callable, Dict

import structlog

from ..exceptions import ProductionGuardError
from ..log import mask_sensitive_value

logger = structlog.get_logger(__name__)


class InMemoryNonceStore:
    """
    In-memory nonce store with TTL expiry.

    Not shared between processes; use NonceStore (Redis) in production.
    """

    def __init__(
        self,
        ttl_seconds: int = 600,
        is_production: bool = False,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl_seconds = ttl_seconds
        self.is_production = is_production
        self._clock = clock
        self._cache: Dict[str, float] = {}

    async def exists(self, nonce: str) -> bool:
        self._cleanup()
        return nonce in self._cache

    async def store(self, nonce: str) -> None:
        self._cache[nonce] = self._clock()

    async def check_and_store(self, nonce: str) -> bool:
        """
        Check if nonce is fresh and store it.

        Returns:
            True if nonce is fresh (not seen before)
        """
        self._cleanup()

        if nonce in self._cache:
            logger.warning("replay_detected", nonce_prefix=mask_sensitive_value(nonce))
            return False

        self._cache[nonce] = self._clock()
        return True

    async def clear(self) -> int:
        if self.is_production:
            raise ProductionGuardError("InMemoryNonceStore.clear() cannot be called in production")
        count = len(self._cache)
        self._cache.clear()
        return count

    def _cleanup(self) -> None:
        """Remove expired nonces."""
        current_time = self._clock()
        expired = [
            nonce for nonce, ts in self._cache.items()
            if current_time - ts >= self.ttl_seconds
        ]
        for nonce in expired:
            del self._cache[nonce]
