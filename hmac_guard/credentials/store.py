"""
Credential Store
================
Cached credential lookups and mutations.

Lookups are cached in Redis as JSON (secrets stay encrypted). Misses
are cached too, as a NOT_FOUND marker with a shorter TTL, so unknown
client IDs cannot hammer the repository. Cache refills are
single-flight: one worker takes a DistributedLock and reads the
repository while the others wait for the cache, bounded by
lock_wait_seconds. On lock timeout the caller reads the repository
directly without caching.

Mutations take the same per-client lock around the repository write and
the cache invalidation, so a refill that read the old record can never
put it back after the invalidation.
"""

import json
import time
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Any, AsyncIterator, Awaitable, Callable, List, Optional

import structlog
from redis.exceptions import RedisError

from ..cache.keys import CacheKeys
from ..cache.lock import DistributedLock, LockTimeout
from ..cache.redis_ops import execute_redis_operation
from ..config import HmacConfig
from ..crypto import SealedSecret
from ..exceptions import TenancyDisabledError
from ..log import sanitize_for_log
from ..models import Credential, from_timestamp
from ..storage.base import CredentialRepository
from ..tenancy import TenancyScope, build_tenancy_scope

logger = structlog.get_logger(__name__)

NOT_FOUND_MARKER = "__NOT_FOUND__"
MIN_SEARCH_TERM_LENGTH = 3
MAX_COLLECTION_LIMIT = 100


class CredentialStore:
    """Credential lookups with positive/negative caching and single-flight refills."""

    def __init__(
        self,
        repository: CredentialRepository,
        redis_client,
        config: HmacConfig,
        tenancy: Optional[TenancyScope] = None,
        clock=time.time,
    ):
        self.repository = repository
        self.redis = redis_client
        self.config = config
        self.tenancy = tenancy or build_tenancy_scope(config)
        self._clock = clock
        self.keys = CacheKeys(config.redis_prefix, "credential")
        self.lock_keys = CacheKeys(config.redis_prefix, "lock")

    def _now(self):
        return from_timestamp(self._clock())

    # =========================================================================
    # Cache helpers
    # =========================================================================

    async def _cache_get(self, key: str) -> Optional[str]:
        async def _get():
            return await self.redis.get(key)

        value = await execute_redis_operation(
            _get, context="CredentialStore.cache_get", default=None, raise_on_error=False
        )
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return value

    async def _cache_put(self, key: str, credential: Optional[Credential]) -> None:
        if credential is None:
            value, ttl = NOT_FOUND_MARKER, self.config.negative_cache_ttl
        else:
            value, ttl = json.dumps(credential.to_dict()), self.config.credential_cache_ttl

        async def _put():
            return await self.redis.set(key, value, ex=ttl)

        await execute_redis_operation(
            _put, context="CredentialStore.cache_put", default=None, raise_on_error=False
        )

    @staticmethod
    def _decode_cached(cached: str) -> Optional[Credential]:
        if cached == NOT_FOUND_MARKER:
            return None
        return Credential.from_dict(json.loads(cached))

    def _lookup_key(self, client_id: str) -> str:
        return self.keys.hashed("by_id", client_id)

    def _active_key(self, client_id: str) -> str:
        return self.keys.hashed("active", client_id)

    def _last_used_key(self, client_id: str) -> str:
        return self.keys.hashed("last_used", client_id)

    # =========================================================================
    # Lookups
    # =========================================================================

    def _lock(self, client_id: str) -> DistributedLock:
        return DistributedLock(
            self.redis,
            self.lock_keys.hashed("credential", client_id),
            ttl=self.config.lock_ttl_seconds,
            wait=self.config.lock_wait_seconds,
        )

    @staticmethod
    async def _release(lock: DistributedLock) -> None:
        try:
            await lock.release()
        except (RedisError, OSError) as e:
            logger.warning("credential_lock_release_failed", error=str(e))

    async def _cached_or_refill(
        self,
        key: str,
        client_id: str,
        loader: Callable[[], Awaitable[Optional[Credential]]],
    ) -> Optional[Credential]:
        cached = await self._cache_get(key)
        if cached is not None:
            return self._decode_cached(cached)

        lock = self._lock(client_id)
        try:
            acquired = await lock.acquire()
        except (RedisError, OSError) as e:
            logger.warning(
                "credential_lock_unavailable",
                client_id=sanitize_for_log(client_id),
                error=str(e),
            )
            return await loader()

        if not acquired:
            logger.warning(
                "credential_lock_timeout",
                client_id=sanitize_for_log(client_id),
                wait_seconds=self.config.lock_wait_seconds,
            )
            return await loader()

        try:
            # Another worker may have refilled the cache while we waited
            cached = await self._cache_get(key)
            if cached is not None:
                return self._decode_cached(cached)
            credential = await loader()
            await self._cache_put(key, credential)
            return credential
        finally:
            await self._release(lock)

    @asynccontextmanager
    async def _mutation_lock(self, client_id: str) -> AsyncIterator[None]:
        """
        Hold the client's refill lock for a repository write and invalidation.

        With the cache unreachable there is nothing to race against, so the
        write goes ahead unlocked.

        Raises:
            LockTimeout: The lock stayed busy for lock_wait_seconds
        """
        lock = self._lock(client_id)
        try:
            acquired = await lock.acquire()
        except (RedisError, OSError) as e:
            logger.warning(
                "credential_lock_unavailable",
                client_id=sanitize_for_log(client_id),
                error=str(e),
            )
            acquired = None

        if acquired is False:
            raise LockTimeout(
                f"Credential {sanitize_for_log(client_id)} is busy; retry the change"
            )

        try:
            yield
        finally:
            if acquired:
                await self._release(lock)

    async def find_by_client_id(self, client_id: str) -> Optional[Credential]:
        return await self._cached_or_refill(
            self._lookup_key(client_id),
            client_id,
            lambda: self.repository.get_by_client_id(client_id),
        )

    async def find_by_id(self, credential_id: str) -> Optional[Credential]:
        return await self.repository.get_by_id(credential_id)

    async def _load_active(self, client_id: str) -> Optional[Credential]:
        credential = await self.repository.get_by_client_id(client_id)
        if credential is not None and not credential.is_usable(self._now()):
            return None
        return credential

    async def find_active_usable(self, client_id: str) -> Optional[Credential]:
        """
        Find a usable credential by client ID.

        A cached hit is returned as cached; callers re-check expiry
        because a credential can expire while it sits in the cache.
        """
        return await self._cached_or_refill(
            self._active_key(client_id),
            client_id,
            lambda: self._load_active(client_id),
        )

    async def invalidate(self, client_id: str) -> None:
        keys = [
            self._lookup_key(client_id),
            self._active_key(client_id),
            self._last_used_key(client_id),
        ]

        async def _delete():
            return await self.redis.delete(*keys)

        await execute_redis_operation(
            _delete,
            context="CredentialStore.invalidate",
            default=0,
            raise_on_error=False,
            log_data={"client_id": sanitize_for_log(client_id)},
        )

    # =========================================================================
    # Mutations
    # =========================================================================

    async def create(self, credential: Credential) -> Credential:
        async with self._mutation_lock(credential.client_id):
            created = await self.repository.create(credential)
            # Drop any NOT_FOUND marker left by earlier lookups
            await self.invalidate(created.client_id)
        return created

    async def update(self, credential: Credential, **changes: Any) -> Credential:
        async with self._mutation_lock(credential.client_id):
            updated = await self.repository.update(credential, changes)
            await self.invalidate(credential.client_id)
        if updated.client_id != credential.client_id:
            async with self._mutation_lock(updated.client_id):
                await self.invalidate(updated.client_id)
        return updated

    async def delete(self, credential: Credential) -> bool:
        async with self._mutation_lock(credential.client_id):
            deleted = await self.repository.delete(credential)
            if deleted:
                await self.invalidate(credential.client_id)
        return deleted

    async def deactivate(self, credential: Credential) -> Credential:
        return await self.update(credential, is_active=False)

    async def activate(self, credential: Credential) -> Credential:
        return await self.update(credential, is_active=True)

    async def rotate_secret(
        self,
        credential: Credential,
        new_secret: SealedSecret,
        grace_days: int = 7,
    ) -> Credential:
        """Swap in new_secret; the current one stays valid for grace_days."""
        return await self.update(
            credential,
            secret=new_secret,
            old_secret=credential.secret,
            old_secret_expires_at=self._now() + timedelta(days=grace_days),
        )

    async def mark_used(self, credential: Credential) -> bool:
        """
        Record last_used_at, at most once per debounce window.

        Returns True when the repository was written.
        """
        key = self._last_used_key(credential.client_id)

        async def _claim():
            return await self.redis.set(
                key, "1", nx=True, ex=self.config.mark_used_debounce_seconds
            )

        claimed = await execute_redis_operation(
            _claim, context="CredentialStore.mark_used", default=None, raise_on_error=False
        )
        if not claimed:
            return False

        # last_used_at is advisory; the cached copy is left as is
        await self.repository.update(credential, {"last_used_at": self._now()})
        return True

    # =========================================================================
    # Maintenance queries
    # =========================================================================

    async def expired(self, limit: int = MAX_COLLECTION_LIMIT) -> List[Credential]:
        now = self._now()
        found = [c for c in await self.repository.list_all() if c.is_expired(now)]
        found.sort(key=lambda c: c.expires_at)
        return found[:limit]

    async def expiring_soon(self, days: int = 7, limit: int = MAX_COLLECTION_LIMIT) -> List[Credential]:
        now = self._now()
        horizon = now + timedelta(days=days)
        found = [
            c for c in await self.repository.list_all()
            if c.is_active and c.expires_at is not None and now < c.expires_at <= horizon
        ]
        found.sort(key=lambda c: c.expires_at)
        return found[:limit]

    async def deactivate_expired(self) -> int:
        now = self._now()
        count = 0
        for credential in await self.repository.list_all():
            if credential.is_active and credential.is_expired(now):
                await self.deactivate(credential)
                count += 1
        if count:
            logger.info("expired_credentials_deactivated", count=count)
        return count

    async def list_for_tenant(self, tenant_id: str) -> List[Credential]:
        if not self.tenancy.is_active():
            raise TenancyDisabledError()
        credentials = self.tenancy.apply_scope(await self.repository.list_all(), tenant_id)
        credentials.sort(key=lambda c: c.created_at, reverse=True)
        return credentials

    async def count_active_for_tenant(self, tenant_id: str) -> int:
        return sum(1 for c in await self.list_for_tenant(tenant_id) if c.is_active)

    async def search(self, term: str, limit: int = 15) -> List[Credential]:
        """Case-insensitive client ID search; terms under 3 characters match nothing."""
        term = (term or "").strip().lower()
        if len(term) < MIN_SEARCH_TERM_LENGTH:
            return []
        found = [
            c for c in await self.repository.list_all()
            if term in c.client_id.lower() or (c.created_by and term in c.created_by.lower())
        ]
        found.sort(key=lambda c: c.created_at, reverse=True)
        return found[:limit]
