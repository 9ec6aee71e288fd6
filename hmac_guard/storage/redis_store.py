"""
Redis Storage
=============
Credential and request-log repositories on Redis.

Credentials are JSON documents with a unique client_id index claimed
with SET NX. Log entries are JSON documents indexed by sorted sets
scored by creation time, so window counts are ZCOUNT calls and
retention purges walk the oldest entries in bounded batches.
"""

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog
from redis.exceptions import WatchError

from ..cache.keys import CacheKeys
from ..models import Credential, RequestLogEntry, utcnow

logger = structlog.get_logger(__name__)


def _decode(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


class RedisCredentialRepository:
    """Credentials as JSON under <prefix>store:credential:*."""

    def __init__(self, redis_client, redis_prefix: str = "hmac:"):
        self.redis = redis_client
        self.keys = CacheKeys(redis_prefix, "store")

    def _data_key(self, credential_id: str) -> str:
        return self.keys.key("credential", credential_id)

    def _client_key(self, client_id: str) -> str:
        return self.keys.hashed("client_id", client_id)

    async def get_by_id(self, credential_id: str) -> Optional[Credential]:
        raw = _decode(await self.redis.get(self._data_key(credential_id)))
        if raw is None:
            return None
        return Credential.from_dict(json.loads(raw))

    async def get_by_client_id(self, client_id: str) -> Optional[Credential]:
        credential_id = _decode(await self.redis.get(self._client_key(client_id)))
        if credential_id is None:
            return None
        return await self.get_by_id(credential_id)

    async def create(self, credential: Credential) -> Credential:
        claimed = await self.redis.set(
            self._client_key(credential.client_id), credential.id, nx=True
        )
        if not claimed:
            raise ValueError(f"Client ID already exists: {credential.client_id}")
        await self.redis.set(self._data_key(credential.id), json.dumps(credential.to_dict()))
        return credential

    async def update(self, credential: Credential, changes: Dict[str, Any]) -> Credential:
        """
        Apply changes to the stored document with optimistic locking.

        The document is WATCHed while it is read; a concurrent write makes
        EXEC fail and the changes are re-applied to the fresh copy.
        """
        data_key = self._data_key(credential.id)
        async with self.redis.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(data_key)
                    raw = _decode(await pipe.get(data_key))
                    if raw is None:
                        raise LookupError(f"Unknown credential {credential.id}")
                    current = Credential.from_dict(json.loads(raw))

                    new_client_id = changes.get("client_id")
                    moved = bool(new_client_id) and new_client_id != current.client_id
                    if moved:
                        await self._claim_client_id(pipe, new_client_id, current.id)

                    updated = current.with_changes(**changes, updated_at=utcnow())
                    pipe.multi()
                    pipe.set(data_key, json.dumps(updated.to_dict()))
                    if moved:
                        pipe.delete(self._client_key(current.client_id))
                    await pipe.execute()
                    return updated
                except WatchError:
                    logger.debug("credential_update_retry", credential_id=credential.id)
                    continue

    async def _claim_client_id(self, pipe, client_id: str, credential_id: str) -> None:
        key = self._client_key(client_id)
        if await pipe.set(key, credential_id, nx=True):
            return
        # Already ours from an attempt that lost the race
        if _decode(await pipe.get(key)) != credential_id:
            raise ValueError(f"Client ID already exists: {client_id}")

    async def delete(self, credential: Credential) -> bool:
        current = await self.get_by_id(credential.id)
        if current is None:
            return False
        pipe = self.redis.pipeline(transaction=True)
        pipe.delete(self._data_key(current.id))
        pipe.delete(self._client_key(current.client_id))
        await pipe.execute()
        return True

    async def list_all(self) -> List[Credential]:
        credentials = []
        async for key in self.redis.scan_iter(match=self.keys.pattern("credential")):
            raw = _decode(await self.redis.get(key))
            if raw is not None:
                credentials.append(Credential.from_dict(json.loads(raw)))
        return credentials


class RedisRequestLogRepository:
    """
    Request log on Redis.

    Layout under <prefix>log:
        entry:<id>            JSON entry
        index                 ZSET of all entry ids by created_at
        client:<hash>         ZSET of all entry ids per client ID
        failed_ip:<hash>      ZSET of failed entry ids per IP
        failed_client:<hash>  ZSET of failed entry ids per client ID
        failed_ips            SET of IPs that have failed entries
    """

    def __init__(self, redis_client, redis_prefix: str = "hmac:"):
        self.redis = redis_client
        self.keys = CacheKeys(redis_prefix, "log")
        self.index_key = f"{self.keys.prefix}:index"
        self.failed_ips_key = f"{self.keys.prefix}:failed_ips"

    def _entry_key(self, entry_id: str) -> str:
        return self.keys.key("entry", entry_id)

    def _ip_key(self, ip_address: str) -> str:
        return self.keys.hashed("failed_ip", ip_address)

    def _client_key(self, client_id: str) -> str:
        return self.keys.hashed("failed_client", client_id)

    def _history_key(self, client_id: str) -> str:
        return self.keys.hashed("client", client_id)

    async def create(self, entry: RequestLogEntry) -> RequestLogEntry:
        score = entry.created_at.timestamp()
        pipe = self.redis.pipeline(transaction=True)
        pipe.set(self._entry_key(entry.id), json.dumps(entry.to_dict()))
        pipe.zadd(self.index_key, {entry.id: score})
        pipe.zadd(self._history_key(entry.client_id), {entry.id: score})
        if not entry.signature_valid:
            pipe.zadd(self._ip_key(entry.ip_address), {entry.id: score})
            pipe.zadd(self._client_key(entry.client_id), {entry.id: score})
            pipe.sadd(self.failed_ips_key, entry.ip_address)
        await pipe.execute()
        return entry

    async def _load(self, entry_id: str) -> Optional[RequestLogEntry]:
        raw = _decode(await self.redis.get(self._entry_key(entry_id)))
        if raw is None:
            return None
        return RequestLogEntry.from_dict(json.loads(raw))

    async def _remove(self, entry_ids: List[str]) -> int:
        removed = 0
        for entry_id in entry_ids:
            entry = await self._load(entry_id)
            pipe = self.redis.pipeline(transaction=True)
            pipe.delete(self._entry_key(entry_id))
            pipe.zrem(self.index_key, entry_id)
            if entry is not None:
                pipe.zrem(self._history_key(entry.client_id), entry_id)
            if entry is not None and not entry.signature_valid:
                pipe.zrem(self._ip_key(entry.ip_address), entry_id)
                pipe.zrem(self._client_key(entry.client_id), entry_id)
            await pipe.execute()
            removed += 1
        return removed

    async def count_failed_by_ip(self, ip_address: str, since: datetime) -> int:
        return int(await self.redis.zcount(self._ip_key(ip_address), since.timestamp(), "+inf"))

    async def count_failed_by_client(self, client_id: str, since: datetime) -> int:
        return int(
            await self.redis.zcount(self._client_key(client_id), since.timestamp(), "+inf")
        )

    async def failed_counts_by_ip(self, since: datetime) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for member in await self.redis.smembers(self.failed_ips_key):
            ip_address = _decode(member)
            count = await self.count_failed_by_ip(ip_address, since)
            if count:
                counts[ip_address] = count
            elif not await self.redis.zcard(self._ip_key(ip_address)):
                await self.redis.srem(self.failed_ips_key, ip_address)
        return counts

    async def delete_failed_by_ip(self, ip_address: str, since: datetime) -> int:
        members = await self.redis.zrangebyscore(
            self._ip_key(ip_address), since.timestamp(), "+inf"
        )
        return await self._remove([_decode(m) for m in members])

    async def delete_batch_older_than(self, cutoff: datetime, limit: int) -> int:
        members = await self.redis.zrangebyscore(
            self.index_key, "-inf", f"({cutoff.timestamp()}", start=0, num=limit
        )
        removed = await self._remove([_decode(m) for m in members])
        if removed:
            logger.debug("request_log_batch_purged", count=removed)
        return removed

    async def recent_for_client(self, client_id: str, limit: int = 100) -> List[RequestLogEntry]:
        if limit <= 0:
            return []
        entries = []
        for member in await self.redis.zrevrange(self._history_key(client_id), 0, limit - 1):
            entry = await self._load(_decode(member))
            if entry is not None:
                entries.append(entry)
        return entries
