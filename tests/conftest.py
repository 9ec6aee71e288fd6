"""
Shared test fixtures: a fake clock, an async in-memory Redis double and
fully wired HMAC components.
"""

import asyncio
import fnmatch
import math
from typing import Any, Dict, List, Optional

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import WatchError

from hmac_guard.cache.lock import RELEASE_LOCK_SCRIPT
from hmac_guard.config import HmacConfig
from hmac_guard.crypto import FernetSecretCipher
from hmac_guard.manager import HmacManager
from hmac_guard.models import RequestContext
from hmac_guard.signature import create_signed_headers, generate_nonce
from hmac_guard.storage import InMemoryCredentialRepository, InMemoryRequestLogRepository


class FakeClock:
    """Settable unix-seconds clock."""

    def __init__(self, start: float = 1_704_067_200.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _bound(value):
    if isinstance(value, (int, float)):
        return float(value), False
    text = value.decode() if isinstance(value, bytes) else str(value)
    if text == "-inf":
        return float("-inf"), False
    if text in ("+inf", "inf"):
        return float("inf"), False
    if text.startswith("("):
        return float(text[1:]), True
    return float(text), False


def _in_range(score: float, low, high) -> bool:
    lo, lo_excl = _bound(low)
    hi, hi_excl = _bound(high)
    above = score > lo if lo_excl else score >= lo
    below = score < hi if hi_excl else score <= hi
    return above and below


class FakePipeline:
    """
    Buffers commands and runs them on execute().

    After watch() commands run immediately until multi(); execute() then
    raises WatchError if a watched key was written in the meantime.
    """

    def __init__(self, redis: "FakeRedis"):
        self._redis = redis
        self._commands: List[tuple] = []
        self._watched: Dict[str, int] = {}
        self._immediate = False

    async def __aenter__(self) -> "FakePipeline":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.reset()

    def __getattr__(self, name):
        if self._immediate:
            return getattr(self._redis, name)

        def _queue(*args, **kwargs):
            self._commands.append((name, args, kwargs))
            return self
        return _queue

    def reset(self) -> None:
        self._commands = []
        self._watched = {}
        self._immediate = False

    async def watch(self, *keys):
        self._redis._check("watch")
        self._watched.update({key: self._redis._versions.get(key, 0) for key in keys})
        self._immediate = True

    def multi(self) -> None:
        self._immediate = False

    async def execute(self):
        self._redis._check("exec")
        changed = any(self._redis._versions.get(key, 0) != seen for key, seen in self._watched.items())
        commands = self._commands
        self.reset()
        if changed:
            raise WatchError("Watched variable changed.")
        return [getattr(self._redis, f"_{name}")(*args, **kwargs) for name, args, kwargs in commands]


class FakeRedis:
    """
    Async in-memory Redis double (decode_responses=True semantics).

    Set `fail = True` to make every command raise ConnectionError, or add
    command names to `failing` to break only those.
    """

    def __init__(self, clock: Optional[FakeClock] = None):
        self.clock = clock or FakeClock()
        self._data: Dict[str, Any] = {}
        self._expiry: Dict[str, float] = {}
        self._versions: Dict[str, int] = {}
        self.fail = False
        self.failing = set()
        self.commands: List[str] = []

    def _check(self, command: str) -> None:
        self.commands.append(command)
        if self.fail or command in self.failing:
            raise RedisConnectionError("fake redis unavailable")

    def _alive(self, key: str) -> bool:
        expires = self._expiry.get(key)
        if expires is not None and expires <= self.clock():
            self._data.pop(key, None)
            self._expiry.pop(key, None)
        return key in self._data

    def _touch(self, key: str) -> None:
        self._versions[key] = self._versions.get(key, 0) + 1

    # --- strings -------------------------------------------------------------

    def _get(self, key):
        return self._data[key] if self._alive(key) else None

    def _set(self, key, value, ex=None, px=None, nx=False):
        if nx and self._alive(key):
            return None
        self._touch(key)
        self._data[key] = value if isinstance(value, str) else str(value)
        self._expiry.pop(key, None)
        if ex is not None:
            self._expiry[key] = self.clock() + ex
        elif px is not None:
            self._expiry[key] = self.clock() + px / 1000.0
        return True

    def _delete(self, *keys):
        removed = 0
        for key in keys:
            if self._alive(key):
                del self._data[key]
                self._expiry.pop(key, None)
                self._touch(key)
                removed += 1
        return removed

    def _incr(self, key):
        value = int(self._get(key) or 0) + 1
        expires = self._expiry.get(key)
        self._touch(key)
        self._data[key] = str(value)
        if expires is not None:
            self._expiry[key] = expires
        return value

    def _expire(self, key, seconds):
        if not self._alive(key):
            return False
        self._expiry[key] = self.clock() + seconds
        return True

    async def get(self, key):
        self._check("get")
        return self._get(key)

    async def set(self, key, value, ex=None, px=None, nx=False):
        self._check("set")
        return self._set(key, value, ex=ex, px=px, nx=nx)

    async def delete(self, *keys):
        self._check("delete")
        return self._delete(*keys)

    async def exists(self, *keys):
        self._check("exists")
        return sum(1 for key in keys if self._alive(key))

    async def incr(self, key):
        self._check("incr")
        return self._incr(key)

    async def expire(self, key, seconds):
        self._check("expire")
        return self._expire(key, seconds)

    async def ttl(self, key):
        self._check("ttl")
        if not self._alive(key):
            return -2
        expires = self._expiry.get(key)
        if expires is None:
            return -1
        return int(math.ceil(expires - self.clock()))

    async def eval(self, script, numkeys, *keys_and_args):
        self._check("eval")
        if script != RELEASE_LOCK_SCRIPT:
            raise NotImplementedError("FakeRedis only knows the lock release script")
        key, token = keys_and_args[0], keys_and_args[1]
        if self._get(key) == token:
            return self._delete(key)
        return 0

    async def scan_iter(self, match=None, count=None):
        self._check("scan")
        for key in list(self._data):
            if self._alive(key) and (match is None or fnmatch.fnmatchcase(key, match)):
                yield key

    def pipeline(self, transaction=True):
        return FakePipeline(self)

    # --- sorted sets -----------------------------------------------------------

    def _zset(self, key) -> Dict[str, float]:
        if not self._alive(key):
            self._data[key] = {}
        return self._data[key]

    def _zadd(self, key, mapping):
        zset = self._zset(key)
        added = sum(1 for member in mapping if member not in zset)
        zset.update({member: float(score) for member, score in mapping.items()})
        return added

    def _zrem(self, key, *members):
        zset = self._data.get(key, {})
        removed = sum(1 for member in members if zset.pop(member, None) is not None)
        if key in self._data and not zset:
            del self._data[key]
        return removed

    async def zadd(self, key, mapping):
        self._check("zadd")
        return self._zadd(key, mapping)

    async def zrem(self, key, *members):
        self._check("zrem")
        return self._zrem(key, *members)

    async def zcard(self, key):
        self._check("zcard")
        return len(self._data.get(key, {}))

    async def zcount(self, key, low, high):
        self._check("zcount")
        return sum(1 for score in self._data.get(key, {}).values() if _in_range(score, low, high))

    async def zrangebyscore(self, key, low, high, start=None, num=None):
        self._check("zrangebyscore")
        items = sorted(self._data.get(key, {}).items(), key=lambda kv: (kv[1], kv[0]))
        members = [member for member, score in items if _in_range(score, low, high)]
        if start is not None and num is not None:
            members = members[start:start + num]
        return members

    async def zrevrange(self, key, start, end):
        self._check("zrevrange")
        items = sorted(self._data.get(key, {}).items(), key=lambda kv: (kv[1], kv[0]), reverse=True)
        members = [member for member, _ in items]
        return members[start:] if end == -1 else members[start:end + 1]

    # --- sets ------------------------------------------------------------------

    def _sadd(self, key, *members):
        current = self._data.setdefault(key, set())
        added = sum(1 for member in members if member not in current)
        current.update(members)
        return added

    async def sadd(self, key, *members):
        self._check("sadd")
        return self._sadd(key, *members)

    async def srem(self, key, *members):
        self._check("srem")
        current = self._data.get(key, set())
        removed = sum(1 for member in members if member in current)
        current.difference_update(members)
        return removed

    async def smembers(self, key):
        self._check("smembers")
        return set(self._data.get(key, set()))

    async def aclose(self):
        return None


class YieldingRedis(FakeRedis):
    """FakeRedis whose GET and SET hand control back to the event loop."""

    async def get(self, key):
        await asyncio.sleep(0)
        return await super().get(key)

    async def set(self, key, value, ex=None, px=None, nx=False):
        await asyncio.sleep(0)
        return await super().set(key, value, ex=ex, px=px, nx=nx)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_redis(clock):
    return FakeRedis(clock)


@pytest.fixture
def yielding_redis(clock):
    return YieldingRedis(clock)


@pytest.fixture
def config():
    return HmacConfig()


@pytest.fixture
def cipher():
    return FernetSecretCipher(FernetSecretCipher.generate_key())


@pytest.fixture
def credential_repository():
    return InMemoryCredentialRepository()


@pytest.fixture
def log_repository():
    return InMemoryRequestLogRepository()


@pytest.fixture
def make_manager(fake_redis, cipher, credential_repository, log_repository, clock):
    """Factory for managers on the shared fakes, with an optional config."""

    def _make(config: Optional[HmacConfig] = None) -> HmacManager:
        return HmacManager(
            config or HmacConfig(),
            fake_redis,
            cipher,
            credential_repository=credential_repository,
            log_repository=log_repository,
            clock=clock,
        )

    return _make


@pytest.fixture
def manager(make_manager, config):
    return make_manager(config)


@pytest.fixture
def signed_context(clock):
    """Factory for correctly signed RequestContext values."""

    def _make(
        client_id: str,
        secret: str,
        method: str = "POST",
        path: str = "/api/orders",
        body: bytes = b'{"amount": 100}',
        nonce: Optional[str] = None,
        timestamp: Optional[int] = None,
        ip_address: str = "203.0.113.7",
        extra_headers: Optional[Dict[str, str]] = None,
    ) -> RequestContext:
        headers = create_signed_headers(
            client_id,
            secret,
            method,
            path,
            body,
            timestamp=int(clock()) if timestamp is None else timestamp,
            nonce=nonce or generate_nonce(),
        )
        headers.update(extra_headers or {})
        return RequestContext(
            method=method,
            path=path,
            body=body,
            headers=headers,
            ip_address=ip_address,
            user_agent="pytest-agent",
        )

    return _make
