"""
Cache Module
============
Key namespacing, Redis failure handling and the distributed lock.
"""

from .keys import CacheKeys, hash_identifier
from .lock import DistributedLock, LockTimeout, RELEASE_LOCK_SCRIPT
from .redis_ops import execute_redis_operation

__all__ = [
    "CacheKeys",
    "hash_identifier",
    "DistributedLock",
    "LockTimeout",
    "RELEASE_LOCK_SCRIPT",
    "execute_redis_operation",
]
