"""
Cache Keys
==========
Namespaced key generation for every logical store on the shared cache.
"""

import hashlib


def hash_identifier(identifier: str) -> str:
    """Hash an identifier to prevent cache key injection."""
    return hashlib.blake2b(identifier.encode("utf-8"), digest_size=16).hexdigest()


class CacheKeys:
    """
    Key builder for one logical store.

    Keys look like "<redis_prefix><namespace>:<type>:<identifier>".
    """

    def __init__(self, redis_prefix: str, namespace: str):
        self.prefix = f"{redis_prefix}{namespace}"

    def key(self, key_type: str, identifier: str) -> str:
        return f"{self.prefix}:{key_type}:{identifier}"

    def hashed(self, key_type: str, identifier: str) -> str:
        return self.key(key_type, hash_identifier(identifier))

    def lock(self, identifier: str) -> str:
        return self.hashed("lock", identifier)

    def pattern(self, key_type: str = "") -> str:
        if key_type:
            return f"{self.prefix}:{key_type}:*"
        return f"{self.prefix}:*"
