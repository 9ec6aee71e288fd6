"""
Nonce Module
============
Replay protection stores.
"""

from .redis_store import NonceStore
from .in_memory import InMemoryNonceStore

__all__ = [
    "NonceStore",
    "InMemoryNonceStore",
]
