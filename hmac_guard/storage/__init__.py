"""
Storage Module
==============
Credential and request-log repositories.
"""

from .base import CredentialRepository, RequestLogRepository
from .memory import InMemoryCredentialRepository, InMemoryRequestLogRepository
from .redis_store import RedisCredentialRepository, RedisRequestLogRepository

__all__ = [
    # Interfaces
    "CredentialRepository",
    "RequestLogRepository",
    # In-memory
    "InMemoryCredentialRepository",
    "InMemoryRequestLogRepository",
    # Redis
    "RedisCredentialRepository",
    "RedisRequestLogRepository",
]
