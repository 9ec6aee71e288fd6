"""
Storage Interfaces
==================
Persistence contracts for credentials and request logs.

Any key-value store can back these; the package ships in-memory and
Redis implementations.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from ..models import Credential, RequestLogEntry


class CredentialRepository(Protocol):
    """Backing store for credentials (no caching)."""

    async def get_by_client_id(self, client_id: str) -> Optional[Credential]:
        ...

    async def get_by_id(self, credential_id: str) -> Optional[Credential]:
        ...

    async def create(self, credential: Credential) -> Credential:
        """Raise ValueError if client_id is already taken."""
        ...

    async def update(self, credential: Credential, changes: Dict[str, Any]) -> Credential:
        """Apply changes in one write and return the stored result."""
        ...

    async def delete(self, credential: Credential) -> bool:
        ...

    async def list_all(self) -> List[Credential]:
        ...


class RequestLogRepository(Protocol):
    """Append-only attempt log with failure-count queries."""

    async def create(self, entry: RequestLogEntry) -> RequestLogEntry:
        ...

    async def count_failed_by_ip(self, ip_address: str, since: datetime) -> int:
        ...

    async def count_failed_by_client(self, client_id: str, since: datetime) -> int:
        ...

    async def failed_counts_by_ip(self, since: datetime) -> Dict[str, int]:
        ...

    async def delete_failed_by_ip(self, ip_address: str, since: datetime) -> int:
        ...

    async def delete_batch_older_than(self, cutoff: datetime, limit: int) -> int:
        """Delete at most `limit` entries created before cutoff."""
        ...

    async def recent_for_client(self, client_id: str, limit: int = 100) -> List[RequestLogEntry]:
        ...
