"""
In-Memory Storage
=================
Process-local repositories for development and testing.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from ..models import Credential, RequestLogEntry, utcnow


class InMemoryCredentialRepository:
    """Dictionary-backed credential repository."""

    def __init__(self):
        self._by_id: Dict[str, Credential] = {}
        self._id_by_client: Dict[str, str] = {}
        self.reads = 0

    async def get_by_client_id(self, client_id: str) -> Optional[Credential]:
        self.reads += 1
        credential_id = self._id_by_client.get(client_id)
        return self._by_id.get(credential_id) if credential_id else None

    async def get_by_id(self, credential_id: str) -> Optional[Credential]:
        return self._by_id.get(credential_id)

    async def create(self, credential: Credential) -> Credential:
        if credential.client_id in self._id_by_client:
            raise ValueError(f"Client ID already exists: {credential.client_id}")
        self._by_id[credential.id] = credential
        self._id_by_client[credential.client_id] = credential.id
        return credential

    async def update(self, credential: Credential, changes: Dict[str, Any]) -> Credential:
        current = self._by_id.get(credential.id)
        if current is None:
            raise LookupError(f"Unknown credential {credential.id}")

        new_client_id = changes.get("client_id")
        if new_client_id and new_client_id != current.client_id:
            if new_client_id in self._id_by_client:
                raise ValueError(f"Client ID already exists: {new_client_id}")
            del self._id_by_client[current.client_id]
            self._id_by_client[new_client_id] = current.id

        updated = current.with_changes(**changes, updated_at=utcnow())
        self._by_id[current.id] = updated
        return updated

    async def delete(self, credential: Credential) -> bool:
        current = self._by_id.pop(credential.id, None)
        if current is None:
            return False
        self._id_by_client.pop(current.client_id, None)
        return True

    async def list_all(self) -> List[Credential]:
        return list(self._by_id.values())


class InMemoryRequestLogRepository:
    """List-backed request log."""

    def __init__(self):
        self._entries: List[RequestLogEntry] = []

    @property
    def entries(self) -> List[RequestLogEntry]:
        return list(self._entries)

    async def create(self, entry: RequestLogEntry) -> RequestLogEntry:
        self._entries.append(entry)
        return entry

    def _failed_since(self, since: datetime) -> List[RequestLogEntry]:
        return [e for e in self._entries if not e.signature_valid and e.created_at >= since]

    async def count_failed_by_ip(self, ip_address: str, since: datetime) -> int:
        return sum(1 for e in self._failed_since(since) if e.ip_address == ip_address)

    async def count_failed_by_client(self, client_id: str, since: datetime) -> int:
        return sum(1 for e in self._failed_since(since) if e.client_id == client_id)

    async def failed_counts_by_ip(self, since: datetime) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for entry in self._failed_since(since):
            counts[entry.ip_address] = counts.get(entry.ip_address, 0) + 1
        return counts

    async def delete_failed_by_ip(self, ip_address: str, since: datetime) -> int:
        doomed = {
            e.id for e in self._failed_since(since) if e.ip_address == ip_address
        }
        self._entries = [e for e in self._entries if e.id not in doomed]
        return len(doomed)

    async def delete_batch_older_than(self, cutoff: datetime, limit: int) -> int:
        doomed = [e.id for e in self._entries if e.created_at < cutoff][:limit]
        doomed_ids = set(doomed)
        self._entries = [e for e in self._entries if e.id not in doomed_ids]
        return len(doomed)

    async def recent_for_client(self, client_id: str, limit: int = 100) -> List[RequestLogEntry]:
        matches = [e for e in self._entries if e.client_id == client_id]
        matches.sort(key=lambda e: e.created_at, reverse=True)
        return matches[:limit]
