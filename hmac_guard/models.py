"""
Credential Models
=================
Data models for API credentials.
"""

from dataclasses import dataclass, field, replace, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from .crypto import SealedSecret
from .config import PRODUCTION_ENVIRONMENT


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def from_timestamp(seconds: float) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


class Environment(str, Enum):
    """Environment a credential is minted for."""
    PRODUCTION = "production"
    TESTING = "testing"

    @classmethod
    def is_valid(cls, value: str) -> bool:
        return value in {env.value for env in cls}

    @classmethod
    def for_app_environment(cls, app_environment: str) -> "Environment":
        """Production deployments need production credentials; all others testing."""
        if app_environment == PRODUCTION_ENVIRONMENT:
            return cls.PRODUCTION
        return cls.TESTING


def _dt_to_str(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _dt_from_str(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class Credential:
    """
    An API consumer's signing identity.

    Secrets are SealedSecret values (ciphertext only). A credential is
    usable iff it is active and not past expires_at.
    """
    id: str
    client_id: str
    secret: Optional[SealedSecret]
    algorithm: str = "sha256"
    environment: Environment = Environment.TESTING
    is_active: bool = True
    expires_at: Optional[datetime] = None
    old_secret: Optional[SealedSecret] = None
    old_secret_expires_at: Optional[datetime] = None
    tenant_id: Optional[str] = None
    last_used_at: Optional[datetime] = None
    created_by: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        return self.expires_at is not None and self.expires_at <= now

    def is_usable(self, now: Optional[datetime] = None) -> bool:
        return self.is_active and not self.is_expired(now)

    def old_secret_in_grace(self, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        return (
            self.old_secret is not None
            and self.old_secret_expires_at is not None
            and now < self.old_secret_expires_at
        )

    def matches_environment(self, app_environment: str) -> bool:
        return self.environment == Environment.for_app_environment(app_environment)

    @property
    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION

    def with_changes(self, **changes: Any) -> "Credential":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for cache/storage. Secrets stay encrypted."""
        return {
            "id": self.id,
            "client_id": self.client_id,
            "secret": self.secret.ciphertext if self.secret else None,
            "algorithm": self.algorithm,
            "environment": self.environment.value,
            "is_active": self.is_active,
            "expires_at": _dt_to_str(self.expires_at),
            "old_secret": self.old_secret.ciphertext if self.old_secret else None,
            "old_secret_expires_at": _dt_to_str(self.old_secret_expires_at),
            "tenant_id": self.tenant_id,
            "last_used_at": _dt_to_str(self.last_used_at),
            "created_by": self.created_by,
            "created_at": _dt_to_str(self.created_at),
            "updated_at": _dt_to_str(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Credential":
        return cls(
            id=data["id"],
            client_id=data["client_id"],
            secret=SealedSecret(data["secret"]) if data.get("secret") else None,
            algorithm=data.get("algorithm") or "sha256",
            environment=Environment(data.get("environment", Environment.TESTING.value)),
            is_active=bool(data.get("is_active", True)),
            expires_at=_dt_from_str(data.get("expires_at")),
            old_secret=SealedSecret(data["old_secret"]) if data.get("old_secret") else None,
            old_secret_expires_at=_dt_from_str(data.get("old_secret_expires_at")),
            tenant_id=data.get("tenant_id"),
            last_used_at=_dt_from_str(data.get("last_used_at")),
            created_by=data.get("created_by"),
            created_at=_dt_from_str(data.get("created_at")) or utcnow(),
            updated_at=_dt_from_str(data.get("updated_at")) or utcnow(),
        )


@dataclass(frozen=True)
class GeneratedCredential:
    """A freshly minted credential plus its plaintext secret (show ONCE)."""
    credential: Credential
    plain_secret: str

    @property
    def client_id(self) -> str:
        return self.credential.client_id


@dataclass(frozen=True)
class RotatedSecret:
    """Result of a secret rotation."""
    credential: Credential
    plain_secret: str
    old_secret_expires_at: datetime


@dataclass(frozen=True)
class RequestLogEntry:
    """A single authentication attempt."""
    id: str
    client_id: str
    request_method: str
    request_path: str
    ip_address: str
    signature_valid: bool
    response_status: int
    created_at: datetime
    credential_id: Optional[str] = None
    user_agent: Optional[str] = None
    failure_reason: Optional[str] = None
    tenant_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["created_at"] = self.created_at.isoformat()
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RequestLogEntry":
        values = dict(data)
        values["created_at"] = _dt_from_str(values["created_at"])
        return cls(**values)


@dataclass(frozen=True)
class RequestContext:
    """
    The parts of an inbound request the verifier and request log need.

    Framework adapters build this; header lookup is case-insensitive.
    """
    method: str
    path: str
    body: bytes = b""
    headers: Mapping[str, str] = field(default_factory=dict)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    def header(self, name: str) -> Optional[str]:
        value = self.headers.get(name)
        if value is not None:
            return value
        lowered = name.lower()
        for key, candidate in self.headers.items():
            if key.lower() == lowered:
                return candidate
        return None
