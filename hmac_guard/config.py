"""
HMAC Guard Configuration
========================
Immutable, validated configuration shared by every component.

Build it once at startup, either directly or from HMAC_* environment
variables, and pass the same instance to everything that needs it.
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from .exceptions import ConfigurationError
from .signature.algorithms import HmacAlgorithm

PRODUCTION_ENVIRONMENT = "production"

# Defaults
DEFAULT_TIMESTAMP_TOLERANCE = 300  # 5 minutes
DEFAULT_NONCE_TTL = 600  # 10 minutes
DEFAULT_MAX_BODY_SIZE = 1048576  # 1MB
DEFAULT_MIN_NONCE_LENGTH = 32
MIN_NONCE_LENGTH_FLOOR = 16


@dataclass(frozen=True)
class HeaderNames:
    """Names of the four request headers."""
    api_key: str = "X-Api-Key"
    signature: str = "X-Signature"
    timestamp: str = "X-Timestamp"
    nonce: str = "X-Nonce"


@dataclass(frozen=True)
class RateLimitSettings:
    """Per-client failure limiter settings."""
    enabled: bool = True
    max_attempts: int = 60
    decay_minutes: int = 1

    @property
    def decay_seconds(self) -> int:
        return self.decay_minutes * 60


@dataclass(frozen=True)
class IpBlockingSettings:
    """Settings for blocking IPs with many recent failures."""
    enabled: bool = True
    threshold: int = 10
    window_minutes: int = 10


@dataclass(frozen=True)
class TenancySettings:
    """Optional multi-tenancy column."""
    enabled: bool = False
    column: str = "tenant_id"


@dataclass(frozen=True)
class HmacConfig:
    """
    HMAC authentication configuration.

    Validation happens at construction; an invalid value raises
    ConfigurationError so misconfiguration fails at startup.
    """
    enabled: bool = True
    algorithm: str = "sha256"
    key_prefix: str = "hmac"
    app_environment: str = "local"
    timestamp_tolerance: int = DEFAULT_TIMESTAMP_TOLERANCE
    nonce_ttl: int = DEFAULT_NONCE_TTL
    min_nonce_length: int = DEFAULT_MIN_NONCE_LENGTH
    max_body_size: int = DEFAULT_MAX_BODY_SIZE
    client_id_length: int = 16  # bytes, hex encoded
    secret_length: int = 48  # bytes, base64url encoded
    enforce_environment: bool = True
    negative_cache_ttl: int = 60
    credential_cache_ttl: int = 60
    mark_used_debounce_seconds: int = 60
    lock_wait_seconds: float = 3.0
    lock_ttl_seconds: float = 10.0
    redis_prefix: str = "hmac:"
    nonce_fail_open: bool = False
    log_retention_days: int = 30
    headers: HeaderNames = field(default_factory=HeaderNames)
    rate_limit: RateLimitSettings = field(default_factory=RateLimitSettings)
    ip_blocking: IpBlockingSettings = field(default_factory=IpBlockingSettings)
    tenancy: TenancySettings = field(default_factory=TenancySettings)

    def __post_init__(self):
        if self.timestamp_tolerance <= 0:
            raise ConfigurationError("Timestamp tolerance must be positive")
        if self.max_body_size <= 0:
            raise ConfigurationError("Max body size must be positive")
        if self.min_nonce_length < MIN_NONCE_LENGTH_FLOOR:
            raise ConfigurationError(
                f"Min nonce length must be at least {MIN_NONCE_LENGTH_FLOOR}"
            )
        # A nonce must outlive every timestamp that could still be accepted
        if self.nonce_ttl < 2 * self.timestamp_tolerance:
            raise ConfigurationError(
                "Nonce TTL must be at least twice the timestamp tolerance"
            )
        if HmacAlgorithm.try_from_string(self.algorithm) is None:
            raise ConfigurationError(
                f"Unsupported algorithm '{self.algorithm}'. "
                f"Supported: {', '.join(HmacAlgorithm.supported_names())}"
            )
        if self.negative_cache_ttl <= 0 or self.credential_cache_ttl <= 0:
            raise ConfigurationError("Cache TTLs must be positive")
        if self.negative_cache_ttl > self.credential_cache_ttl:
            raise ConfigurationError(
                "Negative cache TTL must not exceed the credential cache TTL"
            )
        if self.lock_wait_seconds <= 0 or self.lock_ttl_seconds <= 0:
            raise ConfigurationError("Lock wait and TTL must be positive")
        if self.client_id_length < 1 or self.secret_length < 16:
            raise ConfigurationError(
                "Client ID length must be >= 1 and secret length >= 16 bytes"
            )
        if self.rate_limit.max_attempts < 1 or self.rate_limit.decay_minutes < 1:
            raise ConfigurationError("Rate limit attempts and decay must be >= 1")
        if self.ip_blocking.threshold < 1 or self.ip_blocking.window_minutes < 1:
            raise ConfigurationError("IP blocking threshold and window must be >= 1")
        if self.tenancy.enabled and not self.tenancy.column:
            raise ConfigurationError("Tenancy column must be set when tenancy is enabled")
        if self.log_retention_days < 1:
            raise ConfigurationError("Log retention must be at least one day")

    @property
    def is_production(self) -> bool:
        return self.app_environment == PRODUCTION_ENVIRONMENT

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "HmacConfig":
        """
        Build configuration from HMAC_* environment variables.

        Args:
            environ: Mapping to read instead of os.environ

        Returns:
            Validated HmacConfig
        """
        env = os.environ if environ is None else environ

        def _str(name: str, default: str) -> str:
            value = env.get(name)
            return value if value else default

        def _int(name: str, default: int) -> int:
            value = env.get(name)
            if value is None or value == "":
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{name} must be an integer, got '{value}'") from e

        def _float(name: str, default: float) -> float:
            value = env.get(name)
            if value is None or value == "":
                return default
            try:
                return float(value)
            except ValueError as e:
                raise ConfigurationError(f"{name} must be a number, got '{value}'") from e

        def _bool(name: str, default: bool) -> bool:
            value = env.get(name)
            if value is None or value == "":
                return default
            return value.strip().lower() in ("1", "true", "yes", "on")

        return cls(
            enabled=_bool("HMAC_AUTH_ENABLED", True),
            algorithm=_str("HMAC_ALGORITHM", "sha256"),
            key_prefix=_str("HMAC_KEY_PREFIX", "hmac"),
            app_environment=_str("APP_ENV", "local"),
            timestamp_tolerance=_int("HMAC_TIMESTAMP_TOLERANCE", DEFAULT_TIMESTAMP_TOLERANCE),
            nonce_ttl=_int("HMAC_NONCE_TTL", DEFAULT_NONCE_TTL),
            min_nonce_length=_int("HMAC_MIN_NONCE_LENGTH", DEFAULT_MIN_NONCE_LENGTH),
            max_body_size=_int("HMAC_MAX_BODY_SIZE", DEFAULT_MAX_BODY_SIZE),
            client_id_length=_int("HMAC_CLIENT_ID_LENGTH", 16),
            secret_length=_int("HMAC_SECRET_LENGTH", 48),
            enforce_environment=_bool("HMAC_ENFORCE_ENVIRONMENT", True),
            negative_cache_ttl=_int("HMAC_NEGATIVE_CACHE_TTL", 60),
            credential_cache_ttl=_int("HMAC_CREDENTIAL_CACHE_TTL", 60),
            mark_used_debounce_seconds=_int("HMAC_MARK_USED_DEBOUNCE", 60),
            lock_wait_seconds=_float("HMAC_LOCK_WAIT_SECONDS", 3.0),
            lock_ttl_seconds=_float("HMAC_LOCK_TTL_SECONDS", 10.0),
            redis_prefix=_str("HMAC_REDIS_PREFIX", "hmac:"),
            nonce_fail_open=_bool("HMAC_NONCE_FAIL_OPEN", False),
            log_retention_days=_int("HMAC_LOG_RETENTION_DAYS", 30),
            headers=HeaderNames(
                api_key=_str("HMAC_HEADER_API_KEY", "X-Api-Key"),
                signature=_str("HMAC_HEADER_SIGNATURE", "X-Signature"),
                timestamp=_str("HMAC_HEADER_TIMESTAMP", "X-Timestamp"),
                nonce=_str("HMAC_HEADER_NONCE", "X-Nonce"),
            ),
            rate_limit=RateLimitSettings(
                enabled=_bool("HMAC_RATE_LIMIT_ENABLED", True),
                max_attempts=_int("HMAC_RATE_LIMIT_ATTEMPTS", 60),
                decay_minutes=_int("HMAC_RATE_LIMIT_DECAY", 1),
            ),
            ip_blocking=IpBlockingSettings(
                enabled=_bool("HMAC_IP_BLOCKING_ENABLED", True),
                threshold=_int("HMAC_IP_FAILURE_THRESHOLD", 10),
                window_minutes=_int("HMAC_IP_FAILURE_WINDOW", 10),
            ),
            tenancy=TenancySettings(
                enabled=_bool("HMAC_TENANCY_ENABLED", False),
                column=_str("HMAC_TENANT_COLUMN", "tenant_id"),
            ),
        )
