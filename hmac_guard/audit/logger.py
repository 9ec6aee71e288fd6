"""
Request Logger
==============
Records every authentication attempt and answers "too many failures"
questions for IP blocking.

Usage:
    request_logger = RequestLogger(repository, config)

    await request_logger.log_failure(context, client_id, reason)
    if await request_logger.has_excessive_failures(ip):
        ...
"""

import time
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, List, Optional

import structlog

from ..config import HmacConfig
from ..log import sanitize_for_log, truncate
from ..models import Credential, RequestContext, RequestLogEntry, from_timestamp
from ..storage.base import RequestLogRepository
from ..tenancy import TenancyScope, build_tenancy_scope
from ..verifier.results import VerificationFailureReason

logger = structlog.get_logger(__name__)

MAX_LOGGED_LENGTH = 500
UNKNOWN_IP = "0.0.0.0"


@dataclass(frozen=True)
class BlockedIp:
    """An IP over the failure threshold."""
    ip_address: str
    failed_attempts: int


class RequestLogger:
    """
    Append-only request log plus failure queries.

    Writes never raise: a failed write is logged and the request carries
    on. Read queries propagate errors so the caller can fail closed.
    """

    def __init__(
        self,
        repository: RequestLogRepository,
        config: HmacConfig,
        tenancy: Optional[TenancyScope] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.repository = repository
        self.config = config
        self.tenancy = tenancy or build_tenancy_scope(config)
        self._clock = clock

    def _now(self):
        return from_timestamp(self._clock())

    def _since(self, window_minutes: int):
        return self._now() - timedelta(minutes=window_minutes)

    def _build_entry(
        self,
        context: RequestContext,
        client_id: str,
        signature_valid: bool,
        response_status: int,
        credential: Optional[Credential],
        failure_reason: Optional[VerificationFailureReason],
    ) -> RequestLogEntry:
        return RequestLogEntry(
            id=uuid.uuid4().hex,
            client_id=client_id,
            request_method=context.method.upper(),
            request_path=truncate(context.path, MAX_LOGGED_LENGTH, suffix=""),
            ip_address=context.ip_address or UNKNOWN_IP,
            signature_valid=signature_valid,
            response_status=response_status,
            created_at=self._now(),
            credential_id=credential.id if credential else None,
            user_agent=truncate(context.user_agent, MAX_LOGGED_LENGTH, suffix=""),
            failure_reason=failure_reason.value if failure_reason else None,
            tenant_id=self.tenancy.tenant_of(credential),
        )

    async def _write(self, entry: RequestLogEntry) -> Optional[RequestLogEntry]:
        try:
            return await self.repository.create(entry)
        except Exception as e:
            logger.error(
                "request_log_write_failed",
                client_id=sanitize_for_log(entry.client_id),
                error=str(e),
            )
            return None

    async def log_success(
        self,
        context: RequestContext,
        credential: Credential,
    ) -> Optional[RequestLogEntry]:
        entry = self._build_entry(context, credential.client_id, True, 200, credential, None)
        return await self._write(entry)

    async def log_failure(
        self,
        context: RequestContext,
        client_id: str,
        reason: VerificationFailureReason,
        credential: Optional[Credential] = None,
    ) -> Optional[RequestLogEntry]:
        entry = self._build_entry(
            context, client_id or "", False, reason.http_status, credential, reason
        )
        logger.warning(
            "hmac_authentication_failed",
            client_id=sanitize_for_log(client_id),
            reason=reason.value,
            ip=entry.ip_address,
            path=entry.request_path,
        )
        return await self._write(entry)

    async def has_excessive_failures(
        self,
        ip_address: str,
        threshold: Optional[int] = None,
        window_minutes: Optional[int] = None,
    ) -> bool:
        """True when this IP is over the failure threshold. A missing IP is never blocked."""
        settings = self.config.ip_blocking
        if not settings.enabled or not ip_address:
            return False
        threshold = settings.threshold if threshold is None else threshold
        window_minutes = settings.window_minutes if window_minutes is None else window_minutes
        count = await self.repository.count_failed_by_ip(ip_address, self._since(window_minutes))
        return count >= threshold

    async def has_excessive_client_failures(
        self,
        client_id: str,
        threshold: Optional[int] = None,
        window_minutes: Optional[int] = None,
    ) -> bool:
        settings = self.config.ip_blocking
        threshold = settings.threshold if threshold is None else threshold
        window_minutes = settings.window_minutes if window_minutes is None else window_minutes
        count = await self.repository.count_failed_by_client(
            client_id, self._since(window_minutes)
        )
        return count >= threshold

    async def blocked_ips(
        self,
        threshold: Optional[int] = None,
        window_minutes: Optional[int] = None,
    ) -> List[BlockedIp]:
        """IPs currently over the threshold, most failures first."""
        settings = self.config.ip_blocking
        threshold = settings.threshold if threshold is None else threshold
        window_minutes = settings.window_minutes if window_minutes is None else window_minutes
        counts = await self.repository.failed_counts_by_ip(self._since(window_minutes))
        blocked = [
            BlockedIp(ip_address=ip, failed_attempts=count)
            for ip, count in counts.items()
            if count >= threshold and ip != UNKNOWN_IP
        ]
        blocked.sort(key=lambda b: (-b.failed_attempts, b.ip_address))
        return blocked

    async def clear_failures_for_ip(
        self,
        ip_address: str,
        window_minutes: Optional[int] = None,
    ) -> int:
        """Unblock an IP by deleting its failures inside the window."""
        if window_minutes is None:
            window_minutes = self.config.ip_blocking.window_minutes
        deleted = await self.repository.delete_failed_by_ip(
            ip_address, self._since(window_minutes)
        )
        logger.info("ip_unblocked", ip=ip_address, deleted=deleted)
        return deleted

    async def purge_older_than(self, days: Optional[int] = None, batch_size: int = 1000) -> int:
        """
        Delete entries older than `days` (default: log_retention_days).

        Deletes in batches of at most batch_size; running it twice is
        harmless.

        Returns:
            Number of entries deleted
        """
        if days is None:
            days = self.config.log_retention_days
        if days < 0:
            raise ValueError("days must be >= 0")
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")

        cutoff = self._now() - timedelta(days=days)
        total = 0
        while True:
            deleted = await self.repository.delete_batch_older_than(cutoff, batch_size)
            total += deleted
            if deleted < batch_size:
                break

        logger.info("request_logs_purged", days=days, deleted=total)
        return total

    async def recent_for_client(self, client_id: str, limit: int = 100) -> List[RequestLogEntry]:
        return await self.repository.recent_for_client(client_id, limit)
