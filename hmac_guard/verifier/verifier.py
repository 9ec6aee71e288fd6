"""
HMAC Verifier
=============
The ordered verification pipeline.

Checks run cheapest-first and stop at the first failure:

    headers -> body size -> IP block -> client rate limit -> nonce length
    -> timestamp window -> credential -> environment -> secret
    -> replay -> signature

Expected failures come back as VerificationResult values. Infrastructure
faults are logged and turned into fail-closed results.
"""

import inspect
import re
import time
from typing import TYPE_CHECKING, Callable, List, Optional

import structlog

from ..config import HmacConfig
from ..crypto import SecretCipher
from ..log import sanitize_for_log
from ..models import Credential, RequestContext, from_timestamp
from ..signature import SignaturePayload, sign, verify
from .listeners import VerificationListener
from .results import VerificationFailureReason, VerificationResult

if TYPE_CHECKING:
    from ..audit import RequestLogger
    from ..credentials import CredentialStore

logger = structlog.get_logger(__name__)

_UNIX_SECONDS = re.compile(r"^\d+$")

Reason = VerificationFailureReason


class HmacVerifier:
    """
    Verifies signed requests.

    Usage:
        verifier = HmacVerifier(config, store, nonce_store, limiter, request_logger, cipher)
        result = await verifier.verify(context)
        if not result.is_valid:
            return JSONResponse(result.to_response_body(), status_code=result.http_status)
    """

    def __init__(
        self,
        config: HmacConfig,
        credentials: "CredentialStore",
        nonce_store,
        rate_limiter,
        request_logger: "RequestLogger",
        cipher: SecretCipher,
        listeners: Optional[List[VerificationListener]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.credentials = credentials
        self.nonce_store = nonce_store
        self.rate_limiter = rate_limiter
        self.request_logger = request_logger
        self.cipher = cipher
        self.listeners: List[VerificationListener] = list(listeners or [])
        self._clock = clock

    def add_listener(self, listener: VerificationListener) -> None:
        self.listeners.append(listener)

    def is_timestamp_valid(self, timestamp: str) -> bool:
        if not _UNIX_SECONDS.match(timestamp):
            return False
        return abs(int(self._clock()) - int(timestamp)) <= self.config.timestamp_tolerance

    async def verify(self, context: RequestContext) -> VerificationResult:
        names = self.config.headers
        client_id = context.header(names.api_key) or ""
        signature = context.header(names.signature) or ""
        timestamp = context.header(names.timestamp) or ""
        nonce = context.header(names.nonce) or ""

        if not (client_id and signature and timestamp and nonce):
            return await self._fail(context, client_id, Reason.MISSING_HEADERS)

        body = context.body or b""
        if len(body) > self.config.max_body_size:
            return await self._fail(context, client_id, Reason.BODY_TOO_LARGE)

        if context.ip_address and await self._ip_blocked(context.ip_address):
            return await self._fail(context, client_id, Reason.IP_BLOCKED)

        if await self._rate_limited(client_id):
            return await self._fail(context, client_id, Reason.RATE_LIMITED)

        if len(nonce) < self.config.min_nonce_length:
            return await self._fail(context, client_id, Reason.INVALID_NONCE)

        if not self.is_timestamp_valid(timestamp):
            return await self._fail(context, client_id, Reason.INVALID_TIMESTAMP)

        try:
            credential = await self.credentials.find_active_usable(client_id)
        except Exception as e:
            logger.error(
                "credential_lookup_failed",
                client_id=sanitize_for_log(client_id),
                error=str(e),
            )
            # Lookup outage is not the client's fault; do not count it
            return await self._fail(
                context, client_id, Reason.INVALID_CLIENT_ID, count_failure=False
            )

        if credential is None:
            return await self._fail(context, client_id, Reason.INVALID_CLIENT_ID)

        if credential.is_expired(from_timestamp(self._clock())):
            return await self._fail(context, client_id, Reason.CREDENTIAL_EXPIRED, credential)

        if self.config.enforce_environment and not credential.matches_environment(
            self.config.app_environment
        ):
            logger.warning(
                "credential_environment_mismatch",
                client_id=sanitize_for_log(client_id),
                credential_environment=credential.environment.value,
                app_environment=self.config.app_environment,
            )
            return await self._fail(context, client_id, Reason.ENVIRONMENT_MISMATCH, credential)

        secret = credential.secret.reveal(self.cipher) if credential.secret else None
        if secret is None:
            logger.warning("credential_secret_unavailable", client_id=sanitize_for_log(client_id))
            return await self._fail(context, client_id, Reason.INVALID_SECRET, credential)

        if not await self._nonce_fresh(nonce):
            return await self._fail(context, client_id, Reason.DUPLICATE_NONCE, credential)

        if not self._signature_matches(context, body, timestamp, nonce, signature, secret, credential):
            return await self._fail(context, client_id, Reason.INVALID_SIGNATURE, credential)

        return await self._succeed(context, credential)

    # =========================================================================
    # Checks
    # =========================================================================

    async def _ip_blocked(self, ip_address: str) -> bool:
        try:
            return await self.request_logger.has_excessive_failures(ip_address)
        except Exception as e:
            logger.error("ip_block_check_failed", ip=ip_address, error=str(e))
            return True

    async def _rate_limited(self, client_id: str) -> bool:
        try:
            return await self.rate_limiter.is_limited(client_id)
        except Exception as e:
            logger.error(
                "rate_limit_check_failed",
                client_id=sanitize_for_log(client_id),
                error=str(e),
            )
            return True

    async def _nonce_fresh(self, nonce: str) -> bool:
        try:
            return await self.nonce_store.check_and_store(nonce)
        except Exception as e:
            # Freshness cannot be proven, so treat it as a replay
            logger.error("nonce_check_failed", error=str(e))
            return False

    def _signature_matches(
        self,
        context: RequestContext,
        body: bytes,
        timestamp: str,
        nonce: str,
        signature: str,
        secret: str,
        credential: Credential,
    ) -> bool:
        try:
            payload = SignaturePayload.from_request(
                context.method, context.path, body, timestamp, nonce
            )
        except ValueError:
            return False

        if verify(sign(payload, secret, credential.algorithm), signature):
            return True

        if credential.old_secret_in_grace(from_timestamp(self._clock())):
            old_secret = credential.old_secret.reveal(self.cipher)
            if old_secret is not None and verify(
                sign(payload, old_secret, credential.algorithm), signature
            ):
                logger.info(
                    "signature_verified_with_old_secret",
                    client_id=sanitize_for_log(credential.client_id),
                )
                return True

        return False

    # =========================================================================
    # Outcomes
    # =========================================================================

    async def _succeed(self, context: RequestContext, credential: Credential) -> VerificationResult:
        try:
            await self.credentials.mark_used(credential)
        except Exception as e:
            logger.error(
                "mark_used_failed",
                client_id=sanitize_for_log(credential.client_id),
                error=str(e),
            )

        await self.rate_limiter.reset(credential.client_id)
        await self.request_logger.log_success(context, credential)

        result = VerificationResult.success(credential)
        for listener in self.listeners:
            await self._notify(listener.on_success, context, credential)
        return result

    async def _fail(
        self,
        context: RequestContext,
        client_id: str,
        reason: VerificationFailureReason,
        credential: Optional[Credential] = None,
        count_failure: bool = True,
    ) -> VerificationResult:
        if count_failure and reason.should_increment_rate_limit and client_id:
            await self.rate_limiter.record_failure(client_id)

        await self.request_logger.log_failure(context, client_id, reason, credential)

        result = VerificationResult.failure(reason, credential)
        for listener in self.listeners:
            await self._notify(listener.on_failure, context, client_id, reason, credential)
        return result

    async def _notify(self, callback, *args) -> None:
        try:
            outcome = callback(*args)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.error(
                "verification_listener_failed",
                listener=getattr(callback, "__qualname__", repr(callback)),
                error=str(e),
            )
