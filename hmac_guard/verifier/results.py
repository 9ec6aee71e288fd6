"""
Verification Results
====================
Failure reasons and the immutable outcome of one verification.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from ..models import Credential


class VerificationFailureReason(str, Enum):
    """Why a request was rejected."""
    MISSING_HEADERS = "missing_headers"
    INVALID_TIMESTAMP = "invalid_timestamp"
    BODY_TOO_LARGE = "body_too_large"
    IP_BLOCKED = "ip_blocked"
    RATE_LIMITED = "rate_limited"
    INVALID_NONCE = "invalid_nonce"
    DUPLICATE_NONCE = "duplicate_nonce"
    INVALID_CLIENT_ID = "invalid_client_id"
    CREDENTIAL_EXPIRED = "credential_expired"
    ENVIRONMENT_MISMATCH = "environment_mismatch"
    INVALID_SECRET = "invalid_secret"
    INVALID_SIGNATURE = "invalid_signature"

    @property
    def message(self) -> str:
        return _MESSAGES[self]

    @property
    def http_status(self) -> int:
        if self in (VerificationFailureReason.RATE_LIMITED, VerificationFailureReason.IP_BLOCKED):
            return 429
        if self is VerificationFailureReason.BODY_TOO_LARGE:
            return 413
        return 401

    @property
    def should_increment_rate_limit(self) -> bool:
        """Only failures that look like guessing count against the client."""
        return self in (
            VerificationFailureReason.INVALID_CLIENT_ID,
            VerificationFailureReason.ENVIRONMENT_MISMATCH,
            VerificationFailureReason.INVALID_SIGNATURE,
        )

    @property
    def code(self) -> str:
        return self.name


_MESSAGES = {
    VerificationFailureReason.MISSING_HEADERS: "Missing required headers",
    VerificationFailureReason.INVALID_TIMESTAMP: "Invalid or expired timestamp",
    VerificationFailureReason.BODY_TOO_LARGE: "Request body exceeds maximum size",
    VerificationFailureReason.IP_BLOCKED: "Too many failed attempts from this IP",
    VerificationFailureReason.RATE_LIMITED: "Rate limit exceeded",
    VerificationFailureReason.INVALID_NONCE: "Nonce too short",
    VerificationFailureReason.DUPLICATE_NONCE: "Duplicate nonce detected",
    VerificationFailureReason.INVALID_CLIENT_ID: "Invalid client ID",
    VerificationFailureReason.CREDENTIAL_EXPIRED: "API credential has expired",
    VerificationFailureReason.ENVIRONMENT_MISMATCH: "Credential environment mismatch",
    VerificationFailureReason.INVALID_SECRET: "Invalid client secret",
    VerificationFailureReason.INVALID_SIGNATURE: "Invalid signature",
}


@dataclass(frozen=True)
class VerificationResult:
    """
    Outcome of verifying one request.

    Build with VerificationResult.success() or VerificationResult.failure().
    """
    is_valid: bool
    credential: Optional[Credential] = None
    failure_reason: Optional[VerificationFailureReason] = None

    @classmethod
    def success(cls, credential: Credential) -> "VerificationResult":
        return cls(is_valid=True, credential=credential)

    @classmethod
    def failure(
        cls,
        reason: VerificationFailureReason,
        credential: Optional[Credential] = None,
    ) -> "VerificationResult":
        return cls(is_valid=False, credential=credential, failure_reason=reason)

    @property
    def http_status(self) -> int:
        if self.is_valid:
            return 200
        return self.failure_reason.http_status

    @property
    def should_increment_rate_limit(self) -> bool:
        return not self.is_valid and self.failure_reason.should_increment_rate_limit

    @property
    def error_message(self) -> Optional[str]:
        return None if self.is_valid else self.failure_reason.message

    def to_response_body(self) -> Dict[str, Any]:
        """JSON body for a rejected request."""
        return {
            "success": False,
            "message": self.error_message,
            "code": self.failure_reason.code if self.failure_reason else None,
            "data": None,
        }
