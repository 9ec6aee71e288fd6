"""
Rate Limit Models
=================
Data models for failure rate limiting.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class RateLimitResult(str, Enum):
    """Rate limit decision result."""
    ALLOWED = "allowed"
    BLOCKED = "blocked"


@dataclass
class RateLimitInfo:
    """Failure counter state for one client."""
    allowed: bool
    attempts: int
    limit: int
    retry_after: Optional[int] = None  # Seconds until the window decays

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.attempts)

    @property
    def result(self) -> RateLimitResult:
        return RateLimitResult.ALLOWED if self.allowed else RateLimitResult.BLOCKED
