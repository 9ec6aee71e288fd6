"""
Rate Limiting Module
====================
Per-client authentication failure limiters.
"""

from .models import RateLimitResult, RateLimitInfo
from .redis_limiter import FailureRateLimiter
from .in_memory import InMemoryFailureRateLimiter

__all__ = [
    # Models
    "RateLimitResult",
    "RateLimitInfo",
    # Limiters
    "FailureRateLimiter",
    "InMemoryFailureRateLimiter",
]
