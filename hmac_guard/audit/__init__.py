"""
Audit Module
============
Request logging, failure tracking and IP blocking queries.
"""

from .logger import BlockedIp, RequestLogger, MAX_LOGGED_LENGTH, UNKNOWN_IP

__all__ = [
    "RequestLogger",
    "BlockedIp",
    "MAX_LOGGED_LENGTH",
    "UNKNOWN_IP",
]
