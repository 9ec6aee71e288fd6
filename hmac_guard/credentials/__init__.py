"""
Credentials Module
==================
Cached credential store and administrative service.
"""

from .store import CredentialStore, NOT_FOUND_MARKER, MIN_SEARCH_TERM_LENGTH
from .service import CredentialService

__all__ = [
    "CredentialStore",
    "CredentialService",
    "NOT_FOUND_MARKER",
    "MIN_SEARCH_TERM_LENGTH",
]
