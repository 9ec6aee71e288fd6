"""
Signature Module
================
Canonical payloads, HMAC signing and constant-time verification.
"""

from .algorithms import HmacAlgorithm
from .payload import SignaturePayload, normalize_path
from .codec import (
    base64url_encode,
    base64url_decode,
    canonicalize,
    sign,
    verify,
    is_algorithm_supported,
    supported_algorithms,
)
from .headers import create_signed_headers, generate_nonce

__all__ = [
    # Algorithms
    "HmacAlgorithm",
    # Payload
    "SignaturePayload",
    "normalize_path",
    # Codec
    "base64url_encode",
    "base64url_decode",
    "canonicalize",
    "sign",
    "verify",
    "is_algorithm_supported",
    "supported_algorithms",
    # Headers
    "create_signed_headers",
    "generate_nonce",
]
