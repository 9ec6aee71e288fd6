"""
Signature Codec
===============
HMAC signature computation and constant-time verification.
"""

import base64
import hmac
from typing import List, Optional, Union

from .algorithms import HmacAlgorithm
from .payload import SignaturePayload


def base64url_encode(data: bytes) -> str:
    """Base64url encode without '=' padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def base64url_decode(data: str) -> Optional[bytes]:
    """Decode unpadded base64url; None if the input is not valid."""
    padded = data + "=" * (-len(data) % 4)
    try:
        return base64.urlsafe_b64decode(padded.encode("ascii"))
    except (ValueError, UnicodeEncodeError):
        return None


def canonicalize(payload: SignaturePayload) -> str:
    """Canonical newline-joined signing string."""
    return payload.to_canonical_string()


def sign(
    payload: SignaturePayload,
    secret: str,
    algorithm: Union[str, HmacAlgorithm] = HmacAlgorithm.SHA256,
) -> str:
    """
    Compute the request signature.

    Unknown algorithm names fall back to the default (sha256).

    Args:
        payload: Payload to sign
        secret: Shared client secret
        algorithm: Digest name

    Returns:
        Base64url HMAC digest without padding
    """
    algo = HmacAlgorithm.try_from_string(algorithm) or HmacAlgorithm.default()
    digest = hmac.new(
        secret.encode("utf-8"),
        payload.to_canonical_bytes(),
        algo.digestmod,
    ).digest()
    return base64url_encode(digest)


def verify(expected: str, actual: str) -> bool:
    """
    Compare two signatures in constant time.

    Both sides go through hmac.compare_digest as bytes; there is no separate
    length or prefix check.
    """
    if not isinstance(expected, str) or not isinstance(actual, str):
        return False
    return hmac.compare_digest(
        expected.encode("utf-8", errors="surrogateescape"),
        actual.encode("utf-8", errors="surrogateescape"),
    )


def is_algorithm_supported(name: str) -> bool:
    return HmacAlgorithm.try_from_string(name) is not None


def supported_algorithms() -> List[str]:
    return HmacAlgorithm.supported_names()
