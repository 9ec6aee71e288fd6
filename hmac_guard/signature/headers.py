"""
Header Functions
================
Client-side helpers for producing signed request headers.
"""

import secrets
import time
from typing import Dict, Optional, Union

from .algorithms import HmacAlgorithm
from .codec import sign
from .payload import SignaturePayload


def generate_nonce(num_bytes: int = 16) -> str:
    """Generate a random hex nonce (32 characters by default)."""
    return secrets.token_hex(num_bytes)


def create_signed_headers(
    client_id: str,
    secret: str,
    method: str,
    path: str,
    body: Union[bytes, str] = b"",
    algorithm: Union[str, HmacAlgorithm] = HmacAlgorithm.SHA256,
    timestamp: Optional[int] = None,
    nonce: Optional[str] = None,
    api_key_header: str = "X-Api-Key",
    signature_header: str = "X-Signature",
    timestamp_header: str = "X-Timestamp",
    nonce_header: str = "X-Nonce",
) -> Dict[str, str]:
    """
    Create headers for a signed request.

    Args:
        client_id: Public client identifier
        secret: Client secret
        method: HTTP method
        path: Request path (normalized before signing)
        body: Raw request body
        algorithm: Digest name
        timestamp: Unix seconds, defaults to now
        nonce: Request nonce, defaults to a fresh random token

    Returns:
        Dictionary of headers to include in the request
    """
    ts = str(int(time.time()) if timestamp is None else timestamp)
    request_nonce = nonce or generate_nonce()
    payload = SignaturePayload.from_request(method, path, body, ts, request_nonce)

    return {
        api_key_header: client_id,
        signature_header: sign(payload, secret, algorithm),
        timestamp_header: ts,
        nonce_header: request_nonce,
    }
