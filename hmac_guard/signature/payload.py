"""
Signature Payload
=================
The exact five fields that are signed, and their canonical form.
"""

import re
from dataclasses import dataclass
from typing import Union

_REPEATED_SLASHES = re.compile(r"/+")


def normalize_path(path: str) -> str:
    """
    Normalize a URL path so equivalent spellings sign identically.

    Collapses repeated slashes, strips the trailing slash and ensures a
    single leading slash. The root path stays "/".

    Args:
        path: Raw request path

    Returns:
        Normalized path
    """
    collapsed = _REPEATED_SLASHES.sub("/", path)
    trimmed = collapsed.strip("/")
    return "/" if trimmed == "" else f"/{trimmed}"


def _as_text(body: Union[bytes, str, None]) -> str:
    if body is None:
        return ""
    if isinstance(body, bytes):
        # surrogateescape keeps arbitrary bytes round-trippable
        return body.decode("utf-8", errors="surrogateescape")
    return body


@dataclass(frozen=True)
class SignaturePayload:
    """
    HMAC signature payload.

    Raises ValueError when method, path, timestamp or nonce is empty.
    """
    method: str
    path: str
    body: str
    timestamp: str
    nonce: str

    def __post_init__(self):
        if not self.method or not self.path or not self.timestamp or not self.nonce:
            raise ValueError("Payload fields cannot be empty")

    @classmethod
    def from_request(
        cls,
        method: str,
        path: str,
        body: Union[bytes, str, None],
        timestamp: str,
        nonce: str,
    ) -> "SignaturePayload":
        """Build a payload from raw request parts, normalizing method and path."""
        return cls(
            method=method.upper(),
            path=normalize_path(path) if path else "",
            body=_as_text(body),
            timestamp=timestamp,
            nonce=nonce,
        )

    def to_canonical_string(self) -> str:
        return "\n".join((self.method, self.path, self.body, self.timestamp, self.nonce))

    def to_canonical_bytes(self) -> bytes:
        return self.to_canonical_string().encode("utf-8", errors="surrogateescape")

    @property
    def body_size(self) -> int:
        return len(self.body.encode("utf-8", errors="surrogateescape"))
