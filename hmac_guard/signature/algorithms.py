"""
HMAC Algorithms
===============
The closed set of supported HMAC digests.
"""

import hashlib
from enum import Enum
from typing import Callable, List, Optional


class HmacAlgorithm(str, Enum):
    """Supported HMAC digest algorithms."""
    SHA256 = "sha256"
    SHA384 = "sha384"
    SHA512 = "sha512"

    @property
    def digestmod(self) -> Callable:
        return getattr(hashlib, self.value)

    @property
    def hash_length(self) -> int:
        """Digest length in bytes."""
        return {
            HmacAlgorithm.SHA256: 32,
            HmacAlgorithm.SHA384: 48,
            HmacAlgorithm.SHA512: 64,
        }[self]

    @classmethod
    def try_from_string(cls, name: Optional[str]) -> Optional["HmacAlgorithm"]:
        """Case-insensitive lookup; None for unknown names."""
        if not isinstance(name, str):
            return None
        try:
            return cls(name.strip().lower())
        except ValueError:
            return None

    @classmethod
    def default(cls) -> "HmacAlgorithm":
        return cls.SHA256

    @classmethod
    def supported_names(cls) -> List[str]:
        return [algorithm.value for algorithm in cls]
