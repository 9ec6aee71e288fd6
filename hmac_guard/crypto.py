"""
Secret Encryption
=================
Client secrets are held as ciphertext and only revealed on demand.

The cipher is an injected capability. FernetSecretCipher is the default
provider; anything with encrypt/decrypt methods can replace it.
"""

from dataclasses import dataclass
from typing import Optional, Protocol

import structlog
from cryptography.fernet import Fernet, InvalidToken, MultiFernet

from .exceptions import SecretDecryptionError

logger = structlog.get_logger(__name__)


class SecretCipher(Protocol):
    """Encrypts and decrypts secret material at rest."""

    def encrypt(self, plaintext: str) -> str:
        ...

    def decrypt(self, ciphertext: str) -> str:
        """Raise SecretDecryptionError when the ciphertext is invalid."""
        ...


class FernetSecretCipher:
    """
    Fernet (AES-128-CBC + HMAC-SHA256) cipher from the cryptography package.

    Accepts several keys through MultiFernet; the first encrypts, all are
    tried on decrypt so encryption keys can be rotated.
    """

    def __init__(self, *keys: str):
        if not keys:
            raise ValueError("At least one Fernet key is required")
        self._fernet = MultiFernet([Fernet(key) for key in keys])

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode("ascii")

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        try:
            return self._fernet.decrypt(ciphertext.encode("ascii")).decode("utf-8")
        except InvalidToken as e:
            raise SecretDecryptionError("Secret could not be decrypted with any configured key") from e

    def rotate(self, ciphertext: str) -> str:
        """Re-encrypt a token under the first key."""
        try:
            return self._fernet.rotate(ciphertext.encode("ascii")).decode("ascii")
        except InvalidToken as e:
            raise SecretDecryptionError("Secret could not be decrypted with any configured key") from e


@dataclass(frozen=True)
class SealedSecret:
    """
    Ciphertext-only secret value.

    The plaintext is never stored on this object; reveal() decrypts it
    through the supplied cipher and returns None on failure.
    """
    ciphertext: str

    @classmethod
    def seal(cls, plaintext: str, cipher: SecretCipher) -> "SealedSecret":
        return cls(ciphertext=cipher.encrypt(plaintext))

    def reveal(self, cipher: SecretCipher) -> Optional[str]:
        try:
            return cipher.decrypt(self.ciphertext)
        except (SecretDecryptionError, ValueError, UnicodeError) as e:
            logger.warning("secret_decryption_failed", error_type=type(e).__name__)
            return None

    def __repr__(self) -> str:
        return "SealedSecret(***)"
