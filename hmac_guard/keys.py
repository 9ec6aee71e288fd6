"""
Key Generation
==============
Cryptographically secure client ID, secret and nonce generation.
"""

import secrets
from typing import Union

from .config import HmacConfig
from .models import Environment
from .signature.codec import base64url_encode


class SecureKeyGenerator:
    """
    Mints client IDs and secrets.

    Client IDs look like "<key_prefix>_live_<hex>" for production and
    "<key_prefix>_test_<hex>" for testing.
    """

    def __init__(self, config: HmacConfig):
        self.config = config

    def generate_client_id(self, environment: Union[str, Environment]) -> str:
        env = Environment(environment)
        mode = "live" if env == Environment.PRODUCTION else "test"
        random_part = secrets.token_hex(max(1, self.config.client_id_length))
        return f"{self.config.key_prefix}_{mode}_{random_part}"

    def generate_client_secret(self) -> str:
        """Random secret; 48 bytes gives 64 base64url characters."""
        return base64url_encode(secrets.token_bytes(max(1, self.config.secret_length)))

    def generate_nonce(self) -> str:
        return secrets.token_hex(16)


def mask_client_id(client_id: str) -> str:
    """
    Mask a client ID for safe display.

    Args:
        client_id: Full client ID

    Returns:
        Masked ID (e.g., "hmac_live_ab12****")
    """
    if "_" not in client_id:
        return "****"

    prefix, random_part = client_id.rsplit("_", 1)
    if len(random_part) > 8:
        masked = random_part[:4] + "****"
    else:
        masked = "****"

    return f"{prefix}_{masked}"
