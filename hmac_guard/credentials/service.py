"""
Credential Service
==================
Administrative credential operations: generate, rotate, regenerate
client IDs, (de)activate, set expiration and delete.

Plaintext secrets exist only in the returned GeneratedCredential /
RotatedSecret values; they are sealed before anything is persisted.
"""

import time
import uuid
from datetime import datetime, timedelta
from typing import Optional, Union

import structlog

from ..config import HmacConfig
from ..crypto import SealedSecret, SecretCipher
from ..exceptions import CredentialNotFoundError
from ..keys import SecureKeyGenerator, mask_client_id
from ..models import Credential, Environment, GeneratedCredential, RotatedSecret, from_timestamp
from ..signature import HmacAlgorithm
from .store import CredentialStore

logger = structlog.get_logger(__name__)

MAX_CLIENT_ID_ATTEMPTS = 5


class CredentialService:
    """Credential lifecycle management."""

    def __init__(
        self,
        store: CredentialStore,
        cipher: SecretCipher,
        config: HmacConfig,
        key_generator: Optional[SecureKeyGenerator] = None,
        clock=time.time,
    ):
        self.store = store
        self.cipher = cipher
        self.config = config
        self.key_generator = key_generator or SecureKeyGenerator(config)
        self._clock = clock

    def _now(self) -> datetime:
        return from_timestamp(self._clock())

    async def get(self, client_id: str) -> Credential:
        credential = await self.store.find_by_client_id(client_id)
        if credential is None:
            raise CredentialNotFoundError(client_id)
        return credential

    async def generate(
        self,
        environment: Union[str, Environment] = Environment.TESTING,
        expires_at: Optional[datetime] = None,
        tenant_id: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> GeneratedCredential:
        """
        Mint a new credential.

        Args:
            environment: "production" or "testing"
            expires_at: Optional expiry
            tenant_id: Owning tenant (ignored when tenancy is disabled)
            created_by: Who requested it, for the audit trail

        Returns:
            The stored credential and its plaintext secret (show it once)

        Raises:
            ValueError: Unknown environment
        """
        env_value = getattr(environment, "value", environment)
        if not Environment.is_valid(env_value):
            valid = ", ".join(e.value for e in Environment)
            raise ValueError(f"Invalid environment: {env_value}. Valid values: {valid}")
        env = Environment(env_value)

        plain_secret = self.key_generator.generate_client_secret()
        now = self._now()
        credential = Credential(
            id=uuid.uuid4().hex,
            client_id=self.key_generator.generate_client_id(env),
            secret=SealedSecret.seal(plain_secret, self.cipher),
            algorithm=HmacAlgorithm.try_from_string(self.config.algorithm).value,
            environment=env,
            is_active=True,
            expires_at=expires_at,
            tenant_id=tenant_id if self.config.tenancy.enabled else None,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        credential = await self._create_with_unique_client_id(credential, env)

        logger.info(
            "credential_generated",
            client_id=mask_client_id(credential.client_id),
            environment=env.value,
            created_by=created_by,
        )
        return GeneratedCredential(credential=credential, plain_secret=plain_secret)

    async def _create_with_unique_client_id(self, credential: Credential, env: Environment) -> Credential:
        attempts = 0
        while True:
            try:
                return await self.store.create(credential)
            except ValueError:
                attempts += 1
                if attempts >= MAX_CLIENT_ID_ATTEMPTS:
                    raise
                credential = credential.with_changes(
                    client_id=self.key_generator.generate_client_id(env)
                )

    async def rotate_secret(self, credential: Credential, grace_days: int = 7) -> RotatedSecret:
        """
        Issue a new secret. The current one keeps working for grace_days.

        Raises:
            ValueError: grace_days is negative
        """
        if grace_days < 0:
            raise ValueError("grace_days must be >= 0")

        plain_secret = self.key_generator.generate_client_secret()
        updated = await self.store.rotate_secret(
            credential,
            SealedSecret.seal(plain_secret, self.cipher),
            grace_days=grace_days,
        )
        logger.info(
            "credential_secret_rotated",
            client_id=mask_client_id(updated.client_id),
            grace_days=grace_days,
        )
        return RotatedSecret(
            credential=updated,
            plain_secret=plain_secret,
            old_secret_expires_at=updated.old_secret_expires_at,
        )

    async def regenerate_client_id(self, credential: Credential) -> Credential:
        """Replace the client ID; the old ID stops resolving immediately."""
        new_client_id = self.key_generator.generate_client_id(credential.environment)
        updated = await self.store.update(credential, client_id=new_client_id)
        logger.info(
            "credential_client_id_regenerated",
            old_client_id=mask_client_id(credential.client_id),
            client_id=mask_client_id(updated.client_id),
        )
        return updated

    async def activate(self, credential: Credential) -> Credential:
        return await self.store.activate(credential)

    async def deactivate(self, credential: Credential) -> Credential:
        updated = await self.store.deactivate(credential)
        logger.info("credential_deactivated", client_id=mask_client_id(credential.client_id))
        return updated

    async def toggle_status(self, credential: Credential) -> Credential:
        if credential.is_active:
            return await self.deactivate(credential)
        return await self.activate(credential)

    async def set_expiration(self, credential: Credential, expires_at: Optional[datetime]) -> Credential:
        return await self.store.update(credential, expires_at=expires_at)

    async def extend_expiration(self, credential: Credential, days: int) -> Credential:
        now = self._now()
        base = credential.expires_at if credential.expires_at and credential.expires_at > now else now
        return await self.set_expiration(credential, base + timedelta(days=days))

    async def delete(self, credential: Credential) -> bool:
        deleted = await self.store.delete(credential)
        if deleted:
            logger.info("credential_deleted", client_id=mask_client_id(credential.client_id))
        return deleted
