"""
Tests for the Redis credential repository and secret sealing.
"""

import asyncio
import json

import pytest

from hmac_guard.config import HmacConfig
from hmac_guard.credentials import CredentialStore
from hmac_guard.crypto import FernetSecretCipher, SealedSecret
from hmac_guard.models import Credential, Environment, from_timestamp
from hmac_guard.storage import RedisCredentialRepository


def make_credential(cipher, credential_id="c1", client_id="hmac_test_abc", **kwargs):
    return Credential(
        id=credential_id,
        client_id=client_id,
        secret=SealedSecret.seal("s3cr3t", cipher),
        **kwargs,
    )


class TestRedisCredentialRepository:
    """Tests for RedisCredentialRepository on the fake client."""

    @pytest.mark.asyncio
    async def test_create_and_lookup(self, fake_redis, cipher):
        """Credentials should be found by id and client ID."""
        repository = RedisCredentialRepository(fake_redis)
        credential = make_credential(cipher, environment=Environment.PRODUCTION)

        await repository.create(credential)

        assert await repository.get_by_id("c1") == credential
        assert await repository.get_by_client_id("hmac_test_abc") == credential
        assert await repository.get_by_client_id("hmac_test_other") is None

    @pytest.mark.asyncio
    async def test_stored_secret_is_ciphertext(self, fake_redis, cipher):
        """The plaintext secret should never be written."""
        repository = RedisCredentialRepository(fake_redis)
        await repository.create(make_credential(cipher))

        stored = json.loads(fake_redis._data["hmac:store:credential:c1"])

        assert stored["secret"] != "s3cr3t"
        assert cipher.decrypt(stored["secret"]) == "s3cr3t"

    @pytest.mark.asyncio
    async def test_duplicate_client_id(self, fake_redis, cipher):
        """A second credential with the same client ID should be refused."""
        repository = RedisCredentialRepository(fake_redis)
        await repository.create(make_credential(cipher))

        with pytest.raises(ValueError):
            await repository.create(make_credential(cipher, credential_id="c2"))

    @pytest.mark.asyncio
    async def test_update_moves_client_index(self, fake_redis, cipher):
        """Changing the client ID should re-point the index."""
        repository = RedisCredentialRepository(fake_redis)
        credential = await repository.create(make_credential(cipher))

        updated = await repository.update(credential, {"client_id": "hmac_test_new", "is_active": False})

        assert updated.is_active is False
        assert await repository.get_by_client_id("hmac_test_abc") is None
        assert (await repository.get_by_client_id("hmac_test_new")).id == "c1"

    @pytest.mark.asyncio
    async def test_concurrent_updates_both_apply(self, yielding_redis, cipher):
        """Interleaved updates should both land, including a client ID move."""
        repository = RedisCredentialRepository(yielding_redis)
        credential = await repository.create(make_credential(cipher))

        await asyncio.gather(
            repository.update(credential, {"client_id": "hmac_test_new"}),
            repository.update(credential, {"is_active": False}),
        )

        stored = await repository.get_by_id("c1")
        assert stored.client_id == "hmac_test_new"
        assert stored.is_active is False
        assert await repository.get_by_client_id("hmac_test_abc") is None
        assert (await repository.get_by_client_id("hmac_test_new")).id == "c1"

    @pytest.mark.asyncio
    async def test_mark_used_does_not_undo_rotation(self, yielding_redis, cipher, clock):
        """Recording last use concurrently with a rotation should keep the new secret."""
        repository = RedisCredentialRepository(yielding_redis)
        store = CredentialStore(repository, yielding_redis, HmacConfig(), clock=clock)
        credential = await store.create(make_credential(cipher))

        await asyncio.gather(
            store.mark_used(credential),
            store.rotate_secret(credential, SealedSecret.seal("rotated", cipher), grace_days=7),
        )

        stored = await repository.get_by_id("c1")
        assert stored.secret.reveal(cipher) == "rotated"
        assert stored.old_secret.reveal(cipher) == "s3cr3t"
        assert stored.last_used_at == from_timestamp(clock())

    @pytest.mark.asyncio
    async def test_update_unknown(self, fake_redis, cipher):
        """Updating a missing credential should raise LookupError."""
        repository = RedisCredentialRepository(fake_redis)

        with pytest.raises(LookupError):
            await repository.update(make_credential(cipher), {"is_active": False})

    @pytest.mark.asyncio
    async def test_delete_and_list(self, fake_redis, cipher):
        """Deleted credentials should disappear from lookups and listings."""
        repository = RedisCredentialRepository(fake_redis)
        first = await repository.create(make_credential(cipher))
        await repository.create(make_credential(cipher, "c2", "hmac_test_def"))

        assert await repository.delete(first) is True
        assert await repository.delete(first) is False

        assert [c.id for c in await repository.list_all()] == ["c2"]
        assert await repository.get_by_client_id("hmac_test_abc") is None


class TestSealedSecret:
    """Tests for secret sealing."""

    def test_reveal(self, cipher):
        """A sealed secret should reveal with the same cipher."""
        sealed = SealedSecret.seal("s3cr3t", cipher)

        assert sealed.ciphertext != "s3cr3t"
        assert sealed.reveal(cipher) == "s3cr3t"

    def test_repr_hides_value(self, cipher):
        """The repr should not leak ciphertext."""
        sealed = SealedSecret.seal("s3cr3t", cipher)

        assert sealed.ciphertext not in repr(sealed)

    def test_wrong_key_reveals_none(self, cipher):
        """Decryption failures should give None rather than raise."""
        sealed = SealedSecret.seal("s3cr3t", cipher)
        other = FernetSecretCipher(FernetSecretCipher.generate_key())

        assert sealed.reveal(other) is None
        assert SealedSecret("not-a-token").reveal(cipher) is None

    def test_key_rotation(self):
        """Old keys listed after the new one should still decrypt."""
        old_key, new_key = FernetSecretCipher.generate_key(), FernetSecretCipher.generate_key()
        sealed = SealedSecret.seal("s3cr3t", FernetSecretCipher(old_key))

        rotated = FernetSecretCipher(new_key, old_key)

        assert sealed.reveal(rotated) == "s3cr3t"
        assert FernetSecretCipher(new_key).decrypt(rotated.encrypt("x")) == "x"

    def test_rotate_reencrypts_under_new_key(self):
        """rotate() should move old ciphertext onto the first key."""
        from hmac_guard.exceptions import SecretDecryptionError

        old_key, new_key = FernetSecretCipher.generate_key(), FernetSecretCipher.generate_key()
        old_token = FernetSecretCipher(old_key).encrypt("s3cr3t")

        new_token = FernetSecretCipher(new_key, old_key).rotate(old_token)

        assert FernetSecretCipher(new_key).decrypt(new_token) == "s3cr3t"
        with pytest.raises(SecretDecryptionError):
            FernetSecretCipher(new_key).rotate(old_token)
