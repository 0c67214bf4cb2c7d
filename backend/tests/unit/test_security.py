"""Unit tests for PasswordService."""

import pytest

from socialhub.core.security import PasswordService


svc = PasswordService()


@pytest.mark.unit
class TestPasswordHashing:
    def test_hash_is_argon2(self):
        hashed = svc.hash_sync("s3cret-password")
        assert hashed.startswith("$argon2")
        assert "s3cret-password" not in hashed

    def test_hashes_are_salted(self):
        assert svc.hash_sync("same-password") != svc.hash_sync("same-password")

    def test_verify_accepts_correct_password(self):
        hashed = svc.hash_sync("s3cret-password")
        assert svc.verify_sync("s3cret-password", hashed) is True

    def test_verify_rejects_wrong_password(self):
        hashed = svc.hash_sync("s3cret-password")
        assert svc.verify_sync("other-password", hashed) is False

    @pytest.mark.parametrize("bad_hash", ["", "plaintext", "$2b$12$notarealbcrypthash"])
    def test_malformed_hash_returns_false(self, bad_hash):
        assert svc.verify_sync("anything", bad_hash) is False


@pytest.mark.unit
@pytest.mark.asyncio
class TestAsyncVariants:
    async def test_round_trip(self):
        hashed = await svc.hash("async-password")
        assert await svc.verify("async-password", hashed) is True
        assert await svc.verify("nope", hashed) is False
