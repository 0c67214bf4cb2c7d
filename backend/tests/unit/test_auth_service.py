"""Tests for AuthService flows against a real (SQLite) database."""

from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pyotp
import pytest

from socialhub.core.exceptions import (
    ConflictError,
    MailDeliveryError,
    NotFoundError,
    UnauthorizedError,
)
from socialhub.crud.user import two_factor_crud, user_crud
from socialhub.services.token_service import TokenType


@pytest.mark.unit
@pytest.mark.asyncio
class TestRegister:
    async def test_stores_hash_and_unverified_user(self, services, db_session, mailer):
        user = await services.auth.register(
            db_session, firstname="Grace", lastname="Hopper",
            email="Grace@Example.com", password="cobol-forever",
        )

        stored = await user_crud.get_by_id(db_session, user.id)
        assert stored.email == "grace@example.com"
        assert stored.verified is False
        assert stored.password_hash != "cobol-forever"
        assert await services.passwords.verify("cobol-forever", stored.password_hash)

    async def test_creates_empty_two_factor_record(self, services, db_session):
        user = await services.auth.register(
            db_session, firstname="Grace", lastname="Hopper",
            email="grace@example.com", password="cobol-forever",
        )
        record = await two_factor_crud.get(db_session, user.id)
        assert record is not None
        assert record.is_set_up is False
        assert record.failed_attempts == 0
        assert not record.has_secret

    async def test_sends_verification_email(self, services, db_session, mailer):
        user = await services.auth.register(
            db_session, firstname="Grace", lastname="Hopper",
            email="grace@example.com", password="cobol-forever",
        )

        assert len(mailer.sent) == 1
        assert mailer.sent[0]["to"] == "grace@example.com"
        payload = services.tokens.decode(mailer.last_token(), TokenType.EMAIL_VERIFICATION)
        assert payload["sub"] == str(user.id)

    async def test_duplicate_email(self, services, db_session, test_user):
        with pytest.raises(ConflictError):
            await services.auth.register(
                db_session, firstname="Ada", lastname="Again",
                email="ADA@example.com", password="whatever-123",
            )

    async def test_mail_failure_keeps_user(self, services, db_session, mailer):
        with patch.object(
            mailer, "send_verification_email",
            new=AsyncMock(side_effect=MailDeliveryError("Failed to send email.")),
        ):
            user = await services.auth.register(
                db_session, firstname="Grace", lastname="Hopper",
                email="grace@example.com", password="cobol-forever",
            )

        assert await user_crud.get_by_id(db_session, user.id) is not None


@pytest.mark.unit
@pytest.mark.asyncio
class TestLogin:
    async def test_success_issues_session(self, services, db_session, test_user, test_password):
        result = await services.auth.login(db_session, "ada@example.com", test_password)

        assert result.requires_2fa is False
        payload = services.tokens.decode(result.tokens.access_token, TokenType.ACCESS)
        assert payload["sub"] == str(test_user.id)
        services.tokens.decode(result.tokens.refresh_token, TokenType.REFRESH)

        stored = await user_crud.get_by_id(db_session, test_user.id)
        await db_session.refresh(stored)
        assert stored.last_login_at is not None

    async def test_unknown_user(self, services, db_session):
        with pytest.raises(NotFoundError, match="User not found."):
            await services.auth.login(db_session, "nobody@example.com", "irrelevant")

    async def test_wrong_password(self, services, db_session, test_user):
        with pytest.raises(UnauthorizedError, match="Incorrect password."):
            await services.auth.login(db_session, "ada@example.com", "wrong-password")

    async def test_two_factor_user_gets_pending_token(
        self, services, db_session, test_user, test_password, access_token, totp_helpers
    ):
        pending = await services.two_factor.initiate(db_session, access_token)
        setup = await services.two_factor.setup(db_session, pending)
        secret = totp_helpers.secret_from_otpauth(setup.otpauth_url)
        await services.two_factor.verify(db_session, pending, two_fa_code=pyotp.TOTP(secret).now())

        result = await services.auth.login(db_session, "ada@example.com", test_password)

        assert result.requires_2fa is True
        assert result.tokens is None
        payload = services.tokens.decode(result.pending_2fa_token, TokenType.PENDING_2FA)
        assert payload["sub"] == str(test_user.id)

    async def test_setup_pending_user_still_logs_in_directly(
        self, services, db_session, test_user, test_password, access_token
    ):
        pending = await services.two_factor.initiate(db_session, access_token)
        await services.two_factor.setup(db_session, pending)

        result = await services.auth.login(db_session, "ada@example.com", test_password)
        assert result.requires_2fa is False


@pytest.mark.unit
@pytest.mark.asyncio
class TestVerifyEmail:
    async def test_marks_verified(self, services, db_session, mailer):
        user = await services.auth.register(
            db_session, firstname="Grace", lastname="Hopper",
            email="grace@example.com", password="cobol-forever",
        )

        tokens = await services.auth.verify_email(db_session, mailer.last_token())

        stored = await user_crud.get_by_id(db_session, user.id)
        await db_session.refresh(stored)
        assert stored.verified is True
        assert services.tokens.decode(tokens.access_token, TokenType.ACCESS)["sub"] == str(user.id)

    async def test_rejects_access_token(self, services, db_session, access_token):
        with pytest.raises(UnauthorizedError, match="Invalid token type."):
            await services.auth.verify_email(db_session, access_token)

    async def test_unknown_user(self, services, db_session):
        token = services.tokens.sign({"sub": str(uuid4())}, TokenType.EMAIL_VERIFICATION)
        with pytest.raises(NotFoundError):
            await services.auth.verify_email(db_session, token)


@pytest.mark.unit
@pytest.mark.asyncio
class TestPasswordReset:
    async def test_request_mails_reset_token(self, services, db_session, test_user, mailer):
        await services.auth.request_password_reset(db_session, "ada@example.com")

        payload = services.tokens.decode(mailer.last_token(), TokenType.PASSWORD_RESET)
        assert payload["sub"] == str(test_user.id)

    async def test_request_for_unknown_email(self, services, db_session):
        with pytest.raises(NotFoundError):
            await services.auth.request_password_reset(db_session, "nobody@example.com")

    async def test_request_propagates_mail_failure(self, services, db_session, test_user, mailer):
        with patch.object(
            mailer, "send_password_reset_email",
            new=AsyncMock(side_effect=MailDeliveryError("Failed to send email.")),
        ):
            with pytest.raises(MailDeliveryError):
                await services.auth.request_password_reset(db_session, "ada@example.com")

    async def test_reset_changes_password(self, services, db_session, test_user, test_password):
        token = services.tokens.sign({"sub": str(test_user.id)}, TokenType.PASSWORD_RESET)

        await services.auth.reset_password(db_session, token, "ada@example.com", "brand-new-pass")

        result = await services.auth.login(db_session, "ada@example.com", "brand-new-pass")
        assert result.tokens is not None
        with pytest.raises(UnauthorizedError):
            await services.auth.login(db_session, "ada@example.com", test_password)

    async def test_reset_requires_matching_email(self, services, db_session, test_user):
        await user_crud.create(
            db_session, email="mallory@example.com", password_hash="x",
            firstname="Mallory", lastname="Evil",
        )
        token = services.tokens.sign({"sub": str(test_user.id)}, TokenType.PASSWORD_RESET)

        with pytest.raises(UnauthorizedError):
            await services.auth.reset_password(db_session, token, "mallory@example.com", "new-password-1")

    async def test_reset_rejects_verification_token(self, services, db_session, test_user):
        token = services.tokens.sign({"sub": str(test_user.id)}, TokenType.EMAIL_VERIFICATION)
        with pytest.raises(UnauthorizedError, match="Invalid token type."):
            await services.auth.reset_password(db_session, token, "ada@example.com", "new-password-1")


@pytest.mark.unit
@pytest.mark.asyncio
class TestRefresh:
    async def test_rotates_tokens(self, services, db_session, test_user):
        original = services.tokens.issue_session_tokens(test_user.id)

        rotated = await services.auth.refresh(db_session, original.refresh_token)

        assert rotated.refresh_token != original.refresh_token
        assert services.tokens.decode(rotated.access_token, TokenType.ACCESS)["sub"] == str(test_user.id)

    async def test_access_token_is_not_a_refresh_token(self, services, db_session, access_token):
        with pytest.raises(UnauthorizedError):
            await services.auth.refresh(db_session, access_token)
