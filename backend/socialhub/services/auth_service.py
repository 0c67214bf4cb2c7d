"""Registration, login, email verification, password reset and refresh."""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from socialhub.core import metrics
from socialhub.core.exceptions import (
    ConflictError,
    MailDeliveryError,
    NotFoundError,
    UnauthorizedError,
)
from socialhub.core.security import PasswordService
from socialhub.crud.user import user_crud
from socialhub.models.user import User
from socialhub.services.email_service import EmailService
from socialhub.services.token_service import SessionTokens, TokenService, TokenType
from socialhub.services.two_factor_service import TwoFactorService
from socialhub.utils.logging_utils import redact_email

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoginResult:
    """Either session tokens or, for 2FA users, a pending token."""

    user: User
    tokens: Optional[SessionTokens] = None
    pending_2fa_token: Optional[str] = None

    @property
    def requires_2fa(self) -> bool:
        return self.pending_2fa_token is not None


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AuthService:
    """Coordinates the account flows over the token, password and mail services."""

    def __init__(
        self,
        tokens: TokenService,
        passwords: PasswordService,
        mailer: EmailService,
        two_factor: TwoFactorService,
    ):
        self._tokens = tokens
        self._passwords = passwords
        self._mailer = mailer
        self._two_factor = two_factor

    async def register(
        self,
        db: AsyncSession,
        firstname: str,
        lastname: str,
        email: str,
        password: str,
    ) -> User:
        """
        Create an unverified account and mail a verification link.

        The account is kept even if the verification email cannot be sent.

        Raises:
            ConflictError: the email is already registered
        """
        email = normalize_email(email)
        if await user_crud.get_by_email(db, email) is not None:
            raise ConflictError("User with this email already exists.")

        password_hash = await self._passwords.hash(password)
        user = await user_crud.create(
            db,
            email=email,
            password_hash=password_hash,
            firstname=firstname.strip(),
            lastname=lastname.strip(),
        )
        metrics.registrations_total.inc()
        logger.info("User registered: %s", redact_email(email))

        token = self._tokens.sign({"sub": str(user.id)}, TokenType.EMAIL_VERIFICATION)
        try:
            await self._mailer.send_verification_email(email, token, user.display_name)
        except MailDeliveryError:
            logger.error("Verification email not delivered to %s; account kept",
                         redact_email(email))
        return user

    async def login(self, db: AsyncSession, email: str, password: str) -> LoginResult:
        """
        Check credentials.

        Raises:
            NotFoundError: no account with this email
            UnauthorizedError: wrong password
        """
        email = normalize_email(email)
        user = await user_crud.get_by_email(db, email)
        if user is None:
            metrics.track_login("unknown_user")
            logger.info("Login failed, unknown user: %s", redact_email(email))
            raise NotFoundError("User not found.")

        if not await self._passwords.verify(password, user.password_hash):
            metrics.track_login("wrong_password")
            logger.info("Login failed, wrong password: %s", redact_email(email))
            raise UnauthorizedError("Incorrect password.")

        if await self._two_factor.requires_second_factor(db, user.id):
            metrics.track_login("pending_2fa")
            logger.info("Login requires 2FA: %s", redact_email(email))
            pending = self._tokens.sign({"sub": str(user.id)}, TokenType.PENDING_2FA)
            return LoginResult(user=user, pending_2fa_token=pending)

        await user_crud.update_last_login(db, user.id)
        metrics.track_login("success")
        logger.info("Login success: %s", redact_email(email))
        return LoginResult(user=user, tokens=self._tokens.issue_session_tokens(user.id))

    async def verify_email(self, db: AsyncSession, token: str) -> SessionTokens:
        """Mark the account verified and sign the user in."""
        payload = self._tokens.decode(token, TokenType.EMAIL_VERIFICATION)
        user = await user_crud.get_by_id(db, self._tokens.subject_of(payload))
        if user is None:
            raise NotFoundError("User not found.")

        await user_crud.mark_verified(db, user.id)
        logger.info("Email verified: %s", redact_email(user.email))
        return self._tokens.issue_session_tokens(user.id)

    async def request_password_reset(self, db: AsyncSession, email: str) -> None:
        """
        Mail a password-reset link.

        Raises:
            NotFoundError: no account with this email
            MailDeliveryError: the link could not be sent
        """
        email = normalize_email(email)
        user = await user_crud.get_by_email(db, email)
        if user is None:
            raise NotFoundError("User not found.")

        token = self._tokens.sign({"sub": str(user.id)}, TokenType.PASSWORD_RESET)
        await self._mailer.send_password_reset_email(email, token, user.display_name)
        logger.info("Password reset requested: %s", redact_email(email))

    async def reset_password(
        self, db: AsyncSession, reset_token: str, email: str, new_password: str
    ) -> None:
        """
        Replace the password of the account named by *reset_token*.

        The submitted email must belong to that same account.
        """
        payload = self._tokens.decode(reset_token, TokenType.PASSWORD_RESET)
        user = await user_crud.get_by_id(db, self._tokens.subject_of(payload))
        if user is None:
            raise NotFoundError("User not found.")
        if user.email != normalize_email(email):
            raise UnauthorizedError("Reset token does not match this email.")

        password_hash = await self._passwords.hash(new_password)
        await user_crud.update_password(db, user.id, password_hash)
        logger.info("Password reset: %s", redact_email(user.email))

    async def refresh(self, db: AsyncSession, refresh_token: str) -> SessionTokens:
        """Issue a new access token and reissue the refresh token."""
        payload = self._tokens.decode(refresh_token, TokenType.REFRESH)
        user = await user_crud.get_by_id(db, self._tokens.subject_of(payload))
        if user is None:
            raise UnauthorizedError("User not found.")
        return self._tokens.issue_session_tokens(user.id)
