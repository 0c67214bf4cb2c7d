"""Typed JWT issuing and verification.

Every token carries a ``type`` claim and is signed with a secret specific
to that type, so a token minted for one purpose never passes as another.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from jose import ExpiredSignatureError, JWTError, jwt

from socialhub.config import Settings
from socialhub.core.exceptions import BadRequestError, UnauthorizedError
from socialhub.utils.datetime_utils import utc_now
from socialhub.utils.logging_utils import redact_token

logger = logging.getLogger(__name__)


class TokenType(str, Enum):
    """Token purposes."""

    ACCESS = "access-token"
    REFRESH = "refresh-token"
    PENDING_2FA = "2fa_pending"
    EMAIL_VERIFICATION = "email-verification"
    PASSWORD_RESET = "password-reset"


@dataclass(frozen=True)
class SessionTokens:
    access_token: str
    refresh_token: str


class TokenService:
    """Sign and decode typed JWTs."""

    def __init__(self, settings: Settings):
        self._algorithm = settings.ALGORITHM
        self._secrets = {
            TokenType.ACCESS: settings.JWT_ACCESS_SECRET,
            TokenType.REFRESH: settings.JWT_REFRESH_SECRET,
            TokenType.PENDING_2FA: settings.JWT_PENDING_2FA_SECRET,
            TokenType.EMAIL_VERIFICATION: settings.JWT_EMAIL_SECRET,
            TokenType.PASSWORD_RESET: settings.JWT_RESET_SECRET,
        }
        self._lifetimes = {
            TokenType.ACCESS: timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
            TokenType.REFRESH: timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
            TokenType.PENDING_2FA: timedelta(seconds=settings.PENDING_2FA_TOKEN_EXPIRE_SECONDS),
            TokenType.EMAIL_VERIFICATION: timedelta(minutes=settings.EMAIL_TOKEN_EXPIRE_MINUTES),
            TokenType.PASSWORD_RESET: timedelta(minutes=settings.RESET_TOKEN_EXPIRE_MINUTES),
        }

    def lifetime(self, token_type: TokenType) -> timedelta:
        return self._lifetimes[token_type]

    def sign(
        self,
        payload: dict[str, Any],
        token_type: TokenType,
        ttl: Optional[timedelta] = None,
    ) -> str:
        """
        Create a signed token of *token_type*.

        Args:
            payload: Claims to embed (``sub`` should be the user id as a string)
            token_type: Purpose of the token; selects secret and default lifetime
            ttl: Optional custom lifetime

        Returns:
            Encoded JWT
        """
        now = utc_now()
        expire = now + (ttl if ttl is not None else self._lifetimes[token_type])

        to_encode = payload.copy()
        to_encode.update(
            {
                "type": token_type.value,
                "iat": now,
                "exp": expire,
                "jti": secrets.token_urlsafe(16),
            }
        )
        return jwt.encode(to_encode, self._secrets[token_type], algorithm=self._algorithm)

    def decode(self, token: str, expected_type: TokenType) -> dict[str, Any]:
        """
        Verify and decode a token of *expected_type*.

        Raises:
            UnauthorizedError: token expired, signature invalid, malformed,
                or of a different type
        """
        try:
            payload = jwt.decode(token, self._secrets[expected_type], algorithms=[self._algorithm])
        except ExpiredSignatureError:
            raise UnauthorizedError("Token has expired.")
        except JWTError:
            claimed = self._claimed_type(token)
            if claimed not in (None, expected_type.value):
                logger.debug("Rejected %s token %s where %s was expected",
                             claimed, redact_token(token), expected_type.value)
                raise UnauthorizedError("Invalid token type.")
            raise UnauthorizedError("Invalid token.")

        if payload.get("type") != expected_type.value:
            raise UnauthorizedError("Invalid token type.")
        if not payload.get("sub"):
            raise UnauthorizedError("Invalid token.")
        return payload

    @staticmethod
    def _claimed_type(token: str) -> Optional[str]:
        try:
            return jwt.get_unverified_claims(token).get("type")
        except JWTError:
            return None

    @staticmethod
    def read_bearer(header: Optional[str], header_name: str = "Authorization") -> str:
        """
        Extract the token from a ``Bearer <token>`` header value.

        Raises:
            BadRequestError: header missing, malformed, or another scheme
        """
        if not header:
            raise BadRequestError(f"{header_name} header is missing.")

        parts = header.split()
        if len(parts) != 2:
            raise BadRequestError(f"{header_name} header is malformed.")

        scheme, token = parts
        if scheme.lower() != "bearer":
            raise BadRequestError(f"{header_name} header must use the Bearer scheme.")
        return token

    def issue_session_tokens(self, user_id) -> SessionTokens:
        """Access and refresh tokens for a fully authenticated user."""
        claims = {"sub": str(user_id)}
        return SessionTokens(
            access_token=self.sign(claims, TokenType.ACCESS),
            refresh_token=self.sign(claims, TokenType.REFRESH),
        )

    @staticmethod
    def subject_of(payload: dict[str, Any]) -> UUID:
        """User id from the ``sub`` claim."""
        try:
            return UUID(str(payload["sub"]))
        except (KeyError, ValueError):
            raise UnauthorizedError("Invalid token.")
