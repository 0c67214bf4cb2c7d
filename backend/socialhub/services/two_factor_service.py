"""Two-factor authentication lifecycle.

disabled -> setup pending (secret and recovery codes stored) -> active
(first successful verification) -> disabled (deinit). A lockout overlays
the pending and active states after too many failed verifications.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from socialhub.config import Settings
from socialhub.core import metrics
from socialhub.core.exceptions import BadRequestError, NotFoundError, UnauthorizedError
from socialhub.core.logging_config import get_logger
from socialhub.crud.user import revoked_token_crud, two_factor_crud, user_crud
from socialhub.models.two_factor import UserTwoFactor
from socialhub.models.user import User
from socialhub.services.recovery_code_service import RecoveryCodeService
from socialhub.services.token_service import SessionTokens, TokenService, TokenType
from socialhub.services.totp_vault import EncryptedSecret, TOTPVault
from socialhub.utils.datetime_utils import from_timestamp, utc_now

logger = get_logger(__name__)


class TwoFactorState(str, Enum):
    DISABLED = "disabled"
    SETUP_PENDING = "setup_pending"
    ACTIVE = "active"
    LOCKED = "locked"


def state_of(record: Optional[UserTwoFactor], now: Optional[datetime] = None) -> TwoFactorState:
    """Derive the lifecycle state from a stored record."""
    if record is None or not record.has_secret:
        return TwoFactorState.DISABLED
    if record.is_locked(now):
        return TwoFactorState.LOCKED
    if record.is_set_up:
        return TwoFactorState.ACTIVE
    return TwoFactorState.SETUP_PENDING


@dataclass(frozen=True)
class SetupResult:
    otpauth_url: str
    recovery_codes: list[str]
    qr_code: str


@dataclass(frozen=True)
class TwoFactorStatus:
    state: TwoFactorState
    is_set_up: bool
    recovery_codes_remaining: int
    failed_attempts: int
    locked_until: Optional[datetime]
    last_verified_at: Optional[datetime]


class TwoFactorService:
    """Initiate, set up, verify and disable TOTP 2FA."""

    def __init__(
        self,
        settings: Settings,
        tokens: TokenService,
        vault: TOTPVault,
        recovery_codes: RecoveryCodeService,
    ):
        self._settings = settings
        self._tokens = tokens
        self._vault = vault
        self._recovery_codes = recovery_codes

    async def _load_user(self, db: AsyncSession, user_id: UUID) -> User:
        user = await user_crud.get_by_id(db, user_id)
        if user is None:
            raise NotFoundError("User not found.")
        return user

    async def initiate(self, db: AsyncSession, access_token: str) -> str:
        """
        Start 2FA setup for the owner of *access_token*.

        Returns:
            A short-lived ``2fa_pending`` token for the setup and verify steps
        """
        payload = self._tokens.decode(access_token, TokenType.ACCESS)
        user = await self._load_user(db, self._tokens.subject_of(payload))

        record = await two_factor_crud.ensure(db, user.id)
        if record.is_set_up:
            raise BadRequestError("2FA is already setup.")
        await db.commit()

        logger.info("two_factor_initiated", user_id=str(user.id))
        return self._tokens.sign({"sub": str(user.id)}, TokenType.PENDING_2FA)

    async def setup(self, db: AsyncSession, pending_token: str) -> SetupResult:
        """
        Generate and store a new secret and recovery codes.

        The plaintext recovery codes are only ever returned here.
        """
        payload = self._tokens.decode(pending_token, TokenType.PENDING_2FA)
        user = await self._load_user(db, self._tokens.subject_of(payload))

        record = await two_factor_crud.ensure(db, user.id)
        if record.is_set_up:
            raise BadRequestError("2FA is already setup.")

        generated = self._vault.generate_secret(user.email)
        encrypted = self._vault.encrypt(generated.base32_secret)
        codes = self._recovery_codes.generate(self._settings.RECOVERY_CODE_COUNT)
        code_hashes = await self._recovery_codes.hash_all(codes)

        if not await two_factor_crud.store_setup(db, user.id, encrypted, code_hashes):
            await db.rollback()
            raise BadRequestError("2FA is already setup.")
        await db.commit()

        metrics.two_factor_setups_total.inc()
        logger.info("two_factor_secret_stored", user_id=str(user.id))
        return SetupResult(
            otpauth_url=generated.otpauth_url,
            recovery_codes=codes,
            qr_code=self._vault.qr_code_png(generated.otpauth_url),
        )

    async def verify(
        self,
        db: AsyncSession,
        pending_token: str,
        two_fa_code: Optional[str] = None,
        recovery_code: Optional[str] = None,
    ) -> SessionTokens:
        """
        Check a TOTP code or a recovery code and complete authentication.

        Exactly one of *two_fa_code* and *recovery_code* must be given.

        Raises:
            BadRequestError: both or neither code supplied
            UnauthorizedError: bad token, 2FA not set up, locked, or wrong code
        """
        if two_fa_code and recovery_code:
            raise BadRequestError("Provide only single kind of code.")
        if not two_fa_code and not recovery_code:
            raise BadRequestError("Provide either twoFACode or recoveryCode.")

        payload = self._tokens.decode(pending_token, TokenType.PENDING_2FA)
        user_id = self._tokens.subject_of(payload)
        jti = payload.get("jti")
        single_use = self._settings.PENDING_2FA_SINGLE_USE and jti

        if single_use and await revoked_token_crud.is_revoked(db, jti):
            raise UnauthorizedError("Token has already been used.")

        await self._load_user(db, user_id)
        now = utc_now()

        if await two_factor_crud.clear_expired_lock(db, user_id, now):
            await db.commit()
            logger.info("two_factor_lock_expired", user_id=str(user_id))

        record = await two_factor_crud.get(db, user_id)
        if record is None or not record.has_secret:
            raise UnauthorizedError("2FA is not set up.")

        method = "totp" if two_fa_code else "recovery"
        if record.is_locked(now):
            metrics.track_two_factor_attempt(method, "locked")
            logger.warning("two_factor_rejected_locked", user_id=str(user_id))
            raise UnauthorizedError("Too many failed 2FA attempts. Try again later.")

        if two_fa_code:
            secret = self._vault.decrypt(
                EncryptedSecret(
                    ciphertext=record.secret_ciphertext,
                    iv=record.secret_iv,
                    tag=record.secret_tag,
                )
            )
            if not self._vault.verify_code(secret, two_fa_code):
                await self._fail(db, user_id, now, method, "Wrong 2FA token.")
        else:
            stored = await two_factor_crud.list_recovery_codes(db, user_id)
            result = await self._recovery_codes.consume(
                recovery_code, [code.code_hash for code in stored]
            )
            if not result.matched:
                await self._fail(db, user_id, now, method, "Invalid recovery code.")

            # Another request may have used the same code in the meantime
            if not await two_factor_crud.delete_recovery_code(db, stored[result.matched_index].id):
                await db.rollback()
                await self._fail(db, user_id, now, method, "Invalid recovery code.")

        if not await two_factor_crud.record_success(db, user_id, now):
            # Disabled by a concurrent deinit
            await db.rollback()
            raise UnauthorizedError("2FA is not set up.")

        try:
            if single_use:
                revoked = await revoked_token_crud.revoke(
                    db, jti, TokenType.PENDING_2FA.value, from_timestamp(payload["exp"])
                )
                if not revoked:
                    raise UnauthorizedError("Token has already been used.")
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise UnauthorizedError("Token has already been used.")
        except UnauthorizedError:
            await db.rollback()
            raise

        metrics.track_two_factor_attempt(method, "success")
        logger.info("two_factor_verified", user_id=str(user_id), method=method)
        return self._tokens.issue_session_tokens(user_id)

    async def _fail(
        self, db: AsyncSession, user_id: UUID, now: datetime, method: str, message: str
    ) -> None:
        lock_until = now + timedelta(minutes=self._settings.TWO_FA_LOCKOUT_MINUTES)
        locked = await two_factor_crud.record_failure(
            db, user_id, self._settings.TWO_FA_MAX_FAILED_ATTEMPTS, lock_until, now
        )
        await db.commit()

        metrics.track_two_factor_attempt(method, "failure")
        if locked:
            metrics.two_factor_lockouts_total.inc()
            logger.warning(
                "two_factor_locked", user_id=str(user_id), locked_until=lock_until.isoformat()
            )
        else:
            logger.info("two_factor_failed", user_id=str(user_id), method=method)
        raise UnauthorizedError(message)

    async def deinit(self, db: AsyncSession, access_token: str) -> None:
        """Disable 2FA and discard the secret and recovery codes."""
        payload = self._tokens.decode(access_token, TokenType.ACCESS)
        user = await self._load_user(db, self._tokens.subject_of(payload))

        if not await two_factor_crud.deinit(db, user.id):
            await db.rollback()
            raise BadRequestError("2FA is already inactive.")
        await db.commit()
        logger.info("two_factor_disabled", user_id=str(user.id))

    async def status(self, db: AsyncSession, access_token: str) -> TwoFactorStatus:
        payload = self._tokens.decode(access_token, TokenType.ACCESS)
        user = await self._load_user(db, self._tokens.subject_of(payload))

        record = await two_factor_crud.get(db, user.id)
        remaining = await two_factor_crud.count_recovery_codes(db, user.id)
        now = utc_now()
        return TwoFactorStatus(
            state=state_of(record, now),
            is_set_up=bool(record and record.is_set_up),
            recovery_codes_remaining=remaining,
            failed_attempts=record.failed_attempts if record else 0,
            locked_until=record.locked_until if record and record.is_locked(now) else None,
            last_verified_at=record.last_verified_at if record else None,
        )

    @staticmethod
    async def requires_second_factor(db: AsyncSession, user_id: UUID) -> bool:
        """True when login must stop at the 2FA challenge."""
        record = await two_factor_crud.get(db, user_id)
        return bool(record and record.is_set_up)
