"""CRUD operations for users and their 2FA records."""

import hashlib
from datetime import datetime
from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from socialhub.core.exceptions import ConflictError
from socialhub.models.token import RevokedToken
from socialhub.models.two_factor import RecoveryCode, UserTwoFactor
from socialhub.models.user import User
from socialhub.services.totp_vault import EncryptedSecret
from socialhub.utils.datetime_utils import utc_now


class UserCRUD:
    """CRUD operations for User model."""

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> Optional[User]:
        """Get user by email."""
        result = await db.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: UUID) -> Optional[User]:
        """Get user by ID."""
        result = await db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def create(
        db: AsyncSession,
        email: str,
        password_hash: str,
        firstname: str,
        lastname: str,
    ) -> User:
        """
        Create a new user together with an empty 2FA record.

        Raises:
            ConflictError: the email is already registered
        """
        user = User(
            email=email,
            password_hash=password_hash,
            firstname=firstname,
            lastname=lastname,
            verified=False,
        )
        db.add(user)
        try:
            await db.flush()
            db.add(UserTwoFactor(user_id=user.id))
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise ConflictError("User with this email already exists.")
        await db.refresh(user)
        return user

    @staticmethod
    async def update_last_login(db: AsyncSession, user_id: UUID) -> None:
        """Update user's last login timestamp."""
        await db.execute(update(User).where(User.id == user_id).values(last_login_at=utc_now()))
        await db.commit()

    @staticmethod
    async def mark_verified(db: AsyncSession, user_id: UUID) -> None:
        await db.execute(update(User).where(User.id == user_id).values(verified=True))
        await db.commit()

    @staticmethod
    async def update_password(db: AsyncSession, user_id: UUID, password_hash: str) -> None:
        await db.execute(
            update(User).where(User.id == user_id).values(password_hash=password_hash)
        )
        await db.commit()


class TwoFactorCRUD:
    """
    State changes for UserTwoFactor and RecoveryCode.

    Every transition is a single conditional UPDATE or DELETE whose row count
    decides the outcome, so concurrent requests for the same user cannot both
    win. These methods do not commit; the caller owns the transaction.
    """

    @staticmethod
    async def get(db: AsyncSession, user_id: UUID) -> Optional[UserTwoFactor]:
        """Load the 2FA record, bypassing any stale copy in the session."""
        result = await db.execute(
            select(UserTwoFactor)
            .where(UserTwoFactor.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def ensure(db: AsyncSession, user_id: UUID) -> UserTwoFactor:
        """Return the 2FA record, creating an empty one if it is missing."""
        record = await TwoFactorCRUD.get(db, user_id)
        if record is None:
            record = UserTwoFactor(user_id=user_id)
            db.add(record)
            await db.flush()
        return record

    @staticmethod
    async def store_setup(
        db: AsyncSession,
        user_id: UUID,
        secret: EncryptedSecret,
        code_hashes: Sequence[str],
    ) -> bool:
        """
        Store a new encrypted secret and recovery codes.

        Only succeeds while 2FA is not yet set up. Attempt counter and lock
        are reset. Returns False when 2FA was already set up.
        """
        result = await db.execute(
            update(UserTwoFactor)
            .where(UserTwoFactor.user_id == user_id, UserTwoFactor.is_set_up.is_(False))
            .values(
                secret_ciphertext=secret.ciphertext,
                secret_iv=secret.iv,
                secret_tag=secret.tag,
                failed_attempts=0,
                locked_until=None,
                updated_at=utc_now(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False

        await db.execute(delete(RecoveryCode).where(RecoveryCode.user_id == user_id))
        db.add_all(
            RecoveryCode(user_id=user_id, position=position, code_hash=code_hash)
            for position, code_hash in enumerate(code_hashes)
        )
        await db.flush()
        return True

    @staticmethod
    async def clear_expired_lock(db: AsyncSession, user_id: UUID, now: datetime) -> bool:
        """Reset counter and lock once the lockout period has elapsed."""
        result = await db.execute(
            update(UserTwoFactor)
            .where(
                UserTwoFactor.user_id == user_id,
                UserTwoFactor.locked_until.is_not(None),
                UserTwoFactor.locked_until <= now,
            )
            .values(failed_attempts=0, locked_until=None)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    async def record_failure(
        db: AsyncSession,
        user_id: UUID,
        max_attempts: int,
        lock_until: datetime,
        now: datetime,
    ) -> bool:
        """
        Atomically count a failed attempt.

        Returns True when this failure started a lockout.
        """
        await db.execute(
            update(UserTwoFactor)
            .where(UserTwoFactor.user_id == user_id)
            .values(failed_attempts=UserTwoFactor.failed_attempts + 1)
            .execution_options(synchronize_session=False)
        )
        locked = await db.execute(
            update(UserTwoFactor)
            .where(
                UserTwoFactor.user_id == user_id,
                UserTwoFactor.failed_attempts >= max_attempts,
                (UserTwoFactor.locked_until.is_(None)) | (UserTwoFactor.locked_until <= now),
            )
            .values(locked_until=lock_until)
            .execution_options(synchronize_session=False)
        )
        return locked.rowcount == 1

    @staticmethod
    async def record_success(db: AsyncSession, user_id: UUID, now: datetime) -> bool:
        """Clear counter and lock, stamp the verification and activate 2FA."""
        result = await db.execute(
            update(UserTwoFactor)
            .where(
                UserTwoFactor.user_id == user_id,
                UserTwoFactor.secret_ciphertext.is_not(None),
            )
            .values(
                failed_attempts=0,
                locked_until=None,
                last_verified_at=now,
                is_set_up=True,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    async def list_recovery_codes(db: AsyncSession, user_id: UUID) -> list[RecoveryCode]:
        result = await db.execute(
            select(RecoveryCode)
            .where(RecoveryCode.user_id == user_id)
            .order_by(RecoveryCode.position)
        )
        return list(result.scalars().all())

    @staticmethod
    async def count_recovery_codes(db: AsyncSession, user_id: UUID) -> int:
        result = await db.execute(
            select(func.count()).select_from(RecoveryCode).where(RecoveryCode.user_id == user_id)
        )
        return result.scalar_one()

    @staticmethod
    async def delete_recovery_code(db: AsyncSession, code_id: UUID) -> bool:
        """Remove one used code. False means another request consumed it first."""
        result = await db.execute(
            delete(RecoveryCode)
            .where(RecoveryCode.id == code_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    async def deinit(db: AsyncSession, user_id: UUID) -> bool:
        """
        Disable 2FA: drop the secret, the recovery codes and all counters.

        Returns False when there was nothing to disable.
        """
        result = await db.execute(
            update(UserTwoFactor)
            .where(
                UserTwoFactor.user_id == user_id,
                UserTwoFactor.secret_ciphertext.is_not(None),
            )
            .values(
                is_set_up=False,
                secret_ciphertext=None,
                secret_iv=None,
                secret_tag=None,
                failed_attempts=0,
                locked_until=None,
                last_verified_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False

        await db.execute(delete(RecoveryCode).where(RecoveryCode.user_id == user_id))
        return True


class RevokedTokenCRUD:
    """Deny-list for single-use tokens."""

    @staticmethod
    def hash_jti(jti: str) -> str:
        """Return the SHA-256 hex digest of a token id."""
        return hashlib.sha256(jti.encode()).hexdigest()

    @staticmethod
    async def is_revoked(db: AsyncSession, jti: str) -> bool:
        result = await db.execute(
            select(RevokedToken.id).where(RevokedToken.jti_hash == RevokedTokenCRUD.hash_jti(jti))
        )
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def revoke(db: AsyncSession, jti: str, token_type: str, expires_at: datetime) -> bool:
        """
        Add a token id to the deny-list and purge entries that have expired.

        Returns False when the id was already revoked.
        """
        await db.execute(delete(RevokedToken).where(RevokedToken.expires_at < utc_now()))
        jti_hash = RevokedTokenCRUD.hash_jti(jti)
        existing = await db.execute(
            select(RevokedToken.id).where(RevokedToken.jti_hash == jti_hash)
        )
        if existing.scalar_one_or_none() is not None:
            return False
        db.add(RevokedToken(jti_hash=jti_hash, token_type=token_type, expires_at=expires_at))
        await db.flush()
        return True


user_crud = UserCRUD()
two_factor_crud = TwoFactorCRUD()
revoked_token_crud = RevokedTokenCRUD()
