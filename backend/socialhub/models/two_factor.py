"""Two-factor authentication models."""

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from socialhub.core.database import Base
from socialhub.core.db_types import UUID
from socialhub.utils.datetime_utils import utc_now, utc_now_lambda


class UserTwoFactor(Base):
    """
    Per-user 2FA state, created together with the user.

    The TOTP secret is stored AES-GCM encrypted as three base64 columns.
    All three are NULL while 2FA is disabled.
    """

    __tablename__ = "user_two_factor"

    id = Column(UUID(), primary_key=True, default=uuid4)
    user_id = Column(
        UUID(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
    )

    # True once the first code has been verified after setup
    is_set_up = Column(Boolean, default=False, nullable=False)

    # Encrypted TOTP secret
    secret_ciphertext = Column(Text, nullable=True)
    secret_iv = Column(String(32), nullable=True)
    secret_tag = Column(String(32), nullable=True)

    # Brute-force protection
    failed_attempts = Column(Integer, default=0, nullable=False)
    locked_until = Column(DateTime, nullable=True)  # NULL = not locked

    last_verified_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utc_now_lambda, nullable=False)
    updated_at = Column(DateTime, default=utc_now_lambda, onupdate=utc_now_lambda, nullable=False)

    user = relationship("User", back_populates="two_factor")

    @property
    def has_secret(self) -> bool:
        return bool(self.secret_ciphertext and self.secret_iv and self.secret_tag)

    def is_locked(self, now=None) -> bool:
        """Check if verification is currently locked out."""
        if self.locked_until is None:
            return False
        return self.locked_until > (now or utc_now())

    def __repr__(self):
        return f"<UserTwoFactor user={self.user_id} set_up={self.is_set_up}>"


class RecoveryCode(Base):
    """One hashed, single-use recovery code."""

    __tablename__ = "recovery_codes"
    __table_args__ = (UniqueConstraint("user_id", "position", name="uq_recovery_code_position"),)

    id = Column(UUID(), primary_key=True, default=uuid4)
    user_id = Column(
        UUID(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position = Column(Integer, nullable=False)  # Order in which the codes were issued
    code_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=utc_now_lambda, nullable=False)

    user = relationship("User", back_populates="recovery_codes")

    def __repr__(self):
        return f"<RecoveryCode user={self.user_id} position={self.position}>"
