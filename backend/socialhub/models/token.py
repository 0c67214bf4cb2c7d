"""Token deny-list model."""

from uuid import uuid4

from sqlalchemy import Column, DateTime, String

from socialhub.core.database import Base
from socialhub.core.db_types import UUID
from socialhub.utils.datetime_utils import utc_now_lambda


class RevokedToken(Base):
    """
    A revoked token id (SHA-256 of the ``jti`` claim).

    Rows are only needed until the token would have expired anyway.
    """

    __tablename__ = "revoked_tokens"

    id = Column(UUID(), primary_key=True, default=uuid4)
    jti_hash = Column(String(64), nullable=False, unique=True, index=True)
    token_type = Column(String(32), nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, default=utc_now_lambda, nullable=False)

    def __repr__(self):
        return f"<RevokedToken {self.token_type} expires={self.expires_at}>"
