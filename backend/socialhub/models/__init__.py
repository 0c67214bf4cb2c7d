"""SQLAlchemy models package."""

from socialhub.models.user import User
from socialhub.models.two_factor import RecoveryCode, UserTwoFactor
from socialhub.models.token import RevokedToken

__all__ = [
    "User",
    "UserTwoFactor",
    "RecoveryCode",
    "RevokedToken",
]
