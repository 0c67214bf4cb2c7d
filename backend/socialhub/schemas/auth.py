"""Authentication Pydantic schemas."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class RegisterRequest(BaseModel):
    """Schema for user registration."""

    firstname: str = Field(..., min_length=2, max_length=100)
    lastname: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)

    @field_validator("firstname", "lastname")
    @classmethod
    def strip_names(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 2:
            raise ValueError("must be at least 2 characters")
        return v


class LoginRequest(BaseModel):
    """Schema for user login."""

    email: EmailStr
    password: str = Field(..., min_length=1)


class ResetPasswordRequest(BaseModel):
    """Schema for requesting a password-reset email."""

    email: EmailStr


class ResetPassword(BaseModel):
    """Schema for setting a new password with a reset token."""

    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)


class RefreshTokenRequest(BaseModel):
    """Refresh token sent in the body by clients that can't use the cookie."""

    model_config = ConfigDict(populate_by_name=True)

    refresh_token: Optional[str] = Field(None, alias="refreshToken")


class TwoFactorVerifyRequest(BaseModel):
    """Exactly one of the two codes is expected; the service enforces it."""

    model_config = ConfigDict(populate_by_name=True)

    two_fa_code: Optional[str] = Field(None, alias="twoFACode", max_length=64)
    recovery_code: Optional[str] = Field(None, alias="recoveryCode", max_length=64)


class MessageResponse(BaseModel):
    message: str


class AccessTokenResponse(BaseModel):
    """Session established; the refresh token travels in the cookie."""

    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(..., alias="accessToken")
    message: str


class PendingTwoFactorResponse(BaseModel):
    """Second factor required before a session is issued."""

    model_config = ConfigDict(populate_by_name=True)

    pending_2fa_token: str = Field(..., alias="pending2FAToken")
    message: str


class TwoFactorSetupResponse(BaseModel):
    """Returned once by setup; the recovery codes are never shown again."""

    model_config = ConfigDict(populate_by_name=True)

    otp_auth_url: str = Field(..., alias="otpAuthURL")
    recovery_codes: list[str] = Field(..., alias="recoveryCodes")
    qr_code: str = Field(..., alias="qrCode", description="Base64-encoded PNG")
    message: str


class TwoFactorStatusData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    state: str
    is_set_up: bool = Field(..., alias="is2FASetUp")
    recovery_codes_remaining: int = Field(..., alias="recoveryCodesRemaining")
    failed_attempts: int = Field(..., alias="failed2FAAttempts")
    locked_until: Optional[datetime] = Field(None, alias="lockedUntil")
    last_verified_at: Optional[datetime] = Field(None, alias="last2FAVerifiedAt")


class TwoFactorStatusResponse(BaseModel):
    data: TwoFactorStatusData
    message: str
