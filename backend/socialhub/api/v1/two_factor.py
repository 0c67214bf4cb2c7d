"""Two-factor authentication endpoints."""

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from socialhub.api.v1.auth import session_response
from socialhub.core.container import Services
from socialhub.core.database import get_db
from socialhub.dependencies import access_token_header, authorization_token, get_services
from socialhub.schemas.auth import (
    AccessTokenResponse,
    MessageResponse,
    PendingTwoFactorResponse,
    TwoFactorSetupResponse,
    TwoFactorStatusData,
    TwoFactorStatusResponse,
    TwoFactorVerifyRequest,
)

router = APIRouter()


@router.patch("/initiate", response_model=PendingTwoFactorResponse)
async def initiate(
    access_token: str = Depends(access_token_header),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    """Start 2FA setup; returns the pending token for the next two steps."""
    pending = await services.two_factor.initiate(db, access_token)
    return PendingTwoFactorResponse(pending_2fa_token=pending, message="2FA initiation success.")


@router.post("/setup", response_model=TwoFactorSetupResponse)
async def setup(
    pending_token: str = Depends(authorization_token),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    """Generate the TOTP secret and recovery codes."""
    result = await services.two_factor.setup(db, pending_token)
    return TwoFactorSetupResponse(
        otp_auth_url=result.otpauth_url,
        recovery_codes=result.recovery_codes,
        qr_code=result.qr_code,
        message="2FA setup success.",
    )


@router.post("/verify", response_model=AccessTokenResponse)
async def verify(
    data: TwoFactorVerifyRequest,
    response: Response,
    pending_token: str = Depends(authorization_token),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    """Verify a TOTP code or a recovery code and start the session."""
    tokens = await services.two_factor.verify(
        db,
        pending_token,
        two_fa_code=data.two_fa_code,
        recovery_code=data.recovery_code,
    )
    return session_response(response, tokens, services.settings, "2FA verification success.")


@router.patch("/deinit", response_model=MessageResponse)
async def deinit(
    access_token: str = Depends(access_token_header),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    """Turn 2FA off."""
    await services.two_factor.deinit(db, access_token)
    return MessageResponse(message="2FA deinitialization success.")


@router.get("/status", response_model=TwoFactorStatusResponse)
async def status(
    access_token: str = Depends(access_token_header),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    current = await services.two_factor.status(db, access_token)
    return TwoFactorStatusResponse(
        data=TwoFactorStatusData(
            state=current.state.value,
            is_set_up=current.is_set_up,
            recovery_codes_remaining=current.recovery_codes_remaining,
            failed_attempts=current.failed_attempts,
            locked_until=current.locked_until,
            last_verified_at=current.last_verified_at,
        ),
        message="2FA status.",
    )
