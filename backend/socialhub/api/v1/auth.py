"""Authentication API endpoints."""

from typing import Union

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from socialhub.config import Settings
from socialhub.core.container import Services
from socialhub.core.database import get_db
from socialhub.core.exceptions import UnauthorizedError
from socialhub.dependencies import authorization_token, get_services
from socialhub.schemas.auth import (
    AccessTokenResponse,
    LoginRequest,
    MessageResponse,
    PendingTwoFactorResponse,
    RefreshTokenRequest,
    RegisterRequest,
    ResetPassword,
    ResetPasswordRequest,
)
from socialhub.services.token_service import SessionTokens

router = APIRouter()


def set_refresh_cookie(response: Response, refresh_token: str, settings: Settings) -> None:
    """Set the refresh token as an httpOnly cookie on the response."""
    response.set_cookie(
        key=settings.REFRESH_COOKIE_NAME,
        value=refresh_token,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 86400,
        path=settings.REFRESH_COOKIE_PATH,  # Scope cookie to auth endpoints only
    )


def clear_refresh_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(key=settings.REFRESH_COOKIE_NAME, path=settings.REFRESH_COOKIE_PATH)


def session_response(
    response: Response, tokens: SessionTokens, settings: Settings, message: str
) -> AccessTokenResponse:
    """Access token in the body, refresh token in the cookie."""
    set_refresh_cookie(response, tokens.refresh_token, settings)
    return AccessTokenResponse(access_token=tokens.access_token, message=message)


@router.post("/register", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def register(
    data: RegisterRequest,
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    """Create an account and send the verification email."""
    await services.auth.register(
        db,
        firstname=data.firstname,
        lastname=data.lastname,
        email=data.email,
        password=data.password,
    )
    return MessageResponse(message="Register success.")


@router.post(
    "/login", response_model=Union[AccessTokenResponse, PendingTwoFactorResponse]
)
async def login(
    data: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    """
    Log in with email and password.

    Users with 2FA enabled receive a ``pending2FAToken`` to use with
    ``/auth/2fa/verify`` instead of a session.
    """
    result = await services.auth.login(db, data.email, data.password)
    if result.requires_2fa:
        return PendingTwoFactorResponse(
            pending_2fa_token=result.pending_2fa_token,
            message="2FA verification required.",
        )
    return session_response(response, result.tokens, services.settings, "Login success.")


@router.get("/verify-email/{token}", response_model=AccessTokenResponse)
async def verify_email(
    token: str,
    response: Response,
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    """Confirm the email address from the link in the verification email."""
    tokens = await services.auth.verify_email(db, token)
    return session_response(response, tokens, services.settings, "Email verify success.")


@router.patch("/to-reset-password", response_model=MessageResponse)
async def request_password_reset(
    data: ResetPasswordRequest,
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    """Send a password-reset email."""
    await services.auth.request_password_reset(db, data.email)
    return MessageResponse(message="Resetting password request accepted.")


@router.patch("/reset-password", response_model=MessageResponse)
async def reset_password(
    data: ResetPassword,
    reset_token: str = Depends(authorization_token),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    """Set a new password using the token from the reset email."""
    await services.auth.reset_password(db, reset_token, data.email, data.password)
    return MessageResponse(message="Password reset success.")


@router.post("/refresh", response_model=AccessTokenResponse)
async def refresh(
    request: Request,
    response: Response,
    data: RefreshTokenRequest | None = None,
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    """
    Exchange a refresh token for a new access token.

    The cookie is preferred; the body is accepted for non-browser clients.
    The refresh token is rotated on every call.
    """
    settings = services.settings
    refresh_token = request.cookies.get(settings.REFRESH_COOKIE_NAME)
    if not refresh_token and data is not None:
        refresh_token = data.refresh_token
    if not refresh_token:
        raise UnauthorizedError("Refresh token missing.")

    tokens = await services.auth.refresh(db, refresh_token)
    return session_response(response, tokens, settings, "Token refresh success.")


@router.post("/logout", response_model=MessageResponse)
async def logout(response: Response, services: Services = Depends(get_services)):
    """Drop the refresh cookie."""
    clear_refresh_cookie(response, services.settings)
    return MessageResponse(message="Logout success.")
