"""FastAPI dependencies for services and bearer tokens."""

from typing import Callable

from fastapi import Depends, Request

from socialhub.core.container import Services


def get_services(request: Request) -> Services:
    """Services built for this application in ``create_app``."""
    return request.app.state.services


def bearer_token(header_name: str = "Authorization") -> Callable:
    """
    Build a dependency that reads ``Bearer <token>`` from *header_name*.

    Missing or malformed headers raise BadRequestError (400).
    """

    async def _read(request: Request, services: Services = Depends(get_services)) -> str:
        return services.tokens.read_bearer(request.headers.get(header_name), header_name)

    return _read


# Authorization: Bearer <token>; carries pending 2FA and password-reset tokens
authorization_token = bearer_token("Authorization")

# X-Access-Token: Bearer <access token>; used by the 2FA management endpoints
access_token_header = bearer_token("X-Access-Token")
