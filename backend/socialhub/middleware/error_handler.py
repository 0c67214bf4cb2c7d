"""Production error handler middleware with PII redaction."""

import logging
from typing import Callable

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from socialhub.utils.logging_utils import redact_ip

logger = logging.getLogger(__name__)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Catch exceptions that escaped the exception handlers.

    - Logs the error with the client IP redacted
    - Returns an opaque 500 (details only when debug is on)
    """

    def __init__(self, app: ASGIApp, debug: bool = False):
        super().__init__(app)
        self.debug = debug

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            logger.exception(
                "Unhandled %s on %s %s from %s",
                type(exc).__name__,
                request.method,
                request.url.path,
                redact_ip(request.client.host if request.client else None),
            )

            if self.debug:
                content = {
                    "message": "An error occurred processing your request",
                    "error": str(exc),
                    "type": type(exc).__name__,
                }
            else:
                content = {"message": "Internal server error"}

            return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)
