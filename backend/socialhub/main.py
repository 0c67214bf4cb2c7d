"""FastAPI main application.

Run with:
    uvicorn socialhub.main:create_app --factory
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncEngine

from socialhub.api.v1 import auth, two_factor
from socialhub.config import Settings, get_settings
from socialhub.core.container import Services, build_services
from socialhub.core.database import (
    close_db,
    create_engine_from_settings,
    create_session_factory,
    init_db,
)
from socialhub.core.exceptions import register_exception_handlers
from socialhub.core.logging_config import setup_logging
from socialhub.core.metrics import metrics_endpoint
from socialhub.middleware.error_handler import ErrorHandlerMiddleware
from socialhub.middleware.request_logging import RequestLoggingMiddleware

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings: Settings = app.state.settings
    setup_logging(settings)
    logger.info("Starting %s API (%s)", settings.APP_NAME, settings.ENVIRONMENT)

    await init_db(app.state.engine)
    if not app.state.services.mailer.is_configured:
        logger.warning("SMTP is not configured; verification and reset emails will be skipped")

    yield

    logger.info("Shutting down %s API", settings.APP_NAME)
    await close_db(app.state.engine)


def create_app(
    settings: Optional[Settings] = None,
    services: Optional[Services] = None,
    engine: Optional[AsyncEngine] = None,
) -> FastAPI:
    """
    Build the application.

    Everything stateful (engine, session factory, services) is created here
    and attached to ``app.state``.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        lifespan=lifespan,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        openapi_url="/openapi.json" if settings.DEBUG else None,
    )

    app.state.settings = settings
    app.state.engine = engine or create_engine_from_settings(settings)
    app.state.session_factory = create_session_factory(app.state.engine)
    app.state.services = services or build_services(settings)

    register_exception_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(ErrorHandlerMiddleware, debug=settings.DEBUG)
    app.add_middleware(RequestLoggingMiddleware)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    if settings.METRICS_ENABLED:
        app.add_route("/metrics", metrics_endpoint, include_in_schema=False)

    app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
    app.include_router(two_factor.router, prefix="/auth/2fa", tags=["Two-Factor Authentication"])

    return app
