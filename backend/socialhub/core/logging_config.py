"""
Structured logging configuration.

Logs are JSON formatted in production (or when LOG_FORMAT=json) for log
aggregation tools, and human-readable otherwise.

Usage:
    from socialhub.core.logging_config import setup_logging, get_logger

    setup_logging(settings)

    logger = get_logger(__name__)
    logger.info("two_factor_verified", user_id=str(user.id), method="totp")
"""

import logging
import sys

import structlog
from pythonjsonlogger import jsonlogger

from socialhub.config import Settings


def setup_logging(settings: Settings) -> None:
    """
    Configure stdlib logging and structlog for the application.

    Args:
        settings: Application settings (LOG_LEVEL, LOG_FORMAT, ENVIRONMENT)
    """
    use_json = settings.LOG_FORMAT == "json" or settings.is_production

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    )

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.LINENO,
                structlog.processors.CallsiteParameter.FUNC_NAME,
            ],
        ),
    ]

    if use_json:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _configure_stdlib_json(use_json)

    if settings.is_production:
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
        logging.getLogger("aiosmtplib").setLevel(logging.WARNING)


def _configure_stdlib_json(use_json: bool = False) -> None:
    """Give uvicorn and the app's stdlib loggers a JSON formatter."""
    if not use_json:
        return

    formatter = jsonlogger.JsonFormatter(
        "%(asctime)s %(name)s %(levelname)s %(message)s",
        rename_fields={"asctime": "timestamp", "levelname": "level"},
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    for logger_name in ["uvicorn", "uvicorn.access", "uvicorn.error", "socialhub"]:
        logger = logging.getLogger(logger_name)
        logger.handlers.clear()
        logger.addHandler(handler)
        logger.propagate = False


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)
    """
    return structlog.get_logger(name)
