"""Logging setup.

Storage-boundary events go through structlog with key/value context; service
modules use stdlib ``logging.getLogger(__name__)``. configure_logging()
routes both to stdout at the same level.
"""

import logging
import sys

import structlog

from account_service.core.config import settings


def configure_logging(
    level: str | None = None, *, use_json: bool | None = None
) -> None:
    """Configure structlog processors and the stdlib root logger.

    Args:
        level: Log level name (e.g. "INFO", "DEBUG"). Defaults to
            settings.log_level.
        use_json: JSON output when True, console output when False.
            Defaults to JSON in production.

    Raises:
        ValueError: If the level name is unknown.
    """
    if level is None:
        level = settings.log_level
    if use_json is None:
        use_json = settings.environment == "production"

    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    processors: list[structlog.types.Processor] = [
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if use_json:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=False,
    )

    logging.basicConfig(
        level=numeric_level,
        stream=sys.stdout,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        force=True,
    )
