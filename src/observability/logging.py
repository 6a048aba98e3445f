"""
Structured logging configuration using structlog.

JSON logs in production, coloured console logs elsewhere. Scan-path
modules run on every debounced keystroke, so in production their
DEBUG output is capped at INFO even when LOG_LEVEL=DEBUG; set
ENVIRONMENT=development to see per-scan detail. Document ids and
revisions travel as bound context fields.
"""

import logging
import sys

import structlog
from structlog.types import Processor

from src.config.settings import get_settings

# Loggers that fire once or more per scan
SCAN_PATH_LOGGERS = (
    "src.highlighting.scanner",
    "src.highlighting.window",
    "src.highlighting.pipeline",
    "src.highlighting.applier",
    "src.highlighting.scheduler",
)


def _render_processors(production: bool) -> list[Processor]:
    if production:
        return [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    return [structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())]


def setup_logging() -> None:
    """
    Configure structured logging for the highlighter.

    Usage:
        setup_logging()
        logger = structlog.get_logger(__name__)
        logger.info("Scan applied", document_id="chapter-1", revision=4)
    """
    settings = get_settings()
    level = getattr(logging, settings.log_level)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.configure(
        processors=shared_processors + _render_processors(settings.is_production),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    # basicConfig is a no-op once the root logger has handlers
    logging.getLogger().setLevel(level)

    scan_level = max(level, logging.INFO) if settings.is_production else logging.NOTSET
    for name in SCAN_PATH_LOGGERS:
        logging.getLogger(name).setLevel(scan_level)

    logging.getLogger("asyncio").setLevel(logging.WARNING)


def bind_context(**kwargs) -> None:
    """
    Bind context variables to all subsequent log messages.

    Args:
        **kwargs: Key-value pairs to bind (e.g. document_id)
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()
