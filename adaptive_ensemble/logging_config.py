"""
Structured logging for the ensemble.

Every module asks for its logger with get_logger(__name__) and logs
snake_case events with key/value context, e.g.

    logger.info("round_decided", strategy="CONSENSUS", confidence=78)

configure_structlog() is called once by the hosting application. Without it
structlog falls back to its own defaults, which is fine for tests.
"""

import logging
import sys
from typing import Optional

import structlog


def configure_structlog(
    log_level: str = "INFO", log_file: Optional[str] = None, json: bool = True
):
    """Configure structlog on top of the standard logging module.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR
        log_file: Optional file path; stdout when omitted
        json: Render JSON lines (True) or human-readable console output
    """
    handler = (
        logging.FileHandler(log_file)
        if log_file
        else logging.StreamHandler(sys.stdout)
    )
    logging.basicConfig(
        format="%(message)s",
        handlers=[handler],
        level=getattr(logging, log_level.upper()),
        force=True,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if json
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str):
    """Return a structlog logger bound to `name` (typically __name__)."""
    return structlog.get_logger(name)
