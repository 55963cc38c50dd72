"""
Logging configuration for Health Companion.

Our own events are emitted with structlog. Firebase Admin, Firestore,
Cloudinary and gTTS log through the standard library; their records are
rendered by the same structlog processors, so every line on stdout has
one format (JSON in production, console in debug).
"""

import logging
import sys
from typing import Optional, TextIO

import structlog
from structlog.types import Processor

from health_companion.config import settings

# Provider SDKs that are chatty at INFO
PROVIDER_LOGGERS = (
    "firebase_admin",
    "google",
    "cloudinary",
    "gtts",
    "urllib3",
    "httpx",
)


def configure_logging(
    log_level: Optional[str] = None,
    json_format: bool = True,
    stream: Optional[TextIO] = None
) -> None:
    """
    Configure structlog and route standard-library records through it.

    Args:
        log_level: Override log level (defaults to settings.log_level)
        json_format: JSON lines (True) or coloured console output (False)
        stream: Output stream, stdout by default
    """
    level = log_level or settings.log_level
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if json_format:
        renderer: Processor = structlog.processors.JSONRenderer(ensure_ascii=False)
        shared_processors.append(structlog.processors.format_exc_info)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    ))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(numeric_level)

    for name in PROVIDER_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))


def get_logger(name: str = "health_companion") -> structlog.BoundLogger:
    """Structured logger named after the component that uses it."""
    return structlog.get_logger(name)
