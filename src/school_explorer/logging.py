"""Logging configuration for School Explorer."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import structlog
from structlog.types import EventDict, WrappedLogger

from school_explorer import __version__
from school_explorer.config import get_settings

# Longest string value kept in a log line; user queries and answers are clipped
MAX_LOGGED_VALUE_LENGTH = 300

_UNCLIPPED_KEYS = frozenset({"event", "exception", "stack"})


def add_service_context(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    """Stamp every line with the service name and version."""
    event_dict.setdefault("service", "school_explorer")
    event_dict.setdefault("version", __version__)
    return event_dict


def clip_long_values(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    """Shorten string values longer than ``MAX_LOGGED_VALUE_LENGTH``."""
    for key, value in event_dict.items():
        if (
            key not in _UNCLIPPED_KEYS
            and isinstance(value, str)
            and len(value) > MAX_LOGGED_VALUE_LENGTH
        ):
            event_dict[key] = f"{value[:MAX_LOGGED_VALUE_LENGTH]}... ({len(value)} chars)"
    return event_dict


def setup_logging() -> None:
    """Configure structured logging with console and file outputs."""
    settings = get_settings()
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    log_to_file = settings.log_to_file
    if log_to_file:
        try:
            Path(settings.log_directory).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            # If we can't create log directory, continue with console-only logging
            print(f"Warning: Could not create log directory: {e}", file=sys.stderr)
            log_to_file = False

    logging.basicConfig(
        format="%(message)s",
        level=log_level,
        handlers=[],
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    logging.root.addHandler(console_handler)

    file_handler = None
    if log_to_file:
        try:
            file_handler = RotatingFileHandler(
                filename=settings.log_file_path,
                maxBytes=settings.log_file_max_bytes,
                backupCount=settings.log_file_backup_count,
                encoding="utf-8",
            )
            file_handler.setLevel(log_level)
            logging.root.addHandler(file_handler)
        except OSError as e:
            print(f"Warning: Could not setup file logging: {e}", file=sys.stderr)
            file_handler = None

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            add_service_context,
            clip_long_values,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Console: colored in dev, JSON in prod
    console_formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            (
                structlog.dev.ConsoleRenderer(colors=True)  # type: ignore[list-item]
                if settings.is_development
                else structlog.processors.JSONRenderer()
            ),
        ]
    )
    console_handler.setFormatter(console_formatter)

    # File: always JSON for easy parsing
    if file_handler:
        file_formatter = structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.JSONRenderer(),
            ]
        )
        file_handler.setFormatter(file_formatter)

    # Reduce noise from third-party packages
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("anthropic").setLevel(logging.WARNING)
    logging.getLogger("google_genai").setLevel(logging.WARNING)
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance."""
    return structlog.get_logger(name)  # type: ignore[no-any-return]
