"""
Structured logging configuration using structlog.

Produces JSON logs in production, human-readable colored logs at DEBUG.
Key material never reaches a log line: secret fields are dropped and
signatures are shortened before rendering.
"""

import logging
import sys
from typing import Any, Optional

import structlog

SECRET_KEYS = frozenset({
    "private_key",
    "privatekey",
    "relayer_private_key",
    "mnemonic",
    "session_private_key",
})
SIGNATURE_KEYS = frozenset({"signature", "signatures"})


def _shorten(value: Any) -> Any:
    if isinstance(value, str) and len(value) > 18:
        return f"{value[:10]}...{value[-4:]}"
    if isinstance(value, (list, tuple)):
        return [_shorten(item) for item in value]
    return value


def redact_secrets(
    logger: Any, method_name: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    """Drop key material and shorten signatures in structured fields."""
    for key in list(event_dict):
        lowered = key.lower()
        if lowered in SECRET_KEYS:
            event_dict[key] = "[redacted]"
        elif lowered in SIGNATURE_KEYS:
            event_dict[key] = _shorten(event_dict[key])
    return event_dict


def setup_logging(log_level: Optional[str] = None) -> None:
    """Configure structlog for structured JSON logging.

    Args:
        log_level: Override log level (default: from settings.log_level)
    """
    if log_level is None:
        from .config import settings

        log_level = settings.log_level

    level = getattr(logging, log_level.upper(), logging.INFO)
    is_dev = level == logging.DEBUG

    # Shared processors for both structlog and stdlib
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        redact_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if is_dev:
        renderer = structlog.dev.ConsoleRenderer()
    else:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Route stdlib logging (the core modules log through it) into structlog
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # Quiet noisy third-party loggers
    for name in ("uvicorn.access", "httpcore", "httpx"):
        logging.getLogger(name).setLevel(logging.WARNING)
