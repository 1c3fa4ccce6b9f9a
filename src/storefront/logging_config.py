"""Structured logging configuration.

JSON output for production, colored console elsewhere.
Call configure_logging() once at application startup (FastAPI lifespan).
"""

import logging
import sys
from typing import Any

import structlog

SENSITIVE_KEYS: frozenset[str] = frozenset(
    {"token", "authorization", "cookie", "password", "secret"}
)
REDACTED = "***REDACTED***"


def is_sensitive_key(key: str) -> bool:
    """Match ``jwt_secret``, ``session_token``, ``set-cookie`` etc. by substring."""
    lowered = key.lower()
    return any(word in lowered for word in SENSITIVE_KEYS)


def _redact(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            k: REDACTED if isinstance(k, str) and is_sensitive_key(k) else _redact(v)
            for k, v in value.items()
        }
    return value


def _redact_sensitive_keys(
    logger: logging.Logger,
    method_name: str,
    event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    """Redact sensitive values, including inside nested dicts such as headers."""
    for key, value in event_dict.items():
        event_dict[key] = REDACTED if is_sensitive_key(key) else _redact(value)
    return event_dict


def configure_logging(
    environment: str = "development",
    log_level: str = "INFO",
) -> None:
    """Configure structlog processor chain and stdlib root logger.

    Args:
        environment: 'production' for JSON output, anything else
            for colored console output.
        log_level: Python log level name (DEBUG, INFO, WARNING, etc.).
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        _redact_sensitive_keys,
    ]

    renderer: structlog.types.Processor
    if environment == "production":
        renderer = structlog.processors.JSONRenderer()
        shared_processors.append(structlog.processors.format_exc_info)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=environment != "testing")

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level.upper())

    # Quiet noisy libraries
    for name in ("uvicorn.access", "redis", "sqlalchemy.engine"):
        logging.getLogger(name).setLevel(logging.WARNING)
