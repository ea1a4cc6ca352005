"""
Structured Logging
==================
structlog configuration for services embedding twofa_core.

Usage:
    from twofa_core.logging import setup_logging, bind_context

    setup_logging(service_name="auth-api")
    bind_context(request_id="req_123")
"""

import logging
import sys
from typing import Any, Dict
import structlog

SENSITIVE_KEYS = frozenset({"code", "code_hash", "salt", "secret_key", "password"})


def redact_sensitive(logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Mask values whose key could carry a code or secret."""
    for key in SENSITIVE_KEYS.intersection(event_dict):
        event_dict[key] = "******"
    return event_dict


def setup_logging(
    service_name: str,
    level: str = "INFO",
    json_output: bool = True,
) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        service_name: Name bound to every log line
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: JSON lines for production, console rendering otherwise
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            redact_sensitive,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=service_name)
    structlog.get_logger(__name__).info("logging.configured", service=service_name)


def bind_context(**kwargs: Any) -> None:
    """Bind key-values (request_id, principal_id, ...) to subsequent log lines."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context(*keys: str) -> None:
    if keys:
        structlog.contextvars.unbind_contextvars(*keys)
    else:
        structlog.contextvars.clear_contextvars()
