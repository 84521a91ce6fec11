"""Structured logging for litestar-automations.

Modules log through :func:`get_logger` with key/value events. Applications call
:func:`configure_logging` once at startup; the Litestar plugin does so when asked.
"""

from __future__ import annotations

import logging
from typing import Any

import structlog

__all__ = ["bind_execution", "configure_logging", "get_logger", "unbind_execution"]

_SECRET_KEYS = {"password", "secret", "token", "api_key", "authorization", "email", "phone"}


def _redact_secrets(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Processor masking values of secret-looking keys."""
    for key in list(event_dict.keys()):
        lower_key = key.lower()
        if any(secret in lower_key for secret in _SECRET_KEYS):
            value = event_dict[key]
            if isinstance(value, str) and len(value) > 4:
                event_dict[key] = value[:2] + "***" + value[-2:]
    return event_dict


def configure_logging(
    log_level: str = "INFO",
    json_output: bool = True,
    development_mode: bool = False,
) -> None:
    """Configure structlog processors and output.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
        json_output: If True, output JSON; if False, output human-readable lines.
        development_mode: If True, use pretty console output.
    """
    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _redact_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if development_mode or not json_output:
        processors = [*shared_processors, structlog.dev.ConsoleRenderer(colors=development_mode)]
    else:
        processors = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, log_level.upper(), logging.INFO)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> Any:
    """Return a structlog logger bound to ``name``."""
    return structlog.get_logger(name)


def bind_execution(execution_id: Any, workflow_id: str, organization_id: str) -> None:
    """Bind execution identifiers to every log line of the current task."""
    structlog.contextvars.bind_contextvars(
        execution_id=str(execution_id),
        workflow_id=workflow_id,
        organization_id=organization_id,
    )


def unbind_execution() -> None:
    structlog.contextvars.unbind_contextvars("execution_id", "workflow_id", "organization_id")
