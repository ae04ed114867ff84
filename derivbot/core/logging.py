"""Structured logging foundation for derivbot.

Provides JSON logging (prod) or colored console (dev) via structlog.
Includes an audit trail logger for contract lifecycle events.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import IO, Any, cast

import structlog

_LOG_LEVELS: dict[str, str] = {"current": "INFO"}
_CONFIGURED = False
_LOG_FILE: IO[str] | None = None


def _configure_structlog(level: str | None = None, file_path: str | None = None) -> None:
    """Configure structlog based on DERIVBOT_ENV and DERIVBOT_LOG_LEVEL."""
    global _LOG_FILE

    env = os.environ.get("DERIVBOT_ENV", "development")
    log_level_name = (level or os.environ.get("DERIVBOT_LOG_LEVEL", "INFO")).upper()
    if log_level_name not in logging.getLevelNamesMapping():
        log_level_name = "INFO"

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    output: IO[str] = sys.stderr
    if _LOG_FILE is not None:
        _LOG_FILE.close()
        _LOG_FILE = None
    if file_path:
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        _LOG_FILE = open(path, "a", encoding="utf-8")  # noqa: SIM115
        output = _LOG_FILE

    if env == "production" or file_path:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=output.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelNamesMapping()[log_level_name],
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=output),
        cache_logger_on_first_use=False,
    )

    _LOG_LEVELS["current"] = log_level_name


def configure_logging(level: str | None = None, file_path: str | None = None) -> None:
    """Reconfigure logging explicitly (level override, optional file sink).

    Called once at startup after settings are loaded. Loggers obtained
    earlier through ``get_logger`` pick up the new configuration.
    """
    global _CONFIGURED
    _configure_structlog(level=level, file_path=file_path)
    _CONFIGURED = True


def current_level() -> str:
    return _LOG_LEVELS["current"]


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a named logger instance.

    Args:
        name: Logger name (typically module __name__).

    Returns:
        Configured structlog BoundLogger.
    """
    global _CONFIGURED
    if not _CONFIGURED:
        _configure_structlog()
        _CONFIGURED = True

    return cast(structlog.stdlib.BoundLogger, structlog.get_logger(name))


def get_audit_logger() -> structlog.stdlib.BoundLogger:
    """Get the audit trail logger for contract events.

    All audit events are logged with event_type for downstream filtering.
    """
    return get_logger("derivbot.audit")


def log_contract_event(
    action: str,
    contract_id: str,
    **kwargs: Any,
) -> None:
    """Log a contract lifecycle event to the audit trail.

    Args:
        action: Event type (buy, predict, settle, forget).
        contract_id: Venue contract id.
        **kwargs: Additional context (symbol, stake, profit, etc).
    """
    logger = get_audit_logger()
    logger.info(
        "contract_event",
        event_type="audit",
        action=action,
        contract_id=contract_id,
        **kwargs,
    )
