"""
Structured logging setup for VoxGuard.

Configures structlog for JSON-formatted structured logging. Every log
line includes timestamp, level, service name, and event. Per-session
context (session_id, rule_code) is bound at processing time.
"""

from __future__ import annotations

import logging
import sys

import structlog

from vg_common.config import get_settings


def configure_logging(
    service_name: str,
    level: str | None = None,
    json: bool | None = None,
) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        service_name: Value bound to the ``service`` key on every event.
        level: Logging level name.  Falls back to ``Settings.log_level``.
        json: Emit JSON lines.  Falls back to ``Settings.log_json``.
    """
    settings = get_settings()
    level_name = (level or settings.log_level).upper()
    numeric_level = logging.getLevelName(level_name)
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO
    use_json = settings.log_json if json is None else json

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=numeric_level,
        force=True,
    )

    renderer: structlog.types.Processor
    if use_json:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=service_name)
