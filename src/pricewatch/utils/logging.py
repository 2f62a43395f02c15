from __future__ import annotations

import logging
import os

import structlog


def configure_logging(level: str | None = None, json_output: bool | None = None) -> None:
    """
    Level from LOG_LEVEL (default INFO); LOG_JSON=1 switches to one JSON object
    per line for log shippers, otherwise structlog's console renderer.
    """
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    lvl = logging.getLevelName(level_name)
    if not isinstance(lvl, int):
        lvl = logging.INFO
    if json_output is None:
        json_output = os.getenv("LOG_JSON", "0").lower() in ("1", "true", "yes")

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if json_output:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer())
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(lvl),
        cache_logger_on_first_use=True,
    )
