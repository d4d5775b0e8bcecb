"""
Structured logging: timestamp, level, event_type, stake_address.

structlog with ISO timestamps and consistent keys. Output goes to stderr so a
CSV written to stdout is never interleaved with log lines.

LOG_LEVEL and LOG_FORMAT are read after the project .env is loaded, so both can
be set there. Only koios_stake_txs.config.env is imported; it does not log.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

import structlog

from koios_stake_txs.config.env import load_env


def log_level() -> int:
    level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    return getattr(logging, level, logging.INFO)


def log_format() -> str:
    """JSON lines with LOG_FORMAT=json; human-readable console output otherwise."""
    return os.getenv("LOG_FORMAT", "console").strip().lower()


def _add_timestamp(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Ensure timestamp is always present (ISO 8601)."""
    if "timestamp" not in event_dict:
        event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def _normalize_event(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Rename structlog 'event' to event_type for JSON output."""
    if "event" in event_dict and "event_type" not in event_dict:
        event_dict["event_type"] = event_dict.pop("event")
    return event_dict


class _StderrStream:
    """Write to whatever sys.stderr is at call time (pytest and shells may swap it)."""

    def write(self, message: str) -> int:
        return sys.stderr.write(message)

    def flush(self) -> None:
        sys.stderr.flush()


def configure_structlog() -> None:
    """Configure structlog (called once at import): level, timestamp, renderer, stderr."""
    load_env()
    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _add_timestamp,
    ]
    if log_format() == "json":
        shared_processors.append(_normalize_event)
        shared_processors.append(structlog.processors.JSONRenderer())
    else:
        shared_processors.append(
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
        )
    structlog.configure(
        processors=shared_processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level()),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=_StderrStream()),
        cache_logger_on_first_use=True,
    )


if not structlog.is_configured():
    configure_structlog()


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Return a structured logger for the given module name.

    Log with an event name first and context as keyword fields:
        logger = get_logger(__name__)
        logger.info("koios_batch_fetched", batch=2, tx_count=50)
    """
    return structlog.get_logger(name).bind(logger=name)


def bind_stake_address(stake_address: str) -> structlog.BoundLogger:
    """Return a logger with stake_address bound to all subsequent log calls."""
    return get_logger("koios_stake_txs").bind(stake_address=stake_address)
