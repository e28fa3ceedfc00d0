# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""structlog setup for sshdeck.

Records go to stderr so stdout stays free for shell bytes and command
output. Credential-bearing keys are masked before any renderer sees them.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Any

import structlog

from sshdeck.constants import REDACTED_LOG_KEYS

if TYPE_CHECKING:
    from structlog.typing import EventDict, Processor, WrappedLogger

    from sshdeck.settings import Settings

__all__ = ["configure_logging", "get_logger", "redact_secrets"]

REDACTED = "***"


def redact_secrets(_logger: WrappedLogger, _method: str, event_dict: EventDict) -> EventDict:
    """Mask passwords, passphrases and key material in a log record."""
    for key in REDACTED_LOG_KEYS.intersection(event_dict):
        if event_dict[key] is not None:
            event_dict[key] = REDACTED
    return event_dict


def _renderer(log_format: str) -> Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def configure_logging(settings: Settings | None = None) -> None:
    """Configure structlog once at startup.

    Args:
        settings: Level (``SSHDECK_LOG_LEVEL``) and format
            (``SSHDECK_LOG_FORMAT``: console or json); read from the
            environment when None
    """
    if settings is None:
        from sshdeck.settings import Settings

        settings = Settings()

    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.WARNING

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        redact_secrets,
    ]
    if settings.log_format == "json":
        processors.append(structlog.processors.format_exc_info)
    processors.append(_renderer(settings.log_format))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


def get_logger(name: str | None = None, **initial_values: Any) -> structlog.typing.FilteringBoundLogger:
    """Return a logger, optionally bound to context such as ``session_id``."""
    if name is None:
        return structlog.get_logger(**initial_values)
    return structlog.get_logger(name, **initial_values)
