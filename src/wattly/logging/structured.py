"""Structured logging setup using structlog."""

from __future__ import annotations

import logging
import re
import sys
from typing import Any

import structlog

# Swiss/Liechtenstein IBANs, compact or printed in groups of four
_IBAN_RE = re.compile(r"\b(?:CH|LI)\d{2}(?:[ ]?[0-9A-Z]){17}\b")


def mask_iban(text: str) -> str:
    """Keep country, check digits and the last four characters of every IBAN."""

    def _mask(match: re.Match[str]) -> str:
        compact = match.group(0).replace(" ", "")
        return f"{compact[:4]}{'*' * (len(compact) - 8)}{compact[-4:]}"

    return _IBAN_RE.sub(_mask, text)


def redact_ibans(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog processor: account numbers never reach the log sinks."""
    for key, value in event_dict.items():
        if isinstance(value, str):
            event_dict[key] = mask_iban(value)
    return event_dict


def setup_logging(level: str = "INFO", fmt: str = "json", log_file: str = "") -> None:
    """Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        fmt: Output format - "json" for production, "console" for development.
        log_file: Optional file path for log output. Empty = stderr only.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        redact_ibans,
    ]

    if fmt == "console":
        renderer: structlog.types.Processor = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    else:
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

    # Engine modules log through logging.getLogger(__name__); their records
    # run through the same chain to pick up organization/period/actor context.
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    # stdout carries command output
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    for handler in handlers:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    for noisy in ("uvicorn.access", "aiosqlite", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
