"""Structured logging with terminal-safe console output.

Log events go through stdlib logging to stderr so that JSON reports written
to stdout stay clean. When the terminal cannot render UTF-8, arrows and
box-drawing characters in event values are replaced with ASCII.
"""
import locale
import logging
import sys
from typing import Any

import structlog

_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}

# Unicode to ASCII mapping for non-UTF-8 terminals
ICON_MAP = {
    '→': '->',
    '←': '<-',
    '⇒': '=>',
    '…': '...',
    '•': '*',
    '│': '|',
    '─': '-',
    '✓': '[OK]',
    '✗': '[FAIL]',
    '⚠': '[WARN]',
}


def detect_terminal_encoding() -> str:
    """Detect the encoding of stderr, falling back to the locale.

    Returns:
        Lower-cased encoding name ('utf-8', 'cp1252', 'ascii', ...)
    """
    encoding = getattr(sys.stderr, 'encoding', None)
    if encoding:
        return encoding.lower()
    try:
        return locale.getpreferredencoding().lower()
    except (ValueError, LookupError):
        return 'ascii'


def is_utf8_capable() -> bool:
    return detect_terminal_encoding() in ('utf-8', 'utf8', 'utf_8')


def sanitize_for_terminal(text: str, utf8: bool | None = None) -> str:
    """Replace unicode icons with ASCII equivalents on non-UTF-8 terminals.

    Args:
        text: Text potentially containing unicode icons
        utf8: Override terminal detection (used by tests)

    Returns:
        Text safe for the current terminal
    """
    if utf8 is None:
        utf8 = is_utf8_capable()
    if utf8:
        return text
    for unicode_char, ascii_replacement in ICON_MAP.items():
        text = text.replace(unicode_char, ascii_replacement)
    return text


def _sanitize_event(
    _logger: structlog.types.WrappedLogger,
    _method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    utf8 = is_utf8_capable()
    for key, value in event_dict.items():
        if isinstance(value, str):
            event_dict[key] = sanitize_for_terminal(value, utf8=utf8)
    return event_dict


def configure_logging(level: str = "WARNING", json_format: bool = False) -> None:
    """Configure structlog on top of stdlib logging.

    Safe to call more than once; the root handler is replaced each time.

    Args:
        level: Minimum level name (DEBUG, INFO, WARNING, ERROR)
        json_format: Render JSON lines instead of the console format
    """
    default_level = _LEVEL_MAP.get(level.upper(), logging.WARNING)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.stdlib.add_logger_name,
    ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(default_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    if json_format:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _sanitize_event,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(default_level)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger bound to a module name."""
    return structlog.get_logger(name)
