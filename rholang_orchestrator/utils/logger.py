"""
Logging setup for the orchestrator.

The orchestrator talks to the language server over STDIN/STDOUT, so logs
always go to STDERR (or a caller-supplied sink), never to STDOUT.

Activation ID Support:
- Uses contextvars to propagate an activation ID across async operations
- A loguru patcher copies the current ID into every record's ``extra``
- Use with_activation_id() to scope log output to one activation
"""

import secrets
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Generator, TextIO

from loguru import logger as loguru_logger

# ============================================================================
# Activation Context
# ============================================================================

_activation_id: ContextVar[str | None] = ContextVar("activation_id", default=None)


def generate_activation_id() -> str:
    """
    Generate a unique activation ID.

    Format: act_<timestamp_base36>_<random_hex>
    """
    timestamp = int(time.time() * 1000)
    random_part = secrets.token_hex(4)
    return f"act_{base36_encode(timestamp)}_{random_part}"


def base36_encode(number: int) -> str:
    """Encode an integer to base36 string."""
    if number == 0:
        return "0"

    chars = "0123456789abcdefghijklmnopqrstuvwxyz"
    result = []
    while number:
        result.append(chars[number % 36])
        number //= 36
    return "".join(reversed(result))


def get_activation_id() -> str | None:
    """Get the current activation ID (if any)."""
    return _activation_id.get()


@contextmanager
def with_activation_id(activation_id: str | None = None) -> Generator[str, None, None]:
    """
    Context manager for running code under an activation ID.

    All log messages within this context carry the ID in ``extra``.
    Works across async operations automatically via contextvars.

    Args:
        activation_id: The ID to use; a fresh one is generated when omitted

    Yields:
        The activation ID in effect
    """
    value = activation_id or generate_activation_id()
    token = _activation_id.set(value)
    try:
        yield value
    finally:
        _activation_id.reset(token)


def _attach_activation_id(record: Any) -> None:
    record["extra"].setdefault("activation_id", _activation_id.get() or "-")


# ============================================================================
# Logger Configuration
# ============================================================================

# rholang-language-server level names -> loguru level names
_LEVEL_MAP: dict[str, str] = {
    "error": "ERROR",
    "warn": "WARNING",
    "warning": "WARNING",
    "info": "INFO",
    "debug": "DEBUG",
    "trace": "TRACE",
}

_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "{extra[activation_id]} | <cyan>{name}</cyan> - <level>{message}</level>"
)


def to_loguru_level(level: str) -> str:
    """Map a server log level name to a loguru level, defaulting to INFO."""
    return _LEVEL_MAP.get(level.lower(), "INFO")


def configure_logging(level: str = "info", sink: TextIO | None = None) -> int:
    """
    Install a single sink for orchestrator logs.

    Args:
        level: Server-style level name (error, warn, info, debug, trace)
        sink: Destination stream, STDERR by default

    Returns:
        The loguru handler ID
    """
    loguru_logger.remove()
    loguru_logger.configure(patcher=_attach_activation_id)
    return loguru_logger.add(
        sink or sys.stderr,
        level=to_loguru_level(level),
        format=_FORMAT,
        colorize=False,
    )


# Export loguru logger for direct use
logger = loguru_logger
