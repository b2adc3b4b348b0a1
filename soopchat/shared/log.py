#!/usr/bin/env python3
"""
soopchat Logging Configuration

Centralized logging setup for consistent formatting across the client.
Console output is always enabled; a file handler is added when
SOOPCHAT_LOG_FILE points somewhere.

Usage:
    from soopchat.shared.log import get_logger

    logger = get_logger(__name__)
    logger.info("Connecting...")
    logger.warning("Read failed", extra={"streamer": "abc", "svc": 5})
"""

from __future__ import annotations
import logging
import os
import sys
from pathlib import Path
from typing import Optional


# ========================================
#           LOGGING FORMATTERS
# ========================================

class SessionFormatter(logging.Formatter):
    """Prefixes the message with chat session context passed through `extra`"""

    def format(self, record: logging.LogRecord) -> str:
        context = []

        if hasattr(record, 'streamer'):
            context.append(f"streamer={record.streamer}")
        if hasattr(record, 'room'):
            context.append(f"room={record.room}")
        if hasattr(record, 'svc'):
            context.append(f"svc={record.svc}")

        if not context:
            return super().format(record)

        # Records are shared between handlers; restore the message afterwards
        original = record.msg
        record.msg = f"[{' '.join(context)}] {record.msg}"
        try:
            return super().format(record)
        finally:
            record.msg = original


class ColoredFormatter(SessionFormatter):
    """Colored formatter for console output; keeps the session context"""

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
        'RESET': '\033[0m'
    }

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        if levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.COLORS['RESET']}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


# ========================================
#           LOGGING CONFIGURATION
# ========================================

_loggers_configured = set()

def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """
    Get a configured logger for the given module.

    Args:
        name: Usually __name__ from the calling module
        level: Override log level ("DEBUG", "INFO", "WARNING", "ERROR")

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    if name not in _loggers_configured:
        _configure_logger(logger, level)
        _loggers_configured.add(name)

    return logger


def _configure_logger(logger: logging.Logger, level: Optional[str] = None) -> None:
    """Configure a logger with appropriate handlers and formatters"""
    logger.setLevel(_get_log_level(level))

    # Clear existing handlers to avoid duplicates
    logger.handlers.clear()

    _add_console_handler(logger, colored=_is_development())
    log_file = os.getenv('SOOPCHAT_LOG_FILE')
    if log_file:
        _add_file_handler(logger, Path(log_file))

    logger.propagate = False


def _get_log_level(level: Optional[str] = None) -> int:
    level = level or os.getenv('SOOPCHAT_LOG_LEVEL')
    if level:
        return getattr(logging, level.upper(), logging.INFO)

    return logging.DEBUG if _is_development() else logging.INFO


def _is_development() -> bool:
    return os.getenv('PYTHON_ENV', '').lower() in ['dev', 'development']


def _add_console_handler(logger: logging.Logger, colored: bool = True) -> None:
    fmt = '[%(levelname)-8s][%(asctime)s][%(name)-5s]: %(message)s'
    # stderr keeps stdout free for chat output
    handler = logging.StreamHandler(sys.stderr)

    if colored and _supports_color():
        formatter = ColoredFormatter(fmt=fmt, datefmt='%H:%M:%S')
    else:
        formatter = SessionFormatter(fmt=fmt, datefmt='%Y-%m-%d %H:%M:%S')

    handler.setFormatter(formatter)
    logger.addHandler(handler)


def _add_file_handler(logger: logging.Logger, log_file: Path) -> None:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file)

    formatter = SessionFormatter(
        fmt='%(asctime)s | %(name)-30s | %(levelname)-8s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    handler.setFormatter(formatter)
    logger.addHandler(handler)


def _supports_color() -> bool:
    """Check if terminal supports color output"""
    if not (hasattr(sys.stderr, "isatty") and sys.stderr.isatty()):
        return False

    if os.getenv("TERM", "") == "dumb":
        return False

    if sys.platform == "win32":
        return os.getenv("ANSICON") is not None or os.getenv("WT_SESSION") is not None or os.getenv("TERM_PROGRAM") == "vscode"

    return True


# ========================================
#           CONVENIENCE FUNCTIONS
# ========================================

def configure_root_logging(level: str = "INFO") -> None:
    """
    Configure root logging for the entire application.
    Call this once at application startup.
    """
    root_logger = logging.getLogger()
    _configure_logger(root_logger, level)
    # Module loggers configured before this call keep their own level otherwise
    for name in _loggers_configured:
        logging.getLogger(name).setLevel(_get_log_level(level))
