"""
Logger Utility
==============

Leveled, context-prefixed logging for the runtime.

Every module creates its own logger with a short context name so that
a single run through the tool-calling loop can be followed across the
Context, the tools and the model client:

    [2025-07-20T10:30:00] [INFO] [Context] Tool round 1: 2 call(s)
    [2025-07-20T10:30:01] [INFO] [Tools] Executing tool: shell_command

Usage:
    from agentloop.utils.logger import Logger

    logger = Logger("Evaluator")
    logger.info("Starting refinement", {"max_iterations": 3})

    child = logger.child("Iteration")   # logs as [Evaluator:Iteration]
"""

import json
import os
import sys
from datetime import datetime
from enum import IntEnum
from typing import Any


class LogLevel(IntEnum):
    """Numeric levels; anything below the configured minimum is dropped."""
    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40


class Colors:
    """ANSI escape codes for terminal output."""
    RESET = "\033[0m"
    DEBUG = "\033[36m"    # Cyan
    INFO = "\033[32m"     # Green
    WARNING = "\033[33m"  # Yellow
    ERROR = "\033[31m"    # Red
    DIM = "\033[2m"


_LEVEL_NAMES = {
    "DEBUG": LogLevel.DEBUG,
    "INFO": LogLevel.INFO,
    "WARNING": LogLevel.WARNING,
    "WARN": LogLevel.WARNING,
    "ERROR": LogLevel.ERROR,
}


def parse_level(value: str | None) -> LogLevel:
    """
    Map a level name (case-insensitive) to a LogLevel.

    Unknown or missing names fall back to INFO.
    """
    if not value:
        return LogLevel.INFO
    return _LEVEL_NAMES.get(value.upper(), LogLevel.INFO)


class Logger:
    """
    A context-aware logger with colored output.

    The minimum level is read from LOG_LEVEL when the logger is created,
    so loggers built after configuration is loaded pick it up.

    Example:
        logger = Logger("Context")
        logger.debug("Request built", {"messages": 4})
        logger.error("Model call failed", exc)
    """

    def __init__(self, context: str = "", level: LogLevel | None = None):
        self.context = context
        self._min_level = level if level is not None else parse_level(os.getenv("LOG_LEVEL"))

    def child(self, child_context: str) -> "Logger":
        """Create a logger whose context is nested under this one."""
        new_context = f"{self.context}:{child_context}" if self.context else child_context
        return Logger(new_context, self._min_level)

    def set_level(self, level: LogLevel | str) -> None:
        """Change the minimum level of this logger."""
        self._min_level = parse_level(level) if isinstance(level, str) else level

    def is_enabled_for(self, level: LogLevel) -> bool:
        return level >= self._min_level

    def _format_message(self, level: str, message: str, color: str) -> str:
        timestamp = datetime.now().isoformat(timespec="seconds")
        context_str = f"[{self.context}] " if self.context else ""

        return (
            f"{Colors.DIM}[{timestamp}]{Colors.RESET} "
            f"{color}[{level}]{Colors.RESET} "
            f"{context_str}{message}"
        )

    def _log(
        self,
        level: LogLevel,
        level_name: str,
        color: str,
        message: str,
        data: dict[str, Any] | None = None
    ) -> None:
        if not self.is_enabled_for(level):
            return

        stream = sys.stderr if level >= LogLevel.ERROR else sys.stdout
        print(self._format_message(level_name, message, color), file=stream)

        if data:
            data_str = json.dumps(data, indent=2, default=str)
            print(f"{Colors.DIM}{data_str}{Colors.RESET}", file=stream)

    def debug(self, message: str, data: dict[str, Any] | None = None) -> None:
        """Log a debug message (only shown with LOG_LEVEL=DEBUG)."""
        self._log(LogLevel.DEBUG, "DEBUG", Colors.DEBUG, message, data)

    def info(self, message: str, data: dict[str, Any] | None = None) -> None:
        """Log an info message."""
        self._log(LogLevel.INFO, "INFO", Colors.INFO, message, data)

    def warning(self, message: str, data: dict[str, Any] | None = None) -> None:
        """Log a warning: something degraded but the operation continues."""
        self._log(LogLevel.WARNING, "WARN", Colors.WARNING, message, data)

    def error(self, message: str, error: Exception | None = None) -> None:
        """
        Log an error message.

        Args:
            message: What failed
            error: Optional exception; its type and text are printed below
        """
        data = None
        if error:
            data = {
                "error_type": type(error).__name__,
                "error_message": str(error),
            }
        self._log(LogLevel.ERROR, "ERROR", Colors.ERROR, message, data)
