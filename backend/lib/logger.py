"""
Console Logging for the Backend

Color-coded, icon-prefixed log lines with optional structured data blocks.
Feature areas (chat, quiz, games, materials, lecturer) get their own icon
based on the last segment of the logger name.
"""

import logging
import sys
from datetime import datetime
from typing import Any, Dict, Optional

RESET = "\033[0m"
BOLD = "\033[1m"
DIM = "\033[90m"
KEY = "\033[93m"
SECTION = "\033[94m"

LEVEL_COLORS = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[35m",
}

LEVEL_ICONS = {
    "DEBUG": "🔍",
    "INFO": "ℹ️",
    "WARNING": "⚠️",
    "ERROR": "❌",
    "CRITICAL": "🚨",
}

AREA_ICONS = {
    "chat": "💬",
    "quiz": "🎯",
    "games": "🧩",
    "materials": "📚",
    "lecturer": "🎓",
    "auth": "🔐",
    "main": "🩺",
}

NOISY_LOGGERS = ("asyncio", "httpx", "httpcore", "urllib3", "openai", "hpack")


class ColoredFormatter(logging.Formatter):
    """`[HH:MM:SS.mmm] icon LEVEL logger | message` with ANSI colors on a TTY."""

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors and sys.stdout.isatty()

    def _paint(self, color: str, text: str) -> str:
        return f"{color}{text}{RESET}" if self.use_colors else text

    def format(self, record: logging.LogRecord) -> str:
        area = record.name.rsplit(".", 1)[-1]
        icon = AREA_ICONS.get(area, LEVEL_ICONS.get(record.levelname, "•"))
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]

        line = (
            f"{self._paint(DIM, f'[{timestamp}]')} {icon} "
            f"{self._paint(LEVEL_COLORS.get(record.levelname, RESET), f'{record.levelname:8s}')} "
            f"{self._paint(BOLD, record.name)} | {record.getMessage()}"
        )
        if record.exc_info:
            line += f"\n{self.formatException(record.exc_info)}"
        return line


def _format_data(data: Dict[str, Any], indent: int = 2) -> str:
    lines = []
    for key, value in data.items():
        if isinstance(value, dict):
            lines.append(f"{' ' * indent}{key}:")
            lines.append(_format_data(value, indent + 2))
        elif isinstance(value, (list, tuple)) and len(value) > 5:
            shown = ", ".join(str(item) for item in value[:3])
            lines.append(f"{' ' * indent}{key}: [{shown}, ... ({len(value)} items)]")
        else:
            lines.append(f"{' ' * indent}{key}: {value}")
    return "\n".join(lines)


class StructuredLogger:
    """Logger wrapper that appends an indented key/value block to messages."""

    def __init__(self, name: str, logger: Optional[logging.Logger] = None):
        self.name = name
        self.logger = logger or logging.getLogger(name)

    def _emit(self, level: int, message: str, data: Optional[Dict[str, Any]] = None, **kwargs):
        if data:
            message = f"{message}\n{_format_data(data)}"
        self.logger.log(level, message, **kwargs)

    def section(self, title: str, data: Optional[Dict[str, Any]] = None):
        """Log a visually separated block header."""
        separator = "=" * 72
        self._emit(logging.INFO, f"\n{separator}\n📋 {title.upper()}\n{separator}", data)

    def debug(self, message: str, data: Optional[Dict[str, Any]] = None):
        self._emit(logging.DEBUG, message, data)

    def info(self, message: str, data: Optional[Dict[str, Any]] = None):
        self._emit(logging.INFO, message, data)

    def warning(self, message: str, data: Optional[Dict[str, Any]] = None):
        self._emit(logging.WARNING, message, data)

    def success(self, message: str, data: Optional[Dict[str, Any]] = None):
        self._emit(logging.INFO, f"✅ {message}", data)

    def error(self, message: str, error: Optional[Exception] = None, data: Optional[Dict[str, Any]] = None):
        if error is not None:
            message = f"{message} ({type(error).__name__}: {error})"
        self._emit(logging.ERROR, message, data, exc_info=error)

    def request(self, method: str, path: str, user_id: Optional[str] = None, data: Optional[Dict[str, Any]] = None):
        payload = {"user_id": user_id}
        payload.update(data or {})
        self._emit(logging.INFO, f"📥 {method} {path}", payload)

    def response(self, status: int, path: str, duration: Optional[float] = None):
        timing = f" in {duration * 1000:.1f}ms" if duration is not None else ""
        self._emit(logging.INFO, f"📤 {status} {path}{timing}")


def setup_logging(level: int = logging.INFO, use_colors: bool = True) -> logging.Logger:
    """Install the colored console handler on the root logger."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(ColoredFormatter(use_colors=use_colors))

    root_logger.setLevel(level)
    root_logger.addHandler(console_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root_logger


def get_logger(name: str) -> StructuredLogger:
    return StructuredLogger(name, logging.getLogger(name))
