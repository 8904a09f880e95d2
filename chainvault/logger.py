"""Logging setup for the archive: coloured console output and an optional log file."""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

import platformdirs

TRACE_LEVEL = 5
logging.addLevelName(TRACE_LEVEL, "TRACE")

_HANDLER_MARKER = "_chainvault_handler"


class LogLevel(Enum):
    """Level filter; names are accepted case-insensitively."""

    OFF = "off"
    ERROR = "error"
    WARN = "warn"
    INFO = "info"
    DEBUG = "debug"
    TRACE = "trace"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            lowered = value.lower()
            if lowered == "warning":
                return cls.WARN
            for member in cls:
                if member.value == lowered:
                    return member
        return None

    @property
    def python_level(self) -> int:
        """The matching level of the logging module."""
        return _PYTHON_LEVELS[self]


_PYTHON_LEVELS = {
    LogLevel.OFF: logging.CRITICAL + 10,
    LogLevel.ERROR: logging.ERROR,
    LogLevel.WARN: logging.WARNING,
    LogLevel.INFO: logging.INFO,
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.TRACE: TRACE_LEVEL,
}


def default_dir() -> Path:
    """Local directory where the archive keeps its data."""
    return Path(platformdirs.user_data_dir("chainvault", appauthor=False))


def default_file_log_name() -> str:
    """A log file name made of the current UTC time."""
    return datetime.now(timezone.utc).isoformat() + ".log"


@dataclass
class FileLoggerConfig:
    """Settings of the log file."""

    level: LogLevel = LogLevel.DEBUG
    dir: Path | None = None
    name: str = field(default_factory=default_file_log_name)


@dataclass
class LoggerConfig:
    """Settings of console and file logging."""

    std: LogLevel = LogLevel.DEBUG
    file: FileLoggerConfig | None = None


_STDOUT_OVERRIDES = {
    "cranelift_wasm": LogLevel.ERROR,
    "sqlx": LogLevel.ERROR,
    "staking": LogLevel.WARN,
    "cranelift_codegen": LogLevel.WARN,
    "header": LogLevel.WARN,
    "frame_executive": LogLevel.ERROR,
    "regalloc": LogLevel.WARN,
    "desub_legacy": LogLevel.WARN,
}

_FILE_OVERRIDES = {
    "cranelift_wasm": LogLevel.ERROR,
    "sqlx": LogLevel.ERROR,
    "staking": LogLevel.WARN,
    "cranelift_codegen": LogLevel.WARN,
    "wasm-heap": LogLevel.ERROR,
    "regalloc": LogLevel.WARN,
    "tracing": LogLevel.WARN,
    "trie": LogLevel.WARN,
    "state": LogLevel.WARN,
}

_COLORS = {"ERROR": "31", "WARN": "33", "INFO": "32", "DEBUG": "34", "TRACE": "35"}


def _level_label(levelno: int) -> str:
    if levelno >= logging.ERROR:
        return "ERROR"
    if levelno >= logging.WARNING:
        return "WARN"
    if levelno >= logging.INFO:
        return "INFO"
    if levelno >= logging.DEBUG:
        return "DEBUG"
    return "TRACE"


class _TargetFilter(logging.Filter):
    """Passes records at or above a level chosen by the logger name."""

    def __init__(self, default: LogLevel, overrides: dict[str, LogLevel]) -> None:
        super().__init__()
        self._default = default.python_level
        self._overrides = sorted(
            ((target, level.python_level) for target, level in overrides.items()),
            key=lambda item: len(item[0]),
            reverse=True,
        )

    @property
    def lowest(self) -> int:
        return min([self._default, *(level for _, level in self._overrides)])

    def filter(self, record: logging.LogRecord) -> bool:
        threshold = self._default
        for target, level in self._overrides:
            if record.name == target or record.name.startswith(target + "."):
                threshold = level
                break
        return record.levelno >= threshold


class _ConsoleFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created).strftime("[%H:%M]")
        label = _level_label(record.levelno)
        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return f"{stamp} \x1b[{_COLORS[label]}m{label}\x1b[0m {message}"


class _FileFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created).strftime("[%Y-%m-%d][%H:%M:%S]")
        label = _level_label(record.levelno)
        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return f"{stamp} [{record.name}][{label}] {message}::{record.pathname};{record.lineno}"


def init(config: LoggerConfig | None = None) -> list[logging.Handler]:
    """Install console and optional file logging on the root logger.

    Handlers installed by an earlier call are replaced. Returns the new handlers.
    """
    config = config if config is not None else LoggerConfig()
    root = logging.getLogger()
    for handler in [h for h in root.handlers if getattr(h, _HANDLER_MARKER, False)]:
        root.removeHandler(handler)
        handler.close()

    console_filter = _TargetFilter(config.std, {"chainvault": config.std, **_STDOUT_OVERRIDES})
    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(_ConsoleFormatter())
    console.addFilter(console_filter)
    handlers: list[logging.Handler] = [console]
    filters = [console_filter]

    if config.file is not None:
        log_dir = Path(config.file.dir) if config.file.dir is not None else default_dir()
        log_dir.mkdir(parents=True, exist_ok=True)
        file_filter = _TargetFilter(
            config.file.level, {"chainvault": config.file.level, **_FILE_OVERRIDES}
        )
        file_handler = logging.FileHandler(log_dir / config.file.name, encoding="utf-8")
        file_handler.setFormatter(_FileFormatter())
        file_handler.addFilter(file_filter)
        handlers.append(file_handler)
        filters.append(file_filter)

    for handler in handlers:
        setattr(handler, _HANDLER_MARKER, True)
        root.addHandler(handler)
    root.setLevel(min(f.lowest for f in filters))
    return handlers