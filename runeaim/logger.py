"""Markdown log files with coloured console echo, grouped in a named pool."""

from __future__ import annotations

import os
import sys
import threading
from datetime import datetime
from enum import IntEnum, IntFlag
from pathlib import Path
from typing import Callable, TextIO

__all__ = [
    "LogLevel",
    "LogOption",
    "LoggerNotFoundError",
    "WriteError",
    "Writer",
    "Logger",
    "LoggerPool",
    "get_logger",
    "register_logger",
]


class LogLevel(IntEnum):
    """Severity of a log record, in increasing order."""

    DEBUG = 0
    INFO = 1
    WARN = 2
    ERROR = 3
    FATAL = 4


class LogOption(IntFlag):
    """Options controlling where a logger's file is placed."""

    DEFAULT = 0
    DATE_DIR = 0b001
    DATE_SUFFIX = 0b010
    OVER_WRITE = 0b100


# DEBUG = gray, INFO = white, WARN = yellow, ERROR = red, FATAL = blue
_FILE_COLORS = {
    LogLevel.DEBUG: '<font color="#9B9B9B">{}</font>',
    LogLevel.INFO: '<font color="#FFFFFF">{}</font>',
    LogLevel.WARN: '<font color="#FFFF00">{}</font>',
    LogLevel.ERROR: '<font color="#FF0000">{}</font>',
    LogLevel.FATAL: '<font color="#0000FF">{}</font>',
}

_CONSOLE_COLORS = {
    LogLevel.DEBUG: (0x80, 0x80, 0x80),
    LogLevel.INFO: (0xFF, 0xFF, 0xFF),
    LogLevel.WARN: (0xFF, 0xFF, 0x00),
    LogLevel.ERROR: (0xFF, 0x00, 0x00),
    LogLevel.FATAL: (0x00, 0x00, 0xFF),
}

_ANSI_RESET = "\x1b[0m"

_console_lock = threading.Lock()
_file_locks: dict[str, threading.Lock] = {}
_file_locks_guard = threading.Lock()


def _file_lock(filename: str) -> threading.Lock:
    with _file_locks_guard:
        return _file_locks.setdefault(filename, threading.Lock())


class LoggerNotFoundError(LookupError):
    """Raised when a logger is requested that was never registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Logger {name} Not Found")
        self.name = name


class WriteError(OSError):
    """Raised when a log file cannot be written."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Write to {name} Error")
        self.name = name


class Writer:
    """Appends records to a file, creating its directory when needed."""

    def __init__(self, filename: str | os.PathLike[str]) -> None:
        self.filename = str(filename)
        self._lock = _file_lock(self.filename)
        parent = Path(self.filename).parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
            self._file: TextIO = open(self.filename, "a", encoding="utf-8")
        except OSError as exc:
            raise WriteError(self.filename) from exc

    def write(self, message: str) -> None:
        """Append ``message`` followed by a blank line, and flush."""
        with self._lock:
            try:
                self._file.write(message + "\n\n")
                self._file.flush()
            except (OSError, ValueError) as exc:
                raise WriteError(self.filename) from exc

    def flush(self) -> None:
        """Flush buffered output to disk."""
        with self._lock:
            try:
                self._file.flush()
            except (OSError, ValueError) as exc:
                raise WriteError(self.filename) from exc

    def close(self) -> None:
        """Close the underlying file."""
        with self._lock:
            self._file.close()

    def __enter__(self) -> Writer:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class Logger:
    """A named logger writing coloured Markdown records and echoing to the console."""

    def __init__(
        self,
        name: str,
        path: str = "",
        level: LogLevel = LogLevel.INFO,
        options: LogOption = LogOption.DEFAULT,
        *,
        stream: TextIO | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.name = name
        self.level = LogLevel(level)
        self._stream = stream
        self._clock = clock if clock is not None else datetime.now
        options = LogOption(options)

        cur_date = self._local_time()[:10]
        filename = path or "./"
        if not filename.endswith("/"):
            filename += "/"
        if filename.startswith("~"):
            home = os.environ.get("HOME") or str(Path.home())
            filename = home + filename[1:]
        if LogOption.DATE_DIR in options:
            filename += cur_date + "/"
        if LogOption.DATE_SUFFIX in options:
            filename += f"{name}_{cur_date}.log.md"
        else:
            filename += f"{name}.log.md"

        self.filename = filename
        self._writer = Writer(filename)

    def _local_time(self) -> str:
        return self._clock().strftime("%Y-%m-%d %H:%M:%S")

    def _console(self) -> TextIO:
        return self._stream if self._stream is not None else sys.stdout

    def log(self, level: LogLevel, fmt: str, *args: object) -> None:
        """Format a record; write it to file if at or above the level, always echo it."""
        level = LogLevel(level)
        info = fmt.format(*args)
        message = f"[{level.name}]  [{self.name}]  [{self._local_time()}] : {info}"
        if level >= self.level:
            self._writer.write(_FILE_COLORS[level].format(message))
        r, g, b = _CONSOLE_COLORS[level]
        with _console_lock:
            out = self._console()
            out.write(f"\x1b[38;2;{r};{g};{b}m{message}\n{_ANSI_RESET}")
            out.flush()

    def debug(self, fmt: str, *args: object) -> None:
        self.log(LogLevel.DEBUG, fmt, *args)

    def info(self, fmt: str, *args: object) -> None:
        self.log(LogLevel.INFO, fmt, *args)

    def warn(self, fmt: str, *args: object) -> None:
        self.log(LogLevel.WARN, fmt, *args)

    def error(self, fmt: str, *args: object) -> None:
        self.log(LogLevel.ERROR, fmt, *args)

    def fatal(self, fmt: str, *args: object) -> None:
        self.log(LogLevel.FATAL, fmt, *args)

    def print(self, fmt: str, *args: object) -> None:
        """Write formatted text to the console only, without a newline."""
        with _console_lock:
            out = self._console()
            out.write(fmt.format(*args))
            out.flush()

    def set_level(self, level: LogLevel) -> None:
        """Change the minimum level written to the file."""
        self.level = LogLevel(level)

    def flush(self) -> None:
        """Flush the log file."""
        self._writer.flush()


class LoggerPool:
    """A registry of loggers by name."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._loggers: dict[str, Logger] = {}

    def get(self, name: str) -> Logger:
        """Return the logger registered as ``name``."""
        try:
            return self._loggers[name]
        except KeyError:
            raise LoggerNotFoundError(name) from None

    def register(
        self,
        name: str,
        path: str,
        level: LogLevel = LogLevel.INFO,
        options: LogOption = LogOption.DEFAULT,
    ) -> Logger:
        """Create a logger under ``name`` unless one exists; return the registered one."""
        with self._lock:
            if name not in self._loggers:
                self._loggers[name] = Logger(name, path, level, options)
            return self._loggers[name]


_POOL = LoggerPool()


def get_logger(name: str) -> Logger:
    """Return a logger from the process-wide pool."""
    return _POOL.get(name)


def register_logger(
    name: str,
    path: str,
    level: LogLevel = LogLevel.INFO,
    options: LogOption = LogOption.DEFAULT,
) -> Logger:
    """Register a logger in the process-wide pool."""
    return _POOL.register(name, path, level, options)