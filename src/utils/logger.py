import os
import sys
import threading
import traceback
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Protocol, Union
from models.enums import LogLevel, LogCategory

# === ANSI COLORS ===
class Colors:
    """ANSI escape codes for colored terminal output"""
    RESET = '\033[0m'
    DIM = '\033[2m'

    # Foreground colors
    RED = '\033[31m'
    GREEN = '\033[32m'
    YELLOW = '\033[33m'
    MAGENTA = '\033[35m'
    CYAN = '\033[36m'
    WHITE = '\033[37m'

    # Bright foreground colors
    BRIGHT_RED = '\033[91m'
    BRIGHT_GREEN = '\033[92m'
    BRIGHT_YELLOW = '\033[93m'
    BRIGHT_BLUE = '\033[94m'
    BRIGHT_MAGENTA = '\033[95m'
    BRIGHT_CYAN = '\033[96m'
    BRIGHT_WHITE = '\033[97m'


CATEGORY_COLORS = {
    LogCategory.CONFIG: Colors.CYAN,
    LogCategory.STARTUP: Colors.BRIGHT_CYAN,
    LogCategory.INSTANCE: Colors.BRIGHT_BLUE,
    LogCategory.SYSTEM: Colors.BRIGHT_WHITE,
    LogCategory.FLEET: Colors.BRIGHT_GREEN,
    LogCategory.API: Colors.BRIGHT_YELLOW,
    LogCategory.SHUTDOWN: Colors.MAGENTA,
    LogCategory.LIFECYCLE: Colors.BRIGHT_MAGENTA,
    LogCategory.TASK: Colors.DIM,
}

LEVEL_SYMBOLS = {
    LogLevel.DEBUG: '·',
    LogLevel.INFO: '✓',
    LogLevel.WARN: '⚠',
    LogLevel.ERROR: '✗',
    LogLevel.FATAL: '☠',
}

LEVEL_COLORS = {
    LogLevel.DEBUG: Colors.DIM,
    LogLevel.INFO: Colors.GREEN,
    LogLevel.WARN: Colors.YELLOW,
    LogLevel.ERROR: Colors.RED,
    LogLevel.FATAL: Colors.BRIGHT_RED,
}


# === SINKS ===
class ILogSink(Protocol):
    """Destination for plain (uncolored) log lines."""

    def write(self, line: str) -> None:
        ...

    def flush(self) -> None:
        ...

    def close(self) -> None:
        ...


class FileLogSink:
    """
    Durable log sink backed by a file.

    Lines are buffered in memory and only hit the disk on flush(), which
    also fsyncs the file. The shutdown sequence flushes every sink before
    releasing the instance lock.
    """

    def __init__(self, path: Union[str, Path], buffer_limit: int = 100):
        """
        Args:
            path: Log file path (parent directories are created)
            buffer_limit: Flush automatically once this many lines are pending
        """
        self.path = Path(path)
        self.buffer_limit = buffer_limit
        self._lock = threading.Lock()
        self._buffer: List[str] = []
        self._file = None

    def write(self, line: str) -> None:
        with self._lock:
            self._buffer.append(line)
            pending = len(self._buffer)
        if pending >= self.buffer_limit:
            self.flush()

    def flush(self) -> None:
        with self._lock:
            if not self._buffer:
                return
            if self._file is None:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                self._file = open(self.path, "a", encoding="utf-8")
            self._file.write("\n".join(self._buffer) + "\n")
            self._buffer.clear()
            self._file.flush()
            os.fsync(self._file.fileno())

    def close(self) -> None:
        self.flush()
        with self._lock:
            if self._file is not None:
                self._file.close()
                self._file = None

    @property
    def pending(self) -> int:
        """Number of buffered lines not yet written."""
        with self._lock:
            return len(self._buffer)


# === CORE LOGGER ===
class Logger:
    """
    Structured logger with compact output format

    Format:
    [HH:MM:SS] CATEGORY · Message
               └─ Detail 1
               └─ Detail 2

    Example:
    [14:23:45] SHUTDOWN  ✓ Stopping bot fleet
               └─ workers: 3
               └─ timeout: 15.0s
    """

    def __init__(self, min_level: LogLevel = LogLevel.INFO, use_colors: bool = True):
        """
        Initialize logger

        Args:
            min_level: Minimum log level to display
            use_colors: Enable ANSI color codes (disable for file output)
        """
        self.min_level = min_level
        self.use_colors = use_colors
        self._level_priority = {
            LogLevel.DEBUG: 0,
            LogLevel.INFO: 1,
            LogLevel.WARN: 2,
            LogLevel.ERROR: 3,
            LogLevel.FATAL: 4,
        }
        self._sinks: List[ILogSink] = []
        self._sinks_lock = threading.Lock()

    def _should_log(self, level: LogLevel) -> bool:
        """Check if message should be logged based on level"""
        return self._level_priority[level] >= self._level_priority[self.min_level]

    def _colorize(self, text: str, color: str) -> str:
        """Apply color to text if colors enabled"""
        if not self.use_colors:
            return text
        return f"{color}{text}{Colors.RESET}"

    def _format_timestamp(self) -> str:
        """Format current time as [HH:MM:SS]"""
        return datetime.now().strftime('[%H:%M:%S]')

    def _format_category(self, category: LogCategory) -> str:
        """Format category name with color"""
        color = CATEGORY_COLORS.get(category, Colors.WHITE)
        return self._colorize(category.name.ljust(9), color)

    def _format_level_symbol(self, level: LogLevel) -> str:
        """Format level symbol with color"""
        symbol = LEVEL_SYMBOLS.get(level, '·')
        return self._colorize(symbol, LEVEL_COLORS.get(level, Colors.WHITE))

    @staticmethod
    def _format_exception(exc_info) -> List[str]:
        """Turn exc_info (True or an exception instance) into traceback lines."""
        if isinstance(exc_info, BaseException):
            lines = traceback.format_exception(type(exc_info), exc_info, exc_info.__traceback__)
        else:
            lines = traceback.format_exc().splitlines()
            if lines == ["NoneType: None"]:
                return []
        return [part for line in lines for part in line.rstrip("\n").split("\n") if part]

    # === Sinks ===
    def add_sink(self, sink: ILogSink) -> None:
        """Attach a sink receiving every emitted line without colors."""
        with self._sinks_lock:
            self._sinks.append(sink)

    def remove_sink(self, sink: ILogSink) -> None:
        with self._sinks_lock:
            if sink in self._sinks:
                self._sinks.remove(sink)

    @property
    def sinks(self) -> List[ILogSink]:
        with self._sinks_lock:
            return list(self._sinks)

    def flush(self) -> None:
        """
        Flush all durable sinks synchronously.

        A failing sink does not prevent the others from being flushed;
        the first error is re-raised afterwards.
        """
        first_error: Optional[BaseException] = None
        for sink in self.sinks:
            try:
                sink.flush()
            except Exception as e:
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error

    def log(
        self,
        category: LogCategory,
        message: str,
        level: LogLevel = LogLevel.INFO,
        details: Optional[list] = None,
        exc_info=None,
        **kwargs
    ):
        """
        Log a structured message

        Args:
            category: Log category (SHUTDOWN, FLEET, etc.)
            message: Main message text
            level: Log level (DEBUG, INFO, WARN, ERROR, FATAL)
            details: List of detail strings to show below message
            exc_info: True for the exception being handled, or an exception instance
            **kwargs: Additional key-value pairs to show as details

        Example:
            logger.log(
                LogCategory.FLEET,
                "Worker stopped",
                worker="bot-1",
                graceful=True
            )

            Output:
            [14:23:45] FLEET     ✓ Worker stopped
                       ├─ worker: bot-1
                       └─ graceful: True
        """
        if not self._should_log(level):
            return

        # Build main line
        timestamp = self._format_timestamp()
        cat = self._format_category(category)
        sym = self._format_level_symbol(level)
        msg = self._colorize(message, LEVEL_COLORS.get(level, Colors.WHITE))

        # Print main line
        print(f"{timestamp} {cat} {sym} {msg}")

        # Add kwargs as details
        all_details = list(details or [])
        for k, v in kwargs.items():
            all_details.append(f"{k}: {v}")
        if exc_info:
            all_details.extend(self._format_exception(exc_info))

        # Print details with tree structure
        indent = " " * 11
        if all_details:
            for i, d in enumerate(all_details):
                # Last item gets different tree character
                tree = "└─" if i == len(all_details) - 1 else "├─"
                print(f"{indent}{self._colorize(tree, Colors.DIM)} {d}")

        sinks = self.sinks
        if sinks:
            plain = f"{datetime.now().isoformat()} {level.name:<5} {category.name}: {message}"
            lines = [plain] + [f"{indent}{d}" for d in all_details]
            for sink in sinks:
                self._write_to_sink(sink, lines)

    @staticmethod
    def _write_to_sink(sink: ILogSink, lines: List[str]) -> None:
        # A broken sink is reported on stderr; logging never raises to the caller
        try:
            for line in lines:
                sink.write(line)
        except Exception as e:
            print(f"Log sink {sink.__class__.__name__} write failed: {e}", file=sys.stderr)

    # === Level helpers ===
    def debug(self, category: LogCategory, message: str, **kw): self.log(category, message, LogLevel.DEBUG, **kw)
    def info(self, category: LogCategory, message: str, **kw): self.log(category, message, LogLevel.INFO, **kw)
    def warn(self, category: LogCategory, message: str, **kw): self.log(category, message, LogLevel.WARN, **kw)
    def error(self, category: LogCategory, message: str, **kw): self.log(category, message, LogLevel.ERROR, **kw)
    def fatal(self, category: LogCategory, message: str, **kw): self.log(category, message, LogLevel.FATAL, **kw)

    # === Contextual logger creation ===
    def for_category(self, category: LogCategory) -> 'BoundLogger':
        """Return a contextual logger bound to a specific category."""
        return BoundLogger(self, category)


class BoundLogger:
    """Logger bound to a default category, with ability to override if needed."""

    def __init__(self, base: Logger, category: LogCategory):
        self._base = base
        self._category = category

    def log(self, message: str, level: LogLevel = LogLevel.INFO, category: Optional[LogCategory] = None, **kw):
        """Allows overriding category if necessary."""
        self._base.log(category or self._category, message, level, **kw)

    # Shortcut methods
    def debug(self, message: str, **kw): self.log(message, LogLevel.DEBUG, **kw)
    def info(self, message: str, **kw): self.log(message, LogLevel.INFO, **kw)
    def warn(self, message: str, **kw): self.log(message, LogLevel.WARN, **kw)
    def error(self, message: str, **kw): self.log(message, LogLevel.ERROR, **kw)
    def fatal(self, message: str, **kw): self.log(message, LogLevel.FATAL, **kw)


# === Global instance helpers ===
_logger = Logger()

def get_logger() -> Logger:
    return _logger

def configure_logger(min_level: LogLevel = LogLevel.INFO, use_colors: bool = True):
    """
    Configure the logger singleton (modify in-place, don't create new instance).

    Updates properties on the existing instance rather than replacing it, so
    attached sinks and module-level bound loggers remain valid.
    """
    _logger.min_level = min_level
    _logger.use_colors = use_colors
