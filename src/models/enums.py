"""
Enums shared across the BotFarm process host
"""

from enum import Enum, auto


class LogLevel(Enum):
    """Log severity levels"""
    DEBUG = auto()
    INFO = auto()
    WARN = auto()
    ERROR = auto()
    FATAL = auto()      # Unrecoverable faults, always logged before exit


class LogCategory(Enum):
    """Log categories for grouping related events"""
    CONFIG = auto()      # Configuration loading, validation
    STARTUP = auto()     # Argument parsing, environment checks
    INSTANCE = auto()    # Single-instance lock
    SYSTEM = auto()      # Program identity, top level flow
    FLEET = auto()       # Bot workers
    API = auto()         # IPC listener

    SHUTDOWN = auto()
    LIFECYCLE = auto()
    TASK = auto()

    GENERAL = auto()    # Default general category


class ShutdownState(Enum):
    """
    Shutdown sequence states.

    NOT_STARTED → IN_PROGRESS → COMPLETED, never backwards.
    """
    NOT_STARTED = auto()
    IN_PROGRESS = auto()
    COMPLETED = auto()
