"""
Utility functions for the BotFarm process host
"""

from .logger import (
    get_logger,
    configure_logger,
    FileLogSink,
)

__all__ = [
    'get_logger',
    'configure_logger',
    'FileLogSink',
]
