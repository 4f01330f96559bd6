"""
Models package - Data models for the BotFarm process host
"""

from .enums import LogLevel, LogCategory, ShutdownState
from .startup import StartupOverrides
from .config import LifecycleConfig

__all__ = [
    'LogLevel',
    'LogCategory',
    'ShutdownState',
    'StartupOverrides',
    'LifecycleConfig',
]
