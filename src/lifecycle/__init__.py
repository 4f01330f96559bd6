"""
Lifecycle subsystem
-------------------

Exports the public API for:
- the one-shot shutdown sequence and exit code channel
- routing of signals and faults into that sequence
- task tracking & introspection
- shutdown handlers

Internal modules remain private. External code should import from:
    from lifecycle import ShutdownCoordinator, LifecycleSignalHub
    from lifecycle.handlers import FleetShutdownHandler
"""

from .exit_channel import ExitResultChannel
from .shutdown_coordinator import ShutdownCoordinator
from .shutdown_protocol import IShutdownHandler
from .shutdown_state import AtomicShutdownState
from .signal_hub import LifecycleSignalHub
from .task_registry import TaskRegistry, TaskCategory, TaskInfo
from . import handlers

__all__ = [
    "AtomicShutdownState",
    "ExitResultChannel",
    "IShutdownHandler",
    "LifecycleSignalHub",
    "ShutdownCoordinator",
    "TaskRegistry",
    "TaskCategory",
    "TaskInfo",
    "handlers",
]
