from .fleet_shutdown_handler import FleetShutdownHandler
from .instance_lock_handler import InstanceLockHandler
from .listener_shutdown_handler import ListenerShutdownHandler
from .log_flush_handler import LogFlushHandler

__all__ = [
    "FleetShutdownHandler",
    "InstanceLockHandler",
    "ListenerShutdownHandler",
    "LogFlushHandler",
]
